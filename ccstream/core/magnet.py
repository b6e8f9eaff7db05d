"""Magnet URI parsing (BEP 9) and normalization.

Turns whatever the user pasted (a full magnet link or a bare info hash) into
a magnet URI the engine can add, with the loaded tracker list appended.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import urllib.parse
from dataclasses import dataclass, field

from ccstream.utils.exceptions import ValidationError

logger = logging.getLogger(__name__)

MAGNET_PREFIX = "magnet:"
BTIH_PREFIX = "urn:btih:"

_HEX_HASH = re.compile(r"^[0-9a-fA-F]{40}$")
_BASE32_HASH = re.compile(r"^[A-Za-z2-7]{32}$")


@dataclass
class MagnetInfo:
    """Information extracted from a magnet link."""

    info_hash: bytes
    display_name: str | None
    trackers: list[str] = field(default_factory=list)
    web_seeds: list[str] = field(default_factory=list)

    @property
    def info_hash_hex(self) -> str:
        """Info hash as lowercase hex."""
        return self.info_hash.hex()


def _hex_or_base32_to_bytes(btih: str) -> bytes:
    """Decode btih which can be hex (40 chars) or base32 (32 chars)."""
    btih = btih.strip()
    if _HEX_HASH.match(btih):
        return bytes.fromhex(btih)
    if _BASE32_HASH.match(btih):
        try:
            return base64.b32decode(btih.upper())
        except binascii.Error as e:
            msg = f"Invalid base32 info hash: {btih}"
            raise ValidationError(msg) from e
    msg = f"Invalid info hash: {btih!r} (expected 40 hex or 32 base32 characters)"
    raise ValidationError(msg)


def is_info_hash(value: str) -> bool:
    """Return True if ``value`` looks like a bare v1 info hash."""
    value = value.strip()
    return bool(_HEX_HASH.match(value) or _BASE32_HASH.match(value))


def parse_magnet(uri: str) -> MagnetInfo:
    """Parse a magnet URI and return `MagnetInfo`.

    Supports: xt=urn:btih:<hash>, dn, tr (multiple), ws (multiple).
    """
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme != "magnet":
        msg = "Not a magnet URI"
        raise ValidationError(msg, {"uri": uri})

    qs = urllib.parse.parse_qs(parsed.query)
    btih_value = None
    for xt in qs.get("xt", []):
        if xt.startswith(BTIH_PREFIX):
            btih_value = xt[len(BTIH_PREFIX) :]
            break
    if not btih_value:
        msg = "Magnet URI missing xt=urn:btih"
        raise ValidationError(msg, {"uri": uri})

    return MagnetInfo(
        info_hash=_hex_or_base32_to_bytes(btih_value),
        display_name=qs.get("dn", [None])[0],
        trackers=qs.get("tr", []),
        web_seeds=qs.get("ws", []),
    )


def normalize_magnet(magnet_or_hash: str, trackers: list[str] | None = None) -> str:
    """Build the magnet URI to hand to the engine.

    A bare info hash becomes ``magnet:?xt=urn:btih:<hash>``. Every tracker in
    ``trackers`` not already present in the link is appended as ``&tr=``.

    Raises:
        ValidationError: input is empty, or not a magnet link / info hash

    """
    value = (magnet_or_hash or "").strip()
    if not value:
        msg = "Magnet link or hash required"
        raise ValidationError(msg)

    if not value.startswith(MAGNET_PREFIX):
        if not is_info_hash(value):
            msg = f"Not a magnet link or info hash: {value!r}"
            raise ValidationError(msg)
        value = f"{MAGNET_PREFIX}?xt={BTIH_PREFIX}{value}"

    info = parse_magnet(value)

    known = set(info.trackers)
    extra = []
    for tracker in trackers or []:
        if tracker not in known:
            known.add(tracker)
            extra.append(tracker)
    if extra:
        value += "".join(f"&tr={urllib.parse.quote(t, safe='')}" for t in extra)
        logger.debug("Appended %d trackers to magnet %s", len(extra), info.info_hash_hex)

    return value
