#!/usr/bin/env python3
"""Entry point for ``python -m ccstream``."""

from __future__ import annotations

from ccstream.cli.main import cli


def main() -> None:
    """Run the ccstream command line interface."""
    cli()  # pylint: disable=no-value-for-parameter


if __name__ == "__main__":
    main()
