# File: crudforge/__main__.py
"""
crudforge: Module entry point.

Allows running the generator directly via::

    python -m crudforge -m orders.yaml -o ./app

This module simply delegates to the CLI entry point defined in ``crudforge.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from crudforge.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
