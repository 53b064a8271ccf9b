"""CLI entry point for spectre-lsp."""

import sys


def main() -> int:
    """Main entry point for the spectre-lsp CLI."""
    from spectre_lsp.cli import run_cli

    return run_cli(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
