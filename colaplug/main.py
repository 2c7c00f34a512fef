from __future__ import annotations

import sys

from colaplug.plugin_system import cli


def main() -> None:
    """Main entry point for the colaplug command."""
    sys.exit(cli.main())


if __name__ == "__main__":
    main()
