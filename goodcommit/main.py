"""``goodcommit`` console script: print a commit message for the staged changes."""

import sys

from .cli import main as cli_main


def main() -> int:
    """Run the CLI with ``sys.argv`` and return its exit code (nothing is committed)."""
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
