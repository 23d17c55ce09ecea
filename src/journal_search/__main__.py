"""Entry point for ``python -m journal_search``."""

import sys

from journal_search.cli import main

if __name__ == "__main__":
    sys.exit(main())
