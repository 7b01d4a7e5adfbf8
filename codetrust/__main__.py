"""
Allow running codetrust as a module: ``python -m codetrust``.

Delegates to the CLI entry point so that the ``codetrust`` console script
and ``python -m codetrust`` behave identically.
"""

import sys

from codetrust.cli import main

if __name__ == "__main__":
    sys.exit(main())
