"""
Entry point for running hybrid_rag as a module.

    python -m hybrid_rag --help
"""

import sys

from hybrid_rag.cli import main

if __name__ == "__main__":
    sys.exit(main())
