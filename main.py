"""Main entry point for IntuneForge."""

import sys

from intuneforge.cli import main


if __name__ == "__main__":
    main(sys.argv[1:])
