"""Command-line entry point: ``python -m pdm_fitting``."""
import sys

from pdm_fitting.cli import main

if __name__ == "__main__":
    sys.exit(main())
