"""
Entry point for running Cadence as a module.

Usage:
    python -m cadence weekly
    python -m cadence difficulty intervals
    python -m cadence --help
"""
from .cli.main import main

if __name__ == "__main__":
    main()
