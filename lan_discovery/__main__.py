"""
Entry point for running lan_discovery as a module.

This allows the package to be executed with: python -m lan_discovery
"""

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
