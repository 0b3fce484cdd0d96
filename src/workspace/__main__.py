"""Entry point for running the workspace CLI as a module.

Allows running with: python -m src.workspace
"""

import sys

from src.workspace.cli import main

if __name__ == "__main__":
    sys.exit(main())
