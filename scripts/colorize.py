#!/usr/bin/env python3
"""
Colorize scanner point clouds with thermal images.

Usage:
    python scripts/colorize.py project.yaml thermal/ las/ --config configs/default.yaml
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from thermocolor.cli import main

if __name__ == "__main__":
    sys.exit(main())
