#!/usr/bin/env python3
"""
Launcher script for gamepatcher.
Run this script to patch a game install without installing the package.
"""

import sys
import os

# Add the current directory to Python path so we can import gamepatcher
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from gamepatcher.main import main

if __name__ == "__main__":
    raise SystemExit(main())
