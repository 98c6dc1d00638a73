#!/usr/bin/env python3
"""
Cache Monitor Runner

Usage:
    python scripts/monitor_cache.py
    python scripts/monitor_cache.py --interval 10 --duration 300
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from replivity.cli.monitor import main


if __name__ == "__main__":
    sys.exit(main())
