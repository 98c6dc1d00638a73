#!/usr/bin/env python3
"""
Cache Warmup Runner

Warms the Replivity cache from a checkout without installing the package.

Usage:
    # Set environment variables first:
    export DATABASE_URL=postgresql://...
    export REDIS_URL=redis://localhost:6379/0

    # Warm common data:
    python scripts/warmup_cache.py

    # With users:
    python scripts/warmup_cache.py --users "user1,user2" --batch-size 5 --verbose
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from replivity.cli.warmup import main


if __name__ == "__main__":
    sys.exit(main())
