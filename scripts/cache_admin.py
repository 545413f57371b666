#!/usr/bin/env python
"""
Judicial Cache Administration

Runs the admin CLI from a source checkout.
Usage:
    python scripts/cache_admin.py rebuild
    python scripts/cache_admin.py readiness --top 20
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from judicial_cache.cli import main

if __name__ == "__main__":
    sys.exit(main())
