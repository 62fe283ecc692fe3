"""Pytest bootstrap ensuring the in-repo rds_os_metrics package is imported.

Without this, an older installed copy in site-packages could be resolved first
when running a single test file directly.
"""

import os, sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    # Prepend so it wins over any site-packages installation
    sys.path.insert(0, REPO_ROOT)
