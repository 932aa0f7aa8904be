"""Pytest bootstrap ensuring the in-repo excimetry package is imported.

If an older excimetry is installed in site-packages, running a single test
file directly could pick that one up first. Prepending the repository root
keeps the working tree authoritative.
"""

import os, sys

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)
