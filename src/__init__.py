"""
Album Tracker - Source Package

Store layer of a project tracker for an album production: tasks and
expenses kept in either device-local storage or a remote live-synced
document store, with budget figures rolled up from the task tree.

DESIGN PRINCIPLES:
1. One mutation contract, whichever backend is active
2. Remote data is replaced wholesale, never patched
3. Budget figures are derived, never stored
4. Failures come back to the caller as typed results
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Album Tracker Team"
