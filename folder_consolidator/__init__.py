"""
Folder Consolidator - merge or compress several source folders in one run.

Features:
- Merge many folders into one destination tree (colliding names get _1, _2, ...)
- Compress many folders into a single zip archive
- Progress reporting from a single background worker
- Optional deletion of the original folders after a successful run
- Operation history persisted in a small SQLite store
"""

__version__ = "1.0.0"
