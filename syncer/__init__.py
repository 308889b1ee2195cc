"""
syncer - keeps a timestamped snapshot history of a working directory using rsync.
"""

__version__ = "0.1.0"
