"""
dbsync - Pull a remote MySQL database into your local environment
"""

__version__ = "0.1.0"

from .core import DatabaseSync
from .errors import SyncError
from .orchestrator import SyncOrchestrator

__all__ = ["DatabaseSync", "SyncError", "SyncOrchestrator"]
