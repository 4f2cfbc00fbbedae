"""
Persistence sink for crawl results and feed check summaries.
"""

from .database import (
    ResultSink, StorageOutcome, StorageBackend, FileStorageBackend, NullStorageBackend
)

__all__ = ['ResultSink', 'StorageOutcome', 'StorageBackend', 'FileStorageBackend', 'NullStorageBackend']
