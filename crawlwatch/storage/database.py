"""
Persistence sink for crawl results and feed check summaries.

The sink never raises to its caller: a storage failure is reported in a
StorageOutcome next to the otherwise successful result.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass
from datetime import datetime, timezone

from ..errors import StorageError
from ..utils.config import StorageConfig
from ..utils.urls import extract_domain, sanitize_filename


@dataclass
class StorageOutcome:
    """Result of one store() call."""
    success: bool
    location: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.success, 'location': self.location, 'error': self.error}


class StorageBackend:
    """Abstract base class for storage backends."""

    async def initialize(self):
        """Initialize the storage backend."""
        raise NotImplementedError

    async def store(self, record: Dict[str, Any]) -> Optional[str]:
        """Persist a record and return where it went."""
        raise NotImplementedError

    async def get_stats(self) -> Dict[str, Any]:
        """Get storage statistics."""
        raise NotImplementedError

    async def close(self):
        """Close storage connections."""
        pass


class NullStorageBackend(StorageBackend):
    """Acknowledges every record without writing anything."""

    def __init__(self):
        self.stats = {'total_stored': 0}

    async def initialize(self):
        pass

    async def store(self, record: Dict[str, Any]) -> Optional[str]:
        self.stats['total_stored'] += 1
        return None

    async def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()


class FileStorageBackend(StorageBackend):
    """
    JSON-file storage.

    Crawl results go to ``<dir>/<domain>/<timestamp>.json`` and feed check
    summaries to ``<dir>/rss_checks/<timestamp>.json``.
    """

    def __init__(self, data_directory: str):
        self.data_directory = Path(data_directory)
        self.logger = logging.getLogger(__name__)
        self.stats = {
            'total_stored': 0,
            'storage_errors': 0,
            'total_size_bytes': 0
        }

    async def initialize(self):
        """Create data directory and load saved statistics."""
        try:
            self.data_directory.mkdir(parents=True, exist_ok=True)

            stats_file = self.data_directory / 'stats.json'
            if stats_file.exists():
                with open(stats_file, 'r') as f:
                    self.stats.update(json.load(f))

            self.logger.info(f"File storage initialized at {self.data_directory}")

        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to initialize file storage: {e}")

    def _get_file_path(self, record: Dict[str, Any]) -> Path:
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%dT%H-%M-%S-%fZ')
        if record.get('type') == 'rss_check':
            folder = 'rss_checks'
        else:
            url = record.get('url') or record.get('start_url') or ''
            folder = sanitize_filename(extract_domain(url) or 'unknown')
        return self.data_directory / folder / f"{timestamp}.json"

    async def store(self, record: Dict[str, Any]) -> Optional[str]:
        """Write record to a JSON file."""
        try:
            file_path = self._get_file_path(record)
            data = dict(record)
            data['stored_at'] = datetime.now(timezone.utc).isoformat()
            size = await asyncio.to_thread(self._write_json, file_path, data)

            self.stats['total_stored'] += 1
            self.stats['total_size_bytes'] += size
            await asyncio.to_thread(self._write_json, self.data_directory / 'stats.json', self.stats)

            self.logger.debug(f"Stored record to {file_path}")
            return str(file_path)

        except (OSError, TypeError, ValueError) as e:
            self.stats['storage_errors'] += 1
            raise StorageError(f"Error storing record: {e}")

    @staticmethod
    def _write_json(file_path: Path, data: Dict[str, Any]) -> int:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        return file_path.stat().st_size

    async def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()


class ResultSink:
    """Main interface for persisting results; picks the backend from config."""

    def __init__(self, config: StorageConfig, backend: Optional[StorageBackend] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        if backend is not None:
            self.backend = backend
        elif config.type == 'file':
            self.backend = FileStorageBackend(config.directory)
        else:
            self.backend = NullStorageBackend()
        self._initialized = False

    async def initialize(self):
        """Initialize the backend once."""
        if not self._initialized:
            await self.backend.initialize()
            self._initialized = True

    async def store(self, record: Dict[str, Any]) -> StorageOutcome:
        """Persist record; failures are returned, never raised."""
        try:
            await self.initialize()
            location = await self.backend.store(record)
            return StorageOutcome(success=True, location=location)
        except Exception as e:
            self.logger.error(f"Storage error: {e}")
            return StorageOutcome(success=False, error=str(e))

    async def get_stats(self) -> Dict[str, Any]:
        return await self.backend.get_stats()

    async def close(self):
        await self.backend.close()
