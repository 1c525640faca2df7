"""
Backup storage for legacy records captured before migration.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from loguru import logger

from strategies.migration.legacy_models import LegacyRecord


@dataclass(frozen=True)
class BackupEntry:
    """Snapshot of a legacy record and when it was taken."""
    backup_id: str
    record: LegacyRecord
    created_at: datetime


class BackupStore(ABC):
    """Keyed store of legacy record snapshots."""

    @abstractmethod
    def put(self, backup_id: str, record: LegacyRecord) -> BackupEntry:
        """Store a snapshot under `backup_id`."""
        pass

    @abstractmethod
    def get(self, backup_id: str) -> Optional[BackupEntry]:
        """Snapshot stored under `backup_id`, None when absent or expired."""
        pass

    @abstractmethod
    def delete(self, backup_id: str) -> bool:
        """Remove a snapshot; True when something was removed."""
        pass

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop snapshots past retention; returns how many were dropped."""
        pass

    def __contains__(self, backup_id: str) -> bool:
        return self.get(backup_id) is not None


class InMemoryBackupStore(BackupStore):
    """
    Backup store held in process memory.

    Snapshots older than `retention_days` are treated as gone; None keeps
    them until deleted.
    """

    def __init__(
        self,
        retention_days: Optional[float] = 30,
        clock: Callable[[], datetime] = None
    ):
        """
        Initialize backup store.

        Args:
            retention_days: How long backups stay available (None = forever)
            clock: Returns the current UTC time
        """
        self.retention = timedelta(days=retention_days) if retention_days is not None else None
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: Dict[str, BackupEntry] = {}

        logger.debug(f"InMemoryBackupStore initialized (retention: {retention_days} days)")

    def _expired(self, entry: BackupEntry) -> bool:
        if self.retention is None:
            return False
        return self.clock() - entry.created_at > self.retention

    def put(self, backup_id: str, record: LegacyRecord) -> BackupEntry:
        entry = BackupEntry(backup_id=backup_id, record=record, created_at=self.clock())
        self._entries[backup_id] = entry
        return entry

    def get(self, backup_id: str) -> Optional[BackupEntry]:
        entry = self._entries.get(backup_id)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[backup_id]
            logger.info(f"Backup {backup_id} expired")
            return None
        return entry

    def delete(self, backup_id: str) -> bool:
        return self._entries.pop(backup_id, None) is not None

    def purge_expired(self) -> int:
        expired = [bid for bid, entry in self._entries.items() if self._expired(entry)]
        for backup_id in expired:
            del self._entries[backup_id]

        if expired:
            logger.info(f"Purged {len(expired)} expired backups")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
