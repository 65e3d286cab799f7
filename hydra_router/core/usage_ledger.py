"""
Per-(provider, model) usage ledger with atomic on-disk persistence
"""

import asyncio
import json
import os
from dataclasses import replace
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import quote

import aiofiles

from ..models.data_classes import UsageRecord
from ..utils.logging import setup_logging

logger = setup_logging()

WINDOW = timedelta(seconds=60)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _encode_part(value: str) -> str:
    return quote(value, safe="").replace("_", "%5F")


def window_expired(record: UsageRecord, now: datetime) -> bool:
    """True once 60 seconds or more have passed since the record's window start"""
    return now - record.window_start >= WINDOW


class UsageLedger:
    """Tracks tokens and requests per (provider, model) within a 60 s window.

    Updates to one key are serialized with that key's lock; different keys
    never wait on each other. The in-memory entry is swapped for a new
    record on every update, so readers get a consistent snapshot without
    taking a lock. The file write happens after the counter lock is
    released, under a per-key write lock that drops stale snapshots.
    """

    def __init__(self, state_dir: str = "usage_states",
                 clock: Optional[Callable[[], datetime]] = None):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.clock = clock or utcnow
        self.records: Dict[str, UsageRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._write_locks: Dict[str, asyncio.Lock] = {}
        self._persisted_versions: Dict[str, int] = {}

    def _get_combination_key(self, provider: str, model: str) -> str:
        """Generate unique key for a (provider, model) combination.

        Both parts are percent-encoded, underscores included, so the ``__``
        separator never occurs inside a part and the key is a safe file name.
        """
        return f"{_encode_part(provider)}__{_encode_part(model)}"

    def _get_lock(self, combination_key: str) -> asyncio.Lock:
        if combination_key not in self._locks:
            self._locks[combination_key] = asyncio.Lock()
        return self._locks[combination_key]

    def _get_write_lock(self, combination_key: str) -> asyncio.Lock:
        if combination_key not in self._write_locks:
            self._write_locks[combination_key] = asyncio.Lock()
        return self._write_locks[combination_key]

    def _get_file_path(self, combination_key: str) -> Path:
        return self.state_dir / f"{combination_key}.json"

    async def load(self) -> int:
        """
        Load every persisted record from the state directory

        Missing or unreadable files count as "no usage yet".

        Returns:
            Number of records loaded
        """
        loaded = 0

        if not self.state_dir.exists():
            logger.info("Usage state directory missing, starting empty", state_dir=str(self.state_dir))
            return 0

        for state_file in sorted(self.state_dir.glob("*.json")):
            try:
                async with aiofiles.open(state_file, 'r') as f:
                    content = await f.read()
                record = UsageRecord.from_dict(json.loads(content))
            except Exception as e:
                logger.warning("Ignoring unreadable usage record",
                             file_path=str(state_file), error=str(e))
                continue

            key = self._get_combination_key(record.provider, record.model)
            self.records[key] = record
            self._persisted_versions[key] = record.version
            loaded += 1

        logger.info("Loaded usage ledger", records=loaded, state_dir=str(self.state_dir))
        return loaded

    def get(self, provider: str, model: str) -> Optional[UsageRecord]:
        """Lock-free read of the stored record (may be slightly stale under concurrent writers)"""
        return self.records.get(self._get_combination_key(provider, model))

    async def record(self, provider: str, model: str, input_tokens: int,
                     output_tokens: int, is_error: bool = False) -> UsageRecord:
        """
        Account one completed attempt against the (provider, model) window

        Failed attempts count too: backends bill them.

        Returns:
            The updated record
        """
        combination_key = self._get_combination_key(provider, model)
        lock = self._get_lock(combination_key)

        async with lock:
            now = self.clock()
            current = self.records.get(combination_key)

            if current is None:
                current = UsageRecord(provider=provider, model=model, window_start=now)
            elif window_expired(current, now):
                current = replace(current, window_start=now, tokens_this_window=0,
                                  requests_this_window=0, errors_this_window=0)

            updated = replace(
                current,
                tokens_this_window=current.tokens_this_window + max(0, input_tokens) + max(0, output_tokens),
                requests_this_window=current.requests_this_window + 1,
                errors_this_window=current.errors_this_window + (1 if is_error else 0),
                last_request_time=now,
                version=current.version + 1,
            )
            self.records[combination_key] = updated

        await self._save_record(combination_key, updated)
        return updated

    async def _save_record(self, combination_key: str, record: UsageRecord):
        """Write a record atomically (temp file then rename); older snapshots are skipped"""
        async with self._get_write_lock(combination_key):
            if record.version <= self._persisted_versions.get(combination_key, 0):
                return

            file_path = self._get_file_path(combination_key)
            temp_path = file_path.with_suffix('.json.tmp')

            try:
                async with aiofiles.open(temp_path, 'w') as f:
                    await f.write(json.dumps(record.to_dict(), indent=2))

                os.replace(temp_path, file_path)
                self._persisted_versions[combination_key] = record.version

            except Exception as e:
                logger.error("Failed to save usage record",
                            combination=combination_key, error=str(e))

    def get_all_records(self) -> Dict[str, Dict[str, object]]:
        """All stored records for monitoring"""
        return {key: record.to_dict() for key, record in self.records.items()}
