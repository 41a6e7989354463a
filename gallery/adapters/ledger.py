"""
JSON file ledger of upload records.

The whole ledger is a single JSON array, newest entry first. Every append
rewrites the file through a temporary sibling and `os.replace`, so readers
see either the previous or the new document and never a truncated one.
Appends in one process are serialised by a lock per ledger path; writers in
separate processes are not coordinated.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Sequence

from pydantic import TypeAdapter, ValidationError

from gallery.domain.models import UploadRecord

logger = logging.getLogger(__name__)

# mkstemp would otherwise leave the replaced ledger owner-only.
LEDGER_FILE_MODE = 0o644

_records_adapter = TypeAdapter(List[UploadRecord])
_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()


class LedgerError(Exception):
    """Raised when the ledger file cannot be read, parsed or written."""


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.expanduser().resolve())
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


class JsonLedger:
    """Newest-first list of `UploadRecord` persisted as one JSON document."""

    def __init__(self, path):
        self.path = Path(path)
        self._lock = _lock_for(self.path)

    def ensure(self) -> None:
        """Create an empty ledger if none exists yet."""
        with self._lock:
            if not self.path.exists():
                self._persist([])
                logger.info("Created empty ledger at %s", self.path)

    def load(self) -> List[UploadRecord]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise LedgerError(f"Cannot read ledger {self.path}: {exc}") from exc

        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise LedgerError(f"Ledger {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise LedgerError(f"Ledger {self.path} must contain a JSON array")
        try:
            return _records_adapter.validate_python(data)
        except ValidationError as exc:
            raise LedgerError(f"Ledger {self.path} has invalid entries: {exc}") from exc

    def append_batch(self, records: Sequence[UploadRecord]) -> List[UploadRecord]:
        """
        Insert `records` in front of the existing entries and persist.

        `records` must already be newest first; their relative order is kept
        and existing entries follow unchanged. Returns the full sequence.
        """
        with self._lock:
            current = self.load()
            if not records:
                if not self.path.exists():
                    self._persist(current)
                return current
            updated = list(records) + current
            self._persist(updated)
        logger.info("Ledger appended count=%d total=%d", len(records), len(updated))
        return updated

    def _persist(self, records: Sequence[UploadRecord]) -> None:
        payload = json.dumps(
            [record.to_json() for record in records], indent=2, ensure_ascii=False
        )
        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
        except OSError as exc:
            raise LedgerError(f"Cannot prepare ledger {self.path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.chmod(tmp_name, LEDGER_FILE_MODE)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise LedgerError(f"Cannot write ledger {self.path}: {exc}") from exc
