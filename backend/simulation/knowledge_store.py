"""
Persistence for learned Q-tables.

Snapshots are written as JSON files, one per color, next to a metadata file
used to resume batch training. Every few saves the snapshots can also be
pushed to a remote endpoint. Remote backups run on background threads and
report failures through a callback; nothing here ever blocks or breaks
training.
"""

import json
import logging
import os
import threading
import time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_METADATA = {
    "completed_episodes": 0,
    "exploration_rate": None,
    "white_wins": 0,
    "black_wins": 0,
    "draws": 0,
    "training_seconds": 0
}


class KnowledgeStore:
    """
    Stores Q-table snapshots under save_path and optionally backs them up to
    backup_url every backup_interval saves.
    """

    def __init__(self, save_path: str, backup_url: Optional[str] = None, backup_interval: int = 10,
                 on_error: Optional[Callable[[str, Exception], None]] = None, timeout: float = 10):
        self.save_path = save_path
        self.backup_url = backup_url
        self.backup_interval = max(1, backup_interval)
        self.on_error = on_error
        self.timeout = timeout
        self.save_count = 0
        # Latest saved snapshot per color; every remote backup carries all of them
        self.latest: Dict[str, Dict[str, Any]] = {}
        self.last_backup: Optional[float] = None
        self._threads = []

        os.makedirs(save_path, exist_ok=True)

        if backup_url:
            logger.info(f"Remote backup enabled (every {self.backup_interval} saves)")

    def table_path(self, color: str) -> str:
        return os.path.join(self.save_path, f"{color}_q_table.json")

    @property
    def metadata_path(self) -> str:
        return os.path.join(self.save_path, "metadata.json")

    def _report_error(self, operation: str, error: Exception) -> None:
        logger.error(f"Knowledge {operation} failed: {error}")
        if self.on_error is not None:
            try:
                self.on_error(operation, error)
            except Exception:
                logger.exception("Error callback raised")

    def save(self, color: str, snapshot: Dict[str, Any]) -> bool:
        """Write a snapshot to disk. Returns False if the write failed."""
        path = self.table_path(color)
        tmp_path = path + ".tmp"
        try:
            with open(tmp_path, 'w') as f:
                json.dump(snapshot, f)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            self._report_error("save", e)
            return False

        logger.debug(f"Saved {color} Q-table to {path}")
        self.latest[color] = snapshot
        self.save_count += 1
        if self.backup_url and self.save_count % self.backup_interval == 0:
            self.backup_async(dict(self.latest))
        return True

    def load(self, color: str) -> Optional[Dict[str, Any]]:
        """Read a stored snapshot, or None when there is none or it cannot be read."""
        path = self.table_path(color)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            self._report_error("load", e)
            return None

    def __call__(self, color: str, snapshot: Dict[str, Any]) -> None:
        """Persistence hook signature used by the training loop."""
        self.save(color, snapshot)

    def backup(self, payload: Dict[str, Any]) -> bool:
        """Send snapshots to the remote endpoint. Blocking."""
        if not self.backup_url:
            return False
        try:
            response = requests.post(
                self.backup_url,
                json={"timestamp": time.time(), "knowledge": payload},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            self._report_error("backup", e)
            return False

        self.last_backup = time.time()
        logger.info(f"Backed up {', '.join(payload)} Q-table(s) to {self.backup_url}")
        return True

    def backup_async(self, payload: Dict[str, Any]) -> threading.Thread:
        """Run backup() on a daemon thread and return immediately."""
        thread = threading.Thread(target=self.backup, args=(payload,), daemon=True)
        thread.start()
        self._threads = [t for t in self._threads if t.is_alive()] + [thread]
        return thread

    def wait_for_backups(self, timeout: Optional[float] = None) -> None:
        """Join pending backup threads. Used on shutdown and in tests."""
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

    def save_metadata(self, metadata: Dict[str, Any]) -> None:
        """Save training metadata to track progress."""
        try:
            with open(self.metadata_path, 'w') as f:
                json.dump(metadata, f)
        except OSError as e:
            self._report_error("metadata save", e)

    def load_metadata(self) -> Dict[str, Any]:
        """Load training metadata, falling back to a fresh record."""
        metadata = dict(DEFAULT_METADATA)
        if os.path.exists(self.metadata_path):
            try:
                with open(self.metadata_path, 'r') as f:
                    metadata.update(json.load(f))
            except (OSError, ValueError) as e:
                self._report_error("metadata load", e)
        return metadata
