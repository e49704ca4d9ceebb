"""Checkpoint stores for per-trigger polling watermarks."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from sftrigger.core.config import settings


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CheckpointStore(ABC):
    """Persists the last polled watermark for each trigger instance."""

    @abstractmethod
    def get(self, trigger_id: str) -> Optional[datetime]:
        """Return the checkpoint for a trigger, or None before its first poll."""

    @abstractmethod
    def set(self, trigger_id: str, checkpoint: datetime) -> None:
        """Overwrite the checkpoint for a trigger."""

    @abstractmethod
    def delete(self, trigger_id: str) -> None:
        """Forget a trigger's checkpoint so the next poll starts fresh."""


class MemoryCheckpointStore(CheckpointStore):
    """Dict-backed store for tests and one-shot runs."""

    def __init__(self, initial: Optional[Dict[str, datetime]] = None):
        self._data: Dict[str, datetime] = {k: ensure_utc(v) for k, v in (initial or {}).items()}

    def get(self, trigger_id: str) -> Optional[datetime]:
        return self._data.get(trigger_id)

    def set(self, trigger_id: str, checkpoint: datetime) -> None:
        self._data[trigger_id] = ensure_utc(checkpoint)

    def delete(self, trigger_id: str) -> None:
        self._data.pop(trigger_id, None)


class FileCheckpointStore(CheckpointStore):
    """Keeps one JSON file per trigger in a directory."""

    def __init__(self, checkpoint_dir: Optional[str] = None):
        self.checkpoint_dir = Path(checkpoint_dir or settings.CHECKPOINT_DIR)
        self.checkpoint_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, trigger_id: str) -> Path:
        return self.checkpoint_dir / f"{trigger_id}.json"

    def get(self, trigger_id: str) -> Optional[datetime]:
        checkpoint_file = self._path(trigger_id)
        if not checkpoint_file.exists():
            return None

        with open(checkpoint_file, "r") as f:
            data = json.load(f)
        value = data.get("checkpoint")
        return ensure_utc(datetime.fromisoformat(value)) if value else None

    def set(self, trigger_id: str, checkpoint: datetime) -> None:
        data = {
            "checkpoint": ensure_utc(checkpoint).isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }
        with open(self._path(trigger_id), "w") as f:
            json.dump(data, f, indent=2)

    def delete(self, trigger_id: str) -> None:
        checkpoint_file = self._path(trigger_id)
        if checkpoint_file.exists():
            checkpoint_file.unlink()
