"""Append-only JSON Lines record of inbound and outbound traffic."""

from __future__ import annotations

import fcntl
import json
import os
from pathlib import Path

from sakhi_bridge.models import DeliveryEvent


def read_delivery_events(log_path: Path) -> list[DeliveryEvent]:
    """Load every event from a delivery log file, oldest first."""
    if not log_path.exists():
        return []
    return [
        DeliveryEvent.model_validate_json(line)
        for line in log_path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]


class DeliveryLogger:
    """Appends DeliveryEvents to a JSON Lines file with size-based rotation."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    @classmethod
    def from_env(cls, log_path: str) -> DeliveryLogger:
        max_bytes = int(os.environ.get("DELIVERY_LOG_MAX_BYTES", "10485760"))
        backup_count = int(os.environ.get("DELIVERY_LOG_BACKUP_COUNT", "5"))
        return cls(log_path=log_path, max_bytes=max_bytes, backup_count=backup_count)

    def _backup(self, index: int) -> Path:
        return self.log_path.parent / f"{self.log_path.name}.{index}"

    def _maybe_rotate(self) -> None:
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for i in range(self._backup_count - 1, 0, -1):
            if self._backup(i).exists():
                self._backup(i).rename(self._backup(i + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: DeliveryEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(
            json.loads(event.model_dump_json(exclude_none=True)),
            separators=(",", ":"),
            ensure_ascii=False,
        )

        # Rotation and append share one lock so concurrent writers never interleave
        lock_file = self.log_path.parent / f".{self.log_path.name}.lock"
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)
