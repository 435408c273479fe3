"""Holder for the precomputed conversion (Pik) array."""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Optional, Sequence, Tuple

from settings import get_settings

PikRows = Tuple[Tuple[bool, ...], ...]


@dataclass(frozen=True)
class PikSnapshot:
    """Immutable view of the conversion array at one point in time."""

    ready: bool = False
    pik: PikRows = ()

    @property
    def rows(self) -> int:
        return len(self.pik)

    @property
    def columns(self) -> int:
        return len(self.pik[0]) if self.pik else 0

    def is_ready(self) -> bool:
        return self.ready

    def row(self, index: int) -> Tuple[bool, ...]:
        if 0 <= index < len(self.pik):
            return self.pik[index]
        return ()


class ConversionArray:
    """Relation provider gated by a readiness flag.

    The array is not ready until :meth:`load` has received a complete array
    (or one was found on disk at construction).
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self.persistence_path = persistence_path
        self._snapshot = PikSnapshot()
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def load(self, pik: Sequence[Sequence[bool]]) -> PikSnapshot:
        rows = tuple(tuple(bool(cell) for cell in row) for row in pik)
        if len({len(row) for row in rows}) > 1:
            raise ValueError("Conversion array rows must all have the same length.")
        snapshot = PikSnapshot(ready=True, pik=rows)
        with self._lock:
            self._snapshot = snapshot
            self._persist()
        return snapshot

    def reset(self) -> None:
        with self._lock:
            self._snapshot = PikSnapshot()
            if self.persistence_path and self.persistence_path.exists():
                self.persistence_path.unlink()

    def is_ready(self) -> bool:
        with self._lock:
            return self._snapshot.ready

    def snapshot(self) -> PikSnapshot:
        with self._lock:
            return self._snapshot

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {"pik": [list(row) for row in self._snapshot.pik]}
        self.persistence_path.write_text(json.dumps(payload))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text() or "{}")
        except (OSError, json.JSONDecodeError):
            return

        pik = data.get("pik")
        if isinstance(pik, list):
            rows = tuple(tuple(bool(cell) for cell in row) for row in pik)
            if len({len(row) for row in rows}) <= 1:
                self._snapshot = PikSnapshot(ready=True, pik=rows)


@lru_cache
def build_default_conversion_array(path: Optional[str] = None) -> ConversionArray:
    settings = get_settings()
    array_path = settings.conversion_array_path if path is None else path
    persistence = Path(array_path) if array_path else None
    return ConversionArray(persistence_path=persistence)
