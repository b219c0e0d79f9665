"""JSON-backed persistence helpers for the back-office service.

Saved segments and the user directory snapshot are small enough to live in
plain JSON files. ``ListStore`` keeps those files consistent with atomic
writes and a rotating set of ``.bakN`` copies so that an interrupted write
never loses the previous state.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Sequence

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when a persistence operation fails."""


class ListStore:
    """JSON list store with atomic writes and backup recovery."""

    def __init__(
        self,
        path: Path | str,
        backups: int = 2,
        *,
        record_kind: str = "records",
    ) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.backups = max(0, backups)
        self.record_kind = record_kind

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------
    def _backup_path(self, index: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".bak{index}")

    def _candidate_paths(self) -> list[Path]:
        return [self.path] + [self._backup_path(idx) for idx in range(1, self.backups + 1)]

    def _read_json(self, path: Path) -> List[Dict[str, Any]] | None:
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"unable to read {self.record_kind} from {path.name}: {exc}") from exc
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable %s in %s", self.record_kind, path)
            return None
        return data if isinstance(data, list) else None

    def _write_json(self, path: Path, data: Sequence[Dict[str, Any]]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            payload = json.dumps(list(data), indent=2)
            with tmp_path.open("w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as exc:
            raise StoreError(f"unable to write {self.record_kind} to {path.name}: {exc}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

    def _rotate_backups(self) -> None:
        if self.backups <= 0:
            return
        for idx in range(self.backups, 0, -1):
            src = self.path if idx == 1 else self._backup_path(idx - 1)
            dest = self._backup_path(idx)
            if src.exists():
                try:
                    os.replace(src, dest)
                except OSError:
                    # Rotation is best effort; the new write still goes ahead.
                    logger.warning("Could not rotate backup %s", src.name)
                    continue

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> List[Dict[str, Any]]:
        for candidate in self._candidate_paths():
            data = self._read_json(candidate)
            if data is not None:
                if candidate != self.path:
                    logger.warning(
                        "Recovered %d %s from backup %s", len(data), self.record_kind, candidate.name
                    )
                return list(data)
        return []

    def first(self, predicate: Callable[[Dict[str, Any]], bool]) -> Dict[str, Any] | None:
        """The first stored record ``predicate`` accepts, or ``None``."""
        return next((item for item in self.load() if predicate(item)), None)

    def save(self, items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        snapshot = [dict(item) for item in items]
        self._rotate_backups()
        self._write_json(self.path, snapshot)
        return snapshot

    def mutate(
        self,
        mutator: Callable[[List[Dict[str, Any]]], Iterable[Dict[str, Any]] | None],
    ) -> List[Dict[str, Any]]:
        """Load, apply ``mutator`` and persist the outcome in one step.

        The mutator may edit the list in place (returning ``None``) or return
        a replacement iterable.
        """
        snapshot = self.load()
        outcome = mutator(snapshot)
        updated = snapshot if outcome is None else [dict(item) for item in outcome]
        self._rotate_backups()
        self._write_json(self.path, updated)
        return updated
