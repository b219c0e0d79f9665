"""Local snapshot of the user directory consumed by the admin user list."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from segmentkit.models import UserRecord, UserStatus
from segmentkit.storage import ListStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserDirectory:
    path: str | Path
    backups: int = 2
    _store: ListStore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._store = ListStore(self.path, backups=self.backups, record_kind="user records")

    def all(self) -> list[UserRecord]:
        """Every readable user record; malformed rows are skipped and logged."""
        users: list[UserRecord] = []
        for row in self._store.load():
            try:
                users.append(UserRecord.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping malformed user row %r: %s", row.get("id"), exc.errors())
        return users

    def replace_all(self, users: Iterable[UserRecord]) -> list[UserRecord]:
        saved = self._store.save(user.model_dump() for user in users)
        return [UserRecord.model_validate(row) for row in saved]

    def set_status(self, user_ids: Iterable[str], status: UserStatus) -> list[str]:
        """Set ``status`` on the given users and return the ids actually changed."""
        targets = {str(uid) for uid in user_ids}
        changed: list[str] = []
        now_iso = datetime.datetime.now(datetime.UTC).isoformat()

        def mutator(items: list[dict]) -> None:
            for item in items:
                uid = str(item.get("id"))
                if uid in targets and item.get("status") != status:
                    item["status"] = status
                    item["updated_at"] = now_iso
                    changed.append(uid)

        if targets:
            self._store.mutate(mutator)
        return changed

