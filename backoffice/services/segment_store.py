"""Saved segment persistence on top of the JSON list store."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional
from uuid import uuid4

from pydantic import ValidationError

from segmentkit.models import SavedSegment, SegmentCreateModel
from segmentkit.storage import ListStore, StoreError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _parse_segment(row: Mapping) -> SavedSegment:
    try:
        return SavedSegment.model_validate(row)
    except ValidationError as exc:
        raise StoreError(f"malformed segment record {row.get('id')!r}") from exc


def _created_moment(segment: SavedSegment) -> datetime.datetime:
    """``created_at`` as an aware datetime; naive stamps are taken as UTC."""
    try:
        moment = datetime.datetime.fromisoformat(segment.created_at)
    except ValueError as exc:
        raise StoreError(
            f"segment {segment.id!r} has an invalid created_at {segment.created_at!r}"
        ) from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.UTC)
    return moment


@dataclass(slots=True)
class SegmentRepository:
    """Append-only access to the ``saved_segments`` records.

    Segments can be created and listed; there is no update or delete.
    """

    path: str | Path
    backups: int = 2
    store: Optional[ListStore] = None
    clock: Callable[[], datetime.datetime] = _utcnow
    _store: ListStore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._store = self.store or ListStore(
            self.path, backups=self.backups, record_kind="saved segments"
        )

    def list_segments(self) -> list[SavedSegment]:
        """All segments, newest first. Raises ``StoreError`` on read failure."""
        segments = [_parse_segment(row) for row in self._store.load()]
        # Equal timestamps list the later-saved segment first.
        ranked = sorted(
            enumerate(segments),
            key=lambda pair: (_created_moment(pair[1]), pair[0]),
            reverse=True,
        )
        return [segment for _, segment in ranked]

    def get_segment(self, segment_id: str) -> Optional[SavedSegment]:
        target = str(segment_id)
        row = self._store.first(lambda item: str(item.get("id")) == target)
        return _parse_segment(row) if row is not None else None

    def create_segment(
        self,
        payload: SegmentCreateModel | Mapping,
        created_by: str | None = None,
    ) -> SavedSegment:
        """Validate and persist a new segment.

        Validation runs before the store is touched, so an empty name raises
        ``pydantic.ValidationError`` without any write.
        """
        if not isinstance(payload, SegmentCreateModel):
            payload = SegmentCreateModel.model_validate(dict(payload))
        now_iso = self.clock().isoformat()
        segment = SavedSegment(
            id=str(uuid4()),
            name=payload.name,
            description=payload.description,
            filter_criteria=payload.filter_criteria,
            created_by=created_by,
            created_at=now_iso,
            updated_at=now_iso,
        )
        record = segment.to_payload()

        def mutator(items: list[dict]) -> None:
            items.append(record)

        self._store.mutate(mutator)
        logger.info(
            "Saved segment %s (%s) with %d condition(s)",
            segment.id,
            segment.name,
            len(segment.filter_criteria.conditions),
        )
        return segment
