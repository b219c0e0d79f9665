"""View state for the admin user list.

Ad-hoc filters and an active saved segment never apply together: every
update function below returns a new ``UserListState`` in which at most one of
them is set.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import ValidationError

from .evaluator import apply_filter_criteria, apply_user_filters
from .models import SavedSegment, UserFilters, UserRecord


@dataclass(frozen=True)
class UserListState:
    filters: UserFilters = field(default_factory=UserFilters)
    active_segment_id: Optional[str] = None
    selected_ids: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "filters": self.filters.model_dump(),
            "active_segment_id": self.active_segment_id,
            "selected_ids": list(self.selected_ids),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "UserListState":
        """Rebuild a state from ``to_payload`` output; bad input yields a blank state."""
        if not isinstance(payload, Mapping):
            return cls()
        try:
            filters = UserFilters.model_validate(payload.get("filters") or {})
        except ValidationError:
            return cls()
        state = with_filters(cls(), filters)
        segment_id = payload.get("active_segment_id")
        if segment_id:
            state = with_active_segment(state, segment_id)
        return with_selection(state, payload.get("selected_ids") or ())


def with_filters(state: UserListState, filters: UserFilters) -> UserListState:
    return replace(state, filters=filters, active_segment_id=None)


def with_active_segment(state: UserListState, segment_id: Optional[str]) -> UserListState:
    if not segment_id:
        return replace(state, active_segment_id=None)
    return replace(state, filters=UserFilters(), active_segment_id=str(segment_id))


def with_selection(state: UserListState, ids: Iterable[str]) -> UserListState:
    # Keep first occurrence order, drop duplicates.
    return replace(state, selected_ids=tuple(dict.fromkeys(str(uid) for uid in ids)))


def cleared(state: UserListState) -> UserListState:
    return UserListState()


def visible_users(
    state: UserListState,
    users: Sequence[UserRecord],
    segments: Iterable[SavedSegment],
) -> list[UserRecord]:
    """Users the list should show for ``state``.

    An active segment id that no longer matches a saved segment falls back to
    the ad-hoc filters, which are empty whenever a segment was activated.
    """

    if state.active_segment_id:
        for segment in segments:
            if segment.id == state.active_segment_id:
                return apply_filter_criteria(users, segment.filter_criteria)
    return apply_user_filters(users, state.filters)


def selected_or_visible(state: UserListState, visible: Sequence[UserRecord]) -> list[UserRecord]:
    if not state.selected_ids:
        return list(visible)
    wanted = set(state.selected_ids)
    return [user for user in visible if user.id in wanted]
