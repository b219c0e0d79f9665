"""User segmentation helpers shared by the back-office services."""

from .storage import ListStore, StoreError  # noqa: F401
from .models import (
    FilterCriteria,
    FilterCriterion,
    SavedSegment,
    SegmentCreateModel,
    UserFilters,
    UserRecord,
)
from .criteria import to_filter_criteria
from .evaluator import apply_filter_criteria, apply_user_filters

__all__ = [
    "ListStore",
    "StoreError",
    "FilterCriteria",
    "FilterCriterion",
    "SavedSegment",
    "SegmentCreateModel",
    "UserFilters",
    "UserRecord",
    "to_filter_criteria",
    "apply_filter_criteria",
    "apply_user_filters",
]
