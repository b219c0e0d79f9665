"""Conversion from ad-hoc filter panel input to persistable segment criteria."""

from __future__ import annotations

from .models import FilterCriteria, FilterCriterion, UserFilters

# Emission order is fixed so identical filters always persist identically.
_LIST_FIELDS = ("roles", "status", "signup_source")
_TEXT_FIELDS = ("location", "search")


def to_filter_criteria(filters: UserFilters) -> FilterCriteria:
    """Express ``filters`` as an AND-combined ``FilterCriteria``.

    Each non-empty field yields exactly one condition: list fields become
    ``in`` tests, text fields become case-insensitive ``contains`` tests.
    """

    conditions: list[FilterCriterion] = []
    for name in _LIST_FIELDS:
        values = list(getattr(filters, name))
        if values:
            conditions.append(FilterCriterion(field=name, operator="in", value=values))
    for name in _TEXT_FIELDS:
        text = getattr(filters, name)
        if text:
            conditions.append(FilterCriterion(field=name, operator="contains", value=text))
    return FilterCriteria(conditions=conditions, conjunction="and")
