"""Predicate evaluation over in-memory user lists.

Two entry points share the same comparison helpers:

* ``apply_user_filters`` runs the ad-hoc filter panel input.
* ``apply_filter_criteria`` runs a saved segment's condition list.

Conditions are resolved through a declarative table. A ``(field, operator)``
entry wins first; otherwise the operator's default comparison is applied to
the named ``UserRecord`` attribute. Conditions naming a field the record does
not have are not applied at all (they match every user), so a segment saved
against an older or richer schema never hides users by accident.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from .models import FilterCriteria, FilterCriterion, UserFilters, UserRecord

Comparison = Callable[[Any, Any], bool]
FieldPredicate = Callable[[UserRecord, Any], bool]
UserCheck = Callable[[UserRecord], bool]

SEARCH_FIELDS = ("email", "first_name", "last_name", "company")
CUSTOM_ATTRIBUTE_PREFIX = "custom_attributes."

_UNKNOWN = object()


# ---------------------------------------------------------------------------
# Comparisons
# ---------------------------------------------------------------------------
def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    return actual == expected


def _contains(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, str) or not isinstance(expected, str):
        return False
    return expected.lower() in actual.lower()


def _greater_than(actual: Any, expected: Any) -> bool:
    return _is_number(actual) and _is_number(expected) and actual > expected


def _less_than(actual: Any, expected: Any) -> bool:
    return _is_number(actual) and _is_number(expected) and actual < expected


def _member_of(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, list) or actual is None:
        return False
    if isinstance(actual, (list, tuple, set, frozenset)):
        return any(_member_of(item, expected) for item in actual)
    return any(_equals(actual, candidate) for candidate in expected)


OPERATORS: dict[str, Comparison] = {
    "equals": _equals,
    "not_equals": lambda actual, expected: not _equals(actual, expected),
    "contains": _contains,
    "not_contains": lambda actual, expected: not _contains(actual, expected),
    "greater_than": _greater_than,
    "less_than": _less_than,
    "in": _member_of,
    "not_in": lambda actual, expected: not _member_of(actual, expected),
    "is_null": lambda actual, _expected: actual is None,
    "is_not_null": lambda actual, _expected: actual is not None,
}


# ---------------------------------------------------------------------------
# Field-specific predicates
# ---------------------------------------------------------------------------
def _search_matches(user: UserRecord, needle: Any) -> bool:
    return any(_contains(getattr(user, name), needle) for name in SEARCH_FIELDS)


FIELD_PREDICATES: dict[tuple[str, str], FieldPredicate] = {
    ("spend", "greater_than"): lambda user, value: _greater_than(user.spend, value),
    ("status", "equals"): lambda user, value: user.status is not None and user.status == value,
    ("search", "contains"): _search_matches,
    ("search", "not_contains"): lambda user, value: not _search_matches(user, value),
}


def _resolve_custom(attributes: Mapping[str, Any], path: str) -> Any:
    current: Any = attributes
    for key in path.split("."):
        if not isinstance(current, Mapping) or key not in current:
            return None
        current = current[key]
    return current


def resolve_field(user: UserRecord, field: str) -> Any:
    """Return the value ``field`` names on ``user``, or ``_UNKNOWN``."""

    if field in UserRecord.model_fields:
        return getattr(user, field)
    if field.startswith(CUSTOM_ATTRIBUTE_PREFIX) and len(field) > len(CUSTOM_ATTRIBUTE_PREFIX):
        return _resolve_custom(user.custom_attributes, field[len(CUSTOM_ATTRIBUTE_PREFIX):])
    return _UNKNOWN


def evaluate_condition(user: UserRecord, condition: FilterCriterion) -> bool:
    special = FIELD_PREDICATES.get((condition.field, condition.operator))
    if special is not None:
        return special(user, condition.value)
    actual = resolve_field(user, condition.field)
    if actual is _UNKNOWN:
        return True
    return OPERATORS[condition.operator](actual, condition.value)


def matches_criteria(user: UserRecord, criteria: FilterCriteria) -> bool:
    if not criteria.conditions:
        return True
    outcomes = (evaluate_condition(user, condition) for condition in criteria.conditions)
    if criteria.conjunction == "or":
        return any(outcomes)
    return all(outcomes)


def apply_filter_criteria(users: Iterable[UserRecord], criteria: FilterCriteria) -> list[UserRecord]:
    """Return the users matching ``criteria``, in their original order."""

    return [user for user in users if matches_criteria(user, criteria)]


# ---------------------------------------------------------------------------
# Ad-hoc filters
# ---------------------------------------------------------------------------
def _membership_check(attribute: str, wanted: Iterable[str]) -> UserCheck:
    allowed = set(wanted)

    def check(user: UserRecord) -> bool:
        value = getattr(user, attribute)
        if isinstance(value, list):
            return bool(allowed.intersection(value))
        return value in allowed

    return check


def _user_filter_checks(filters: UserFilters) -> list[UserCheck]:
    checks: list[UserCheck] = []
    for attribute in ("roles", "status", "signup_source"):
        wanted = getattr(filters, attribute)
        if wanted:
            checks.append(_membership_check(attribute, wanted))
    if filters.location:
        location = filters.location
        checks.append(lambda user: _contains(user.location, location))
    if filters.search:
        search = filters.search
        checks.append(lambda user: _search_matches(user, search))
    return checks


def apply_user_filters(users: Iterable[UserRecord], filters: UserFilters) -> list[UserRecord]:
    """Return the users satisfying every non-empty field of ``filters``."""

    checks = _user_filter_checks(filters)
    return [user for user in users if all(check(user) for check in checks)]
