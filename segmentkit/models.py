"""Pydantic models shared by the filtering core and the Flask API."""

from __future__ import annotations

from typing import Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    field_validator,
    model_validator,
)

UserStatus = Literal["active", "inactive", "suspended", "pending"]
Conjunction = Literal["and", "or"]
Operator = Literal[
    "equals",
    "not_equals",
    "contains",
    "not_contains",
    "greater_than",
    "less_than",
    "in",
    "not_in",
    "is_null",
    "is_not_null",
]
ValueKind = Literal["scalar", "text", "number", "list", "none"]

Scalar = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

# The operator decides which shape of value a criterion may carry.
OPERATOR_VALUE_KINDS: dict[str, ValueKind] = {
    "equals": "scalar",
    "not_equals": "scalar",
    "contains": "text",
    "not_contains": "text",
    "greater_than": "number",
    "less_than": "number",
    "in": "list",
    "not_in": "list",
    "is_null": "none",
    "is_not_null": "none",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _value_fits(kind: ValueKind, value: Any) -> bool:
    if kind == "none":
        return value is None
    if kind == "list":
        return isinstance(value, list)
    if kind == "text":
        return isinstance(value, str)
    if kind == "number":
        return _is_number(value)
    return value is not None and not isinstance(value, list)


class UserRecord(BaseModel):
    """Read-only projection of a user profile row."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    roles: list[str] = Field(default_factory=list)
    status: Optional[UserStatus] = None
    location: Optional[str] = None
    signup_source: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    spend: Optional[float] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    custom_attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("roles", "custom_attributes", mode="before")
    @classmethod
    def none_as_empty(cls, value, info):
        if value is None:
            return {} if info.field_name == "custom_attributes" else []
        return value


class UserFilters(BaseModel):
    """Ad-hoc filters from the admin filter panel. Empty fields are ignored."""

    model_config = ConfigDict(frozen=True)

    roles: list[str] = Field(default_factory=list)
    status: list[UserStatus] = Field(default_factory=list)
    signup_source: list[str] = Field(default_factory=list)
    location: str = ""
    search: str = ""

    @field_validator("roles", "status", "signup_source", mode="before")
    @classmethod
    def none_as_empty_list(cls, value):
        return [] if value is None else value

    @field_validator("location", "search", mode="before")
    @classmethod
    def none_as_empty_text(cls, value):
        return "" if value is None else value

    @property
    def is_empty(self) -> bool:
        return not (self.roles or self.status or self.signup_source or self.location or self.search)


class FilterCriterion(BaseModel):
    """One predicate of a saved segment.

    ``value`` must match the operator: a scalar for (not_)equals, a string
    for (not_)contains, a number for greater/less_than, a list for (not_)in
    and nothing at all for the null checks.
    """

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    operator: Operator
    value: Union[Scalar, list[Scalar], None] = None

    @model_validator(mode="after")
    def check_value_shape(self):
        kind = OPERATOR_VALUE_KINDS[self.operator]
        if not _value_fits(kind, self.value):
            raise ValueError(
                f"operator '{self.operator}' expects a {kind} value, got {self.value!r}"
            )
        return self

    @property
    def value_kind(self) -> ValueKind:
        return OPERATOR_VALUE_KINDS[self.operator]


class FilterCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    conditions: list[FilterCriterion] = Field(default_factory=list)
    conjunction: Conjunction = "and"

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready form; null-check conditions carry no ``value`` key."""
        return self.model_dump(mode="json", exclude_none=True)


class SavedSegment(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    filter_criteria: FilterCriteria
    created_by: Optional[str] = None
    created_at: str
    updated_at: str

    @property
    def kind(self) -> str:
        fields = {condition.field for condition in self.filter_criteria.conditions}
        if "spend" in fields:
            return "spend"
        if "status" in fields:
            return "status"
        return "general"

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json", exclude={"filter_criteria"})
        payload["filter_criteria"] = self.filter_criteria.to_payload()
        return payload


class SegmentCreateModel(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = Field(None, max_length=500)
    filter_criteria: FilterCriteria

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        # Non-strings fall through to the str type check.
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", mode="before")
    @classmethod
    def blank_description_as_none(cls, value):
        if not isinstance(value, str):
            return value
        return value.strip() or None
