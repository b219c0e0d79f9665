import pytest

from segmentkit.models import UserRecord


@pytest.fixture
def users():
    return [
        UserRecord(
            id="user-1",
            roles=["admin"],
            status="active",
            location="New York",
            signup_source="google",
            email="alice@example.com",
            first_name="Alice",
            last_name="Nguyen",
            company="Acme Corp",
            spend=150,
        ),
        UserRecord(
            id="user-2",
            roles=["moderator"],
            status="inactive",
            location="London",
            signup_source="email",
            email="bob@example.com",
            first_name="Bob",
            last_name="Smith",
            spend=200,
        ),
        UserRecord(
            id="user-3",
            roles=["user"],
            status="active",
            location="Tokyo",
            signup_source="github",
            email="carol@globex.io",
            first_name="Carol",
            last_name="Tanaka",
            company="Globex",
            spend=50,
        ),
        UserRecord(
            id="user-4",
            roles=["user", "editor"],
            status="pending",
            location="new nyc office",
            signup_source="email",
            email="dan@example.com",
            first_name="Dan",
            last_name="Brown",
            custom_attributes={"preferences": {"theme": "dark"}, "plan": "pro"},
        ),
        UserRecord(id="user-5"),
    ]
