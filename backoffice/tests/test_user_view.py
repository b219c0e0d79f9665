import csv
import io

from backoffice import app as flask_app
from segmentkit.storage import StoreError

BASE_URL = "https://localhost"


class UnavailableSegments:
    def list_segments(self):
        raise StoreError("store unreachable")


def visible_ids(response):
    return [user["id"] for user in response.get_json()["users"]]


def create_segment(client, name, conditions, conjunction="and"):
    response = client.post(
        "/segments",
        json={"name": name, "filter_criteria": {"conditions": conditions, "conjunction": conjunction}},
        base_url=BASE_URL,
    )
    assert response.status_code == 201
    return response.get_json()["id"]


def test_view_requires_admin():
    client = flask_app.app.test_client()
    assert client.get("/users/view", base_url=BASE_URL).status_code == 401


def test_default_view_lists_everyone(admin_client):
    response = admin_client.get("/users/view", base_url=BASE_URL)
    assert response.status_code == 200
    payload = response.get_json()
    assert visible_ids(response) == ["user-1", "user-2", "user-3"]
    assert payload["state"] == {
        "filters": {"roles": [], "status": [], "signup_source": [], "location": "", "search": ""},
        "active_segment_id": None,
        "selected_ids": [],
    }
    assert payload["stats"]["total"] == 3
    assert payload["stats"]["active"] == 2
    assert payload["segments"] == []
    assert payload["warnings"] == []


def test_filters_apply_and_persist_in_session(admin_client):
    response = admin_client.put(
        "/users/view/filters",
        json={"status": ["active"], "search": "GLOBEX"},
        base_url=BASE_URL,
    )
    assert response.status_code == 200
    assert visible_ids(response) == ["user-3"]

    again = admin_client.get("/users/view", base_url=BASE_URL)
    assert visible_ids(again) == ["user-3"]


def test_invalid_filters_rejected(admin_client):
    response = admin_client.put("/users/view/filters", json={"status": ["banned"]}, base_url=BASE_URL)
    assert response.status_code == 400


def test_segment_and_filters_are_mutually_exclusive(admin_client):
    segment_id = create_segment(
        admin_client,
        "High Spenders",
        [{"field": "spend", "operator": "greater_than", "value": 100}],
    )
    admin_client.put("/users/view/filters", json={"location": "tokyo"}, base_url=BASE_URL)

    activated = admin_client.post(f"/users/view/segment/{segment_id}", base_url=BASE_URL)
    assert activated.status_code == 200
    state = activated.get_json()["state"]
    assert state["active_segment_id"] == segment_id
    assert state["filters"]["location"] == ""
    assert visible_ids(activated) == ["user-1", "user-2"]

    refiltered = admin_client.put("/users/view/filters", json={"roles": ["user"]}, base_url=BASE_URL)
    assert refiltered.get_json()["state"]["active_segment_id"] is None
    assert visible_ids(refiltered) == ["user-3"]


def test_activate_unknown_segment(admin_client):
    response = admin_client.post("/users/view/segment/segment-404", base_url=BASE_URL)
    assert response.status_code == 404


def test_segment_store_failure_is_not_fatal(admin_client, monkeypatch):
    monkeypatch.setattr(flask_app, "SEGMENTS", UnavailableSegments())
    response = admin_client.get("/users/view", base_url=BASE_URL)
    assert response.status_code == 200
    payload = response.get_json()
    assert payload["segments"] == []
    assert payload["warnings"] == ["Failed to load saved segments"]
    assert payload["count"] == 3


def test_export_fails_when_active_segment_cannot_load(admin_client, monkeypatch):
    segment_id = create_segment(
        admin_client,
        "Tokyo",
        [{"field": "location", "operator": "contains", "value": "tokyo"}],
    )
    admin_client.post(f"/users/view/segment/{segment_id}", base_url=BASE_URL)
    healthy = admin_client.get("/users/export", base_url=BASE_URL)
    rows = list(csv.DictReader(io.StringIO(healthy.get_data(as_text=True))))
    assert [row["id"] for row in rows] == ["user-3"]

    monkeypatch.setattr(flask_app, "SEGMENTS", UnavailableSegments())
    response = admin_client.get("/users/export", base_url=BASE_URL)
    assert response.status_code == 500
    assert response.get_json()["error"] == "Failed to load saved segments"


def test_view_warns_when_active_segment_cannot_load(admin_client, monkeypatch):
    segment_id = create_segment(
        admin_client,
        "Tokyo",
        [{"field": "location", "operator": "contains", "value": "tokyo"}],
    )
    admin_client.post(f"/users/view/segment/{segment_id}", base_url=BASE_URL)

    monkeypatch.setattr(flask_app, "SEGMENTS", UnavailableSegments())
    payload = admin_client.get("/users/view", base_url=BASE_URL).get_json()
    assert payload["state"]["active_segment_id"] == segment_id
    assert payload["warnings"] == [
        "Failed to load saved segments",
        "Active segment could not be applied",
    ]


def test_export_without_segment_ignores_segment_store(admin_client, monkeypatch):
    monkeypatch.setattr(flask_app, "SEGMENTS", UnavailableSegments())
    response = admin_client.get("/users/export", base_url=BASE_URL)
    assert response.status_code == 200


def test_reset_view(admin_client):
    admin_client.put("/users/view/filters", json={"roles": ["admin"]}, base_url=BASE_URL)
    response = admin_client.delete("/users/view", base_url=BASE_URL)
    assert visible_ids(response) == ["user-1", "user-2", "user-3"]
    assert response.get_json()["state"]["filters"]["roles"] == []


def test_stateless_filter_endpoint(admin_client):
    by_filters = admin_client.post(
        "/users/filter",
        json={"filters": {"signup_source": ["email", "github"]}},
        base_url=BASE_URL,
    )
    assert visible_ids(by_filters) == ["user-2", "user-3"]

    by_criteria = admin_client.post(
        "/users/filter",
        json={
            "criteria": {
                "conditions": [
                    {"field": "status", "operator": "equals", "value": "active"},
                    {"field": "spend", "operator": "greater_than", "value": 100},
                ],
                "conjunction": "or",
            }
        },
        base_url=BASE_URL,
    )
    assert visible_ids(by_criteria) == ["user-1", "user-2", "user-3"]
    assert by_criteria.get_json()["count"] == 3

    both = admin_client.post(
        "/users/filter",
        json={"filters": {}, "criteria": {"conditions": [], "conjunction": "and"}},
        base_url=BASE_URL,
    )
    assert both.status_code == 400


def test_export_uses_selection_then_visible(admin_client):
    admin_client.put("/users/view/filters", json={"status": ["active"]}, base_url=BASE_URL)
    response = admin_client.get("/users/export", base_url=BASE_URL)
    assert response.status_code == 200
    assert response.mimetype == "text/csv"
    rows = list(csv.DictReader(io.StringIO(response.get_data(as_text=True))))
    assert [row["id"] for row in rows] == ["user-1", "user-3"]

    admin_client.put("/users/view/selection", json={"ids": ["user-3"]}, base_url=BASE_URL)
    selected = admin_client.get("/users/export", base_url=BASE_URL)
    rows = list(csv.DictReader(io.StringIO(selected.get_data(as_text=True))))
    assert [row["id"] for row in rows] == ["user-3"]


def test_export_with_nothing_visible(admin_client):
    admin_client.put("/users/view/filters", json={"location": "Atlantis"}, base_url=BASE_URL)
    response = admin_client.get("/users/export", base_url=BASE_URL)
    assert response.status_code == 400
    assert response.get_json()["error"] == "No users selected for export"


def test_bulk_deactivate_selected(admin_client):
    admin_client.put("/users/view/selection", json={"ids": ["user-1", "user-3"]}, base_url=BASE_URL)
    response = admin_client.post("/users/bulk", json={"action": "deactivate"}, base_url=BASE_URL)
    assert response.status_code == 200
    result = response.get_json()
    assert result["count"] == 2
    assert result["affected_ids"] == ["user-1", "user-3"]
    assert result["message"] == "2 users deactivated"

    statuses = {user.id: user.status for user in flask_app.USERS.all()}
    assert statuses == {"user-1": "inactive", "user-2": "inactive", "user-3": "inactive"}

    view = admin_client.get("/users/view", base_url=BASE_URL).get_json()
    assert view["state"]["selected_ids"] == []


def test_bulk_activate_explicit_ids(admin_client):
    response = admin_client.post(
        "/users/bulk",
        json={"action": "activate", "ids": ["user-2", "user-1"]},
        base_url=BASE_URL,
    )
    assert response.get_json()["affected_ids"] == ["user-2"]


def test_bulk_requires_selection(admin_client):
    response = admin_client.post("/users/bulk", json={"action": "activate"}, base_url=BASE_URL)
    assert response.status_code == 400
    invalid = admin_client.post("/users/bulk", json={"action": "delete", "ids": ["user-1"]}, base_url=BASE_URL)
    assert invalid.status_code == 400


def test_user_stats(admin_client):
    stats = admin_client.get("/users/stats", base_url=BASE_URL).get_json()
    assert stats == {
        "total": 3,
        "active": 2,
        "inactive": 1,
        "total_spend": 400,
        "average_spend": 133.33,
    }


def test_get_users(admin_client):
    users = admin_client.get("/users", base_url=BASE_URL).get_json()
    assert [user["id"] for user in users] == ["user-1", "user-2", "user-3"]
    assert users[0]["roles"] == ["admin"]
