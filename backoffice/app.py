"""Flask back-office API for storefront user segmentation.

- The admin user list is filtered in memory, either by ad-hoc filters from
  the filter panel or by an activated saved segment. The two never combine:
  the per-session ``UserListState`` clears one whenever the other is set.
- Saved segments and the user directory snapshot are persisted to local JSON
  stores with redundant backups for self-hosted resilience.
- Access is limited to sessions flagged ``is_admin``; signing in happens
  upstream of this service.
"""

from __future__ import annotations

import logging
from functools import wraps
from pathlib import Path
from typing import Literal, Optional

from flask import Flask, Response, jsonify, request, session
from flask_cors import CORS
from flask_talisman import Talisman
from pydantic import BaseModel, Field, ValidationError, model_validator
from werkzeug.middleware.proxy_fix import ProxyFix

from backoffice.services.segment_store import SegmentRepository
from backoffice.services.user_directory import UserDirectory
from segmentkit import view_state
from segmentkit.config import load_backoffice_config
from segmentkit.criteria import to_filter_criteria
from segmentkit.evaluator import apply_filter_criteria, apply_user_filters
from segmentkit.models import FilterCriteria, SavedSegment, UserFilters, UserRecord
from segmentkit.reporting import export_users_csv, summarise_users
from segmentkit.storage import StoreError

BASE_DIR = Path(__file__).resolve().parent

# ---------------------------------------------------------------------------
# Config / logging
# ---------------------------------------------------------------------------
CONFIG = load_backoffice_config(BASE_DIR)
logging.basicConfig(
    level=CONFIG.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

VIEW_STATE_KEY = "user_list_state"

# ---------------------------------------------------------------------------
# Flask app
# ---------------------------------------------------------------------------
app = Flask(__name__)
app.config.update(
    SECRET_KEY=CONFIG.secret_key,
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_SECURE=CONFIG.force_tls,
    PREFERRED_URL_SCHEME="https" if CONFIG.force_tls else "http",
)
app.logger.setLevel(CONFIG.log_level)

CORS(app, resources={r"/*": {"origins": list(CONFIG.allowed_origins)}})

# Security headers
Talisman(app, content_security_policy=None, force_https=CONFIG.force_tls)

if CONFIG.uses_default_secret:
    app.logger.warning("SECRET_KEY not set; sessions are signed with the development default")

for _tls_file in (CONFIG.tls_cert_file, CONFIG.tls_key_file):
    if _tls_file and not Path(_tls_file).exists():
        app.logger.warning("TLS file not found at %s", _tls_file)

if CONFIG.trust_proxy_headers:
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore[assignment]

SEGMENTS = SegmentRepository(CONFIG.segments_file, backups=CONFIG.store_backups)
USERS = UserDirectory(CONFIG.users_file, backups=CONFIG.store_backups)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------
class FilterRequestModel(BaseModel):
    filters: Optional[UserFilters] = None
    criteria: Optional[FilterCriteria] = None

    @model_validator(mode="after")
    def one_source(self):
        if self.filters is not None and self.criteria is not None:
            raise ValueError("Provide either filters or criteria, not both")
        return self


class SelectionModel(BaseModel):
    ids: list[str] = Field(default_factory=list)


class BulkActionModel(BaseModel):
    action: Literal["activate", "deactivate"]
    ids: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def validation_error(err: ValidationError):
    return jsonify({"error": err.errors(include_url=False, include_context=False)}), 400


def store_failure(action: str, exc: StoreError):
    app.logger.error("Failed to %s: %s", action, exc)
    return jsonify({"error": f"Failed to {action}"}), 500


def current_user_email() -> str | None:
    user = session.get("user") or {}
    email = user.get("email")
    return email.strip().lower() if isinstance(email, str) else None


def is_admin() -> bool:
    # The configured admin email is always treated as an admin.
    return bool(session.get("is_admin")) or (current_user_email() == CONFIG.admin_email)


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_admin():
            # Logged in without the admin flag is 403; anonymous is 401.
            if session.get("user"):
                return jsonify({"error": "Admin privileges required"}), 403
            return jsonify({"error": "Authentication required"}), 401
        return fn(*args, **kwargs)

    return wrapper


def load_view_state() -> view_state.UserListState:
    return view_state.UserListState.from_payload(session.get(VIEW_STATE_KEY))


def save_view_state(state: view_state.UserListState) -> view_state.UserListState:
    session[VIEW_STATE_KEY] = state.to_payload()
    return state


def _user_rows(users: list[UserRecord]) -> list[dict]:
    return [user.model_dump() for user in users]


def _segment_response(segment: SavedSegment) -> dict:
    return {**segment.to_payload(), "kind": segment.kind}


def _segments_or_empty(warnings: list[str]) -> list[SavedSegment]:
    """Saved segments for the list view; a store failure is reported, not fatal."""
    try:
        return SEGMENTS.list_segments()
    except StoreError as exc:
        app.logger.warning("Saved segments unavailable: %s", exc)
        warnings.append("Failed to load saved segments")
        return []


def render_view(state: view_state.UserListState):
    warnings: list[str] = []
    try:
        users = USERS.all()
    except StoreError as exc:
        return store_failure("load users", exc)
    segments = _segments_or_empty(warnings)
    if warnings and state.active_segment_id:
        warnings.append("Active segment could not be applied")
    visible = view_state.visible_users(state, users, segments)
    return jsonify(
        {
            "state": state.to_payload(),
            "count": len(visible),
            "users": _user_rows(visible),
            "stats": summarise_users(users),
            "segments": [_segment_response(segment) for segment in segments],
            "warnings": warnings,
        }
    )


# ---------------------------------------------------------------------------
# Routes — Users
# ---------------------------------------------------------------------------
@app.route("/users", methods=["GET"])
@admin_required
def get_users():
    try:
        users = USERS.all()
    except StoreError as exc:
        return store_failure("load users", exc)
    return jsonify(_user_rows(users))


@app.route("/users/filter", methods=["POST"])
@admin_required
def filter_users():
    try:
        query = FilterRequestModel.model_validate(request.get_json(force=True) or {})
    except ValidationError as err:
        return validation_error(err)
    try:
        users = USERS.all()
    except StoreError as exc:
        return store_failure("load users", exc)
    if query.criteria is not None:
        result = apply_filter_criteria(users, query.criteria)
    else:
        result = apply_user_filters(users, query.filters or UserFilters())
    return jsonify({"count": len(result), "users": _user_rows(result)})


@app.route("/users/stats", methods=["GET"])
@admin_required
def user_stats():
    try:
        users = USERS.all()
    except StoreError as exc:
        return store_failure("load users", exc)
    return jsonify(summarise_users(users))


@app.route("/users/export", methods=["GET"])
@admin_required
def export_users():
    state = load_view_state()
    try:
        users = USERS.all()
    except StoreError as exc:
        return store_failure("load users", exc)
    segments: list[SavedSegment] = []
    if state.active_segment_id:
        # An active segment must resolve before anything is exported.
        try:
            segments = SEGMENTS.list_segments()
        except StoreError as exc:
            return store_failure("load saved segments", exc)
    visible = view_state.visible_users(state, users, segments)
    to_export = view_state.selected_or_visible(state, visible)
    if not to_export:
        return jsonify({"error": "No users selected for export"}), 400
    app.logger.info("Exporting %d user(s) for %s", len(to_export), current_user_email())
    return Response(
        export_users_csv(to_export),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=users.csv"},
    )


@app.route("/users/bulk", methods=["POST"])
@admin_required
def bulk_user_action():
    try:
        action = BulkActionModel.model_validate(request.get_json(force=True) or {})
    except ValidationError as err:
        return validation_error(err)
    state = load_view_state()
    ids = action.ids if action.ids is not None else list(state.selected_ids)
    if not ids:
        return jsonify({"error": "No users selected"}), 400
    status = "active" if action.action == "activate" else "inactive"
    try:
        changed = USERS.set_status(ids, status)
    except StoreError as exc:
        return store_failure(f"{action.action} users", exc)
    save_view_state(view_state.with_selection(state, ()))
    app.logger.info("%s set %d user(s) to %s", current_user_email(), len(changed), status)
    return jsonify(
        {
            "success": True,
            "message": f"{len(changed)} users {action.action}d",
            "count": len(changed),
            "affected_ids": changed,
        }
    )


# ---------------------------------------------------------------------------
# Routes — User list view state
# ---------------------------------------------------------------------------
@app.route("/users/view", methods=["GET"])
@admin_required
def get_user_view():
    return render_view(load_view_state())


@app.route("/users/view", methods=["DELETE"])
@admin_required
def reset_user_view():
    return render_view(save_view_state(view_state.cleared(load_view_state())))


@app.route("/users/view/filters", methods=["PUT"])
@admin_required
def set_user_view_filters():
    try:
        filters = UserFilters.model_validate(request.get_json(force=True) or {})
    except ValidationError as err:
        return validation_error(err)
    state = save_view_state(view_state.with_filters(load_view_state(), filters))
    return render_view(state)


@app.route("/users/view/segment/<segment_id>", methods=["POST"])
@admin_required
def activate_segment(segment_id):
    try:
        segment = SEGMENTS.get_segment(segment_id)
    except StoreError as exc:
        return store_failure("load segment", exc)
    if not segment:
        return jsonify({"error": "Not found"}), 404
    state = save_view_state(view_state.with_active_segment(load_view_state(), segment.id))
    return render_view(state)


@app.route("/users/view/selection", methods=["PUT"])
@admin_required
def set_user_view_selection():
    try:
        selection = SelectionModel.model_validate(request.get_json(force=True) or {})
    except ValidationError as err:
        return validation_error(err)
    state = save_view_state(view_state.with_selection(load_view_state(), selection.ids))
    return render_view(state)


# ---------------------------------------------------------------------------
# Routes — Saved segments (append-only)
# ---------------------------------------------------------------------------
@app.route("/segments", methods=["GET"])
@admin_required
def get_segments():
    try:
        segments = SEGMENTS.list_segments()
    except StoreError as exc:
        return store_failure("load saved segments", exc)
    return jsonify([_segment_response(segment) for segment in segments])


@app.route("/segments", methods=["POST"])
@admin_required
def create_segment():
    payload = request.get_json(force=True) or {}
    if not isinstance(payload, dict):
        payload = {}
    try:
        if "filter_criteria" not in payload:
            # Without explicit criteria, save the filters given or the ones in use.
            if "filters" in payload:
                filters = UserFilters.model_validate(payload.get("filters") or {})
            else:
                filters = load_view_state().filters
            payload = {**payload, "filter_criteria": to_filter_criteria(filters)}
        segment = SEGMENTS.create_segment(payload, created_by=current_user_email())
    except ValidationError as err:
        return validation_error(err)
    except StoreError as exc:
        return store_failure("save segment", exc)
    return jsonify(_segment_response(segment)), 201


# ---------------------------------------------------------------------------
# Security headers
# ---------------------------------------------------------------------------
@app.after_request
def secure_headers(resp):
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["X-Frame-Options"] = "DENY"
    return resp


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app.run(host=CONFIG.api_host, port=CONFIG.api_port, ssl_context=CONFIG.ssl_context)
