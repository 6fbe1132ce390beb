"""Flask application exposing the daycare operations JSON API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from flask import Flask, Response, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from daycareops.core import metrics
from daycareops.core.system import (
    ConflictError,
    NotFoundError,
    OpsSystem,
    StaffContext,
    ValidationError,
)

logger = logging.getLogger(__name__)

EXPORTS = {
    "meet-and-greets": "meetAndGreets",
    "engagements": "engagements",
    "shift-reports": "shiftReports",
}


def ok(data: Any, status: int = 200) -> tuple[Response, int]:
    return jsonify({"success": True, "data": data}), status


def fail(message: str, status: int) -> tuple[Response, int]:
    return jsonify({"success": False, "error": message}), status


def json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_app(
    database_path: str | None = None,
    config: Mapping[str, Any] | None = None,
) -> Flask:
    """Create and configure the Flask application."""

    app = Flask(__name__)
    app.config.from_mapping(
        SECRET_KEY="daycare-ops-secret",
        DATABASE="daycare_ops.db",
        DEFAULT_STORE="Ellisville",
    )
    app.config.from_prefixed_env("DAYCAREOPS")
    if config:
        app.config.update(config)
    if database_path:
        app.config["DATABASE"] = database_path

    if app.config["DATABASE"] == ":memory:":
        raise ValueError("DATABASE must be a file path shared by every request")
    OpsSystem(app.config["DATABASE"]).close()

    def get_system() -> OpsSystem:
        if "system" not in g:
            g.system = OpsSystem(app.config["DATABASE"], create_schema=False)
        return g.system

    @app.teardown_appcontext
    def close_system(exc: BaseException | None) -> None:
        system = g.pop("system", None)
        if system is not None:
            system.close()

    def current_context() -> StaffContext:
        user = None
        user_id = session.get("user_id")
        staff = get_system().staff
        if user_id and staff.exists(user_id):
            user = staff.get(user_id)
        return StaffContext(
            user=user,
            role=session.get("role", "front-desk"),
            store=session.get("store", app.config["DEFAULT_STORE"]),
        )

    def remember(context: StaffContext) -> None:
        session["user_id"] = context.user["id"] if context.user else None
        session["role"] = context.role
        session["store"] = context.store

    def dashboard_snapshot() -> dict:
        system = get_system()
        return metrics.build_dashboard(
            meet_and_greets=system.list_meet_and_greets(),
            engagements=system.list_engagements(),
            shift_reports=system.list_shift_reports(),
            store_filter=metrics.validate_store_filter(request.args.get("store")),
            date_range=metrics.DateRange.parse(request.args.get("from"), request.args.get("to")),
        )

    @app.before_request
    def ensure_seeded() -> None:
        if request.path.startswith("/api/"):
            get_system().ensure_seed()

    # ------------------------------------------------------------------
    # Error envelopes
    # ------------------------------------------------------------------
    @app.errorhandler(ValidationError)
    def bad_request(exc: ValidationError) -> Any:
        return fail(str(exc) or "bad request", 400)

    @app.errorhandler(NotFoundError)
    def not_found(exc: NotFoundError) -> Any:
        return fail(str(exc) or "not found", 404)

    @app.errorhandler(ConflictError)
    def conflict(exc: ConflictError) -> Any:
        return fail(str(exc), 409)

    @app.errorhandler(HTTPException)
    def http_error(exc: HTTPException) -> Any:
        return fail(exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def unexpected_error(exc: Exception) -> Any:
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return fail("Internal server error", 500)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------
    @app.get("/api/health")
    def health() -> Any:
        return ok({"status": "ok"})

    @app.get("/api/session")
    def get_session() -> Any:
        return ok(current_context().as_dict())

    @app.post("/api/session")
    def sign_in() -> Any:
        body = json_body()
        context = get_system().sign_in(body.get("role", ""))
        remember(context)
        return ok(context.as_dict())

    @app.delete("/api/session")
    def sign_out() -> Any:
        session.clear()
        return ok(current_context().as_dict())

    @app.put("/api/session/store")
    def switch_store() -> Any:
        body = json_body()
        context = get_system().switch_store(current_context(), body.get("store", ""))
        remember(context)
        return ok(context.as_dict())

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    @app.get("/api/staff")
    def staff() -> Any:
        return ok(get_system().list_staff())

    @app.get("/api/dogs")
    def dogs() -> Any:
        return ok(get_system().list_dogs())

    @app.get("/api/dogs/<dog_id>")
    def dog_profile(dog_id: str) -> Any:
        return ok(get_system().dog_profile(dog_id))

    # ------------------------------------------------------------------
    # Meet & greets
    # ------------------------------------------------------------------
    @app.get("/api/meet-and-greets")
    def meet_and_greets() -> Any:
        return ok(get_system().list_meet_and_greets())

    @app.post("/api/meet-and-greets")
    def create_meet_and_greet() -> Any:
        payload = current_context().with_defaults(json_body())
        return ok(get_system().create_meet_and_greet(payload))

    @app.put("/api/meet-and-greets/<greet_id>")
    def update_meet_and_greet(greet_id: str) -> Any:
        return ok(get_system().update_meet_and_greet(greet_id, json_body()))

    # ------------------------------------------------------------------
    # Engagements, observations & shift reports
    # ------------------------------------------------------------------
    @app.get("/api/engagements")
    def engagements() -> Any:
        return ok(get_system().list_engagements())

    @app.post("/api/engagements")
    def create_engagement() -> Any:
        payload = current_context().with_defaults(json_body(), "staffId")
        return ok(get_system().create_engagement(payload))

    @app.get("/api/observations")
    def observations() -> Any:
        return ok(get_system().list_observations())

    @app.post("/api/observations")
    def create_observation() -> Any:
        payload = current_context().with_defaults(json_body(), "staffId")
        return ok(get_system().create_observation(payload))

    @app.get("/api/shift-reports")
    def shift_reports() -> Any:
        return ok(get_system().list_shift_reports())

    @app.post("/api/shift-reports")
    def create_shift_report() -> Any:
        payload = current_context().with_defaults(json_body(), "shiftLeadId")
        return ok(get_system().create_shift_report(payload))

    # ------------------------------------------------------------------
    # Dashboard & export
    # ------------------------------------------------------------------
    @app.get("/api/dashboard")
    def dashboard() -> Any:
        return ok(dashboard_snapshot())

    @app.get("/api/export/<kind>.csv")
    def export_csv(kind: str) -> Any:
        if kind not in EXPORTS:
            raise NotFoundError(f"Unknown export {kind!r}")
        snapshot = dashboard_snapshot()
        filename = kind.replace("-", "_") + ".csv"
        return Response(
            metrics.to_csv(snapshot[EXPORTS[kind]]),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    return app


__all__ = ["create_app"]
