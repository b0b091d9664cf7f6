"""REST API blueprint exposing route view and route generation endpoints."""
from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from . import routes_client
from .geo import default_location
from .models import GenerateRouteRequest, RouteViewRequest
from .route_view import RouteUnavailableError, build_route_view
from .routes_client import RoutesApiError, RoutingRateLimitError

api_bp = Blueprint("api", __name__)


def _sessions():
    return current_app.extensions["route_sessions"]


def _validation_errors(exc: ValidationError):
    return exc.errors(include_url=False, include_context=False, include_input=False)


@api_bp.post("/route/view")
def route_view():
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "invalid or missing JSON"}), HTTPStatus.BAD_REQUEST
    try:
        request_model = RouteViewRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"error": _validation_errors(exc)}), HTTPStatus.BAD_REQUEST

    try:
        view = build_route_view(request_model)
    except RouteUnavailableError as exc:
        return jsonify({"error": str(exc), "redirect": exc.redirect}), HTTPStatus.CONFLICT
    return jsonify(view)


@api_bp.post("/route/generate")
def generate_route():
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "invalid or missing JSON"}), HTTPStatus.BAD_REQUEST
    try:
        request_model = GenerateRouteRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"error": _validation_errors(exc)}), HTTPStatus.BAD_REQUEST

    origin = request_model.origin or default_location(current_app.config)
    try:
        route = routes_client.compute_optimized_route(origin, request_model.destinations, request_model.mode)
    except RoutingRateLimitError as exc:
        return jsonify({"success": False, "message": str(exc)}), HTTPStatus.SERVICE_UNAVAILABLE
    except RoutesApiError as exc:
        current_app.logger.warning("Route generation failed: %s", exc)
        return jsonify({"success": False, "message": str(exc)}), HTTPStatus.BAD_GATEWAY
    except ValueError as exc:
        return jsonify({"success": False, "message": str(exc)}), HTTPStatus.BAD_REQUEST

    return jsonify({"success": True, "data": route, "message": "Route generated successfully"})


@api_bp.post("/route/sessions/<session_id>")
def submit_session(session_id: str):
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "invalid or missing JSON"}), HTTPStatus.BAD_REQUEST
    try:
        request_model = RouteViewRequest.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"error": _validation_errors(exc)}), HTTPStatus.BAD_REQUEST

    task_id = _sessions().submit(session_id, request_model)
    return jsonify({"task_id": task_id, "session_id": session_id, "status": "queued"}), HTTPStatus.ACCEPTED


@api_bp.get("/route/sessions/<session_id>")
def session_status(session_id: str):
    status_obj = _sessions().get(session_id)
    if not status_obj:
        return jsonify({"error": "session not found"}), HTTPStatus.NOT_FOUND
    return jsonify(status_obj.model_dump())


@api_bp.delete("/route/sessions/<session_id>")
def close_session(session_id: str):
    if not _sessions().close(session_id):
        return jsonify({"error": "session not found"}), HTTPStatus.NOT_FOUND
    return "", HTTPStatus.NO_CONTENT
