"""Flask application factory for the OneCDC route service."""
import logging
import os
import sys

from dotenv import load_dotenv
from flask import Flask, jsonify

load_dotenv(override=True)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _get_env(name: str, default: str = "") -> str:
    value = os.getenv(name, default)
    if value is None:
        return default
    return value.strip()


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def configure_logging(level_name: str) -> None:
    """Attach a single stdout handler to the root logger."""
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def create_app(overrides: dict = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config["SECRET_KEY"] = _get_env("SECRET_KEY", "dev-secret")
    app.config["FLASK_ENV"] = _get_env("FLASK_ENV", "development")
    app.config["DEFAULT_LAT"] = _get_env_float("DEFAULT_LAT", 1.3016)
    app.config["DEFAULT_LNG"] = _get_env_float("DEFAULT_LNG", 103.9056)
    app.config["ROUTE_WORKERS"] = _get_env_int("ROUTE_WORKERS", 4)
    app.config["ROUTE_SESSION_TTL"] = _get_env_float("ROUTE_SESSION_TTL", 600.0)
    app.config["LOG_LEVEL"] = _get_env("LOG_LEVEL", "INFO")
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config["LOG_LEVEL"])

    from .routes import api_bp  # pylint: disable=import-outside-toplevel
    from .worker import RouteSessionManager  # pylint: disable=import-outside-toplevel

    app.extensions["route_sessions"] = RouteSessionManager(
        max_workers=app.config["ROUTE_WORKERS"], session_ttl=app.config["ROUTE_SESSION_TTL"]
    )
    app.register_blueprint(api_bp, url_prefix="/api")

    @app.get("/api/health")
    def health():
        """Liveness probe."""
        return jsonify({"status": "ok"})

    return app
