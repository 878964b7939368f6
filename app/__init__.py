from __future__ import annotations

import logging
import sqlite3

from flask import Flask, g, jsonify
from sqlalchemy import event
from sqlalchemy.engine import Engine
from werkzeug.exceptions import HTTPException

from .extensions import db, migrate, login_manager
from .geo import haversine_m


def _casefold(value):
    return value.casefold() if isinstance(value, str) else value


@event.listens_for(Engine, "connect")
def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=NORMAL")
        cur.execute("PRAGMA busy_timeout=30000")
        cur.close()
        dbapi_connection.create_function(
            "geo_distance_m", 4, haversine_m, deterministic=True
        )
        dbapi_connection.create_function("casefold", 1, _casefold, deterministic=True)


def _error_response(status: int, message: str, **extra):
    resp = jsonify(success=False, message=message, **extra)
    resp.status_code = status
    return resp


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object("config.Config")
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if uri.startswith("sqlite:"):
        opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS", {}))
        ca = dict(opts.get("connect_args", {}))
        ca.setdefault("check_same_thread", False)
        ca.setdefault("timeout", 30)
        opts["connect_args"] = ca
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return _error_response(401, "Not authorized, please log in")

    from .models.user import User
    from .models.pet import Pet
    from .models.adoption import AdoptionRequest

    from .auth.routes import auth_bp
    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    from .pets.routes import pets_bp
    app.register_blueprint(pets_bp, url_prefix="/api")

    from .adoptions.routes import adoptions_bp
    app.register_blueprint(adoptions_bp, url_prefix="/api")

    from .signals import adoption_request_changed, log_adoption_request_change
    adoption_request_changed.connect(log_adoption_request_change, sender=app)

    from .cli import (
        init_db_cmd,
        reset_db_cmd,
        purge_data_cmd,
        seed_demo_cmd,
    )

    app.cli.add_command(init_db_cmd)
    app.cli.add_command(reset_db_cmd)
    app.cli.add_command(purge_data_cmd)
    app.cli.add_command(seed_demo_cmd)

    @app.get("/api/health")
    def health():
        return jsonify(success=True, message="NearPaws API is running")

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        if exc.code == 404 and exc.description == exc.__class__.description:
            return _error_response(404, "Route not found")
        return _error_response(exc.code or 500, exc.description or exc.name)

    @app.errorhandler(Exception)
    def _unhandled_error(exc: Exception):
        db.session.rollback()
        app.logger.exception("unhandled error: %s", exc)
        return _error_response(500, "Server Error")

    @app.teardown_request
    def _teardown_request(_exc):
        try:
            if _exc is not None:
                db.session.rollback()
        finally:
            db.session.remove()
            # bearer tokens are resolved again on every request
            g.pop("_login_user", None)

    return app
