# backoffice/__init__.py
from __future__ import annotations

import threading

import httpx
from flask import Flask

from .config import Config
from .extensions import EXTENSION_KEY, ClientContext


def create_app(
    config_overrides: dict | None = None,
    transport: httpx.BaseTransport | None = None,
    *,
    timer_factory=threading.Timer,
) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    from .services.api_client import ApiClient, resolve_base_url
    from .services.dashboard_service import DashboardLoader
    from .services.session_service import SessionManager, SessionHeartbeat
    from .services.storage_service import ClientStorage

    # One session per app: this process is one terminal
    storage = ClientStorage.from_url(app.config["SESSION_STORAGE_URL"])
    api = ApiClient(
        resolve_base_url(app.config["API_BASE_URL"], app.config["API_ORIGIN"]),
        transport=transport,
    )
    session = SessionManager(
        api,
        storage,
        expiry_skew_ms=app.config["SESSION_EXPIRY_SKEW_MS"],
        device_message_fallback=app.config["DEVICE_MESSAGE_FALLBACK"],
        timer_factory=timer_factory,
    )
    dashboard = DashboardLoader(
        session,
        tz_name=app.config["BUSINESS_TIMEZONE"],
        max_workers=app.config["DASHBOARD_MAX_WORKERS"],
    )
    context = ClientContext(storage=storage, api=api, session=session, dashboard=dashboard)
    app.extensions[EXTENSION_KEY] = context

    if app.config["DEVICE_MESSAGE_FALLBACK"]:
        app.logger.warning("DEVICE_MESSAGE_FALLBACK is deprecated; the login endpoint should send structured codes")

    def on_auth_cleared(reason: str) -> None:
        # Totals of the previous user must not survive the session
        dashboard.clear()
        app.logger.info("Auth cleared (%s); dashboard snapshot dropped", reason)

    session.add_listener(on_auth_cleared)
    session.restore()

    interval = app.config["SESSION_HEARTBEAT_SECONDS"]
    if interval and interval > 0 and not app.config.get("TESTING"):
        context.heartbeat = SessionHeartbeat(session, interval)
        context.heartbeat.start()

    # Register blueprints
    from .routes.auth import auth_bp
    from .routes.dashboard import dashboard_bp
    from .routes.devices import devices_bp
    from .routes.sales import sales_bp
    from .routes.users import users_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(devices_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(users_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
