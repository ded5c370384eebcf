import os

from flask import Flask, jsonify, request

# Local runs read .env; deployed envs get variables from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=False)

from .config import get_config
from .extensions import csrf, db, limiter, login_manager, mail, migrate
from .observability import init_logging, init_sentry
from .security import init_security

DEPLOYED_ENVS = ("staging", "production")
REQUIRED_IN_DEPLOYED = ("SECRET_KEY", "DATABASE_URL", "APP_BASE_URL")


def _app_env() -> str:
    return (os.getenv("APP_ENV") or "development").lower()


def _limiter_storage(app_env: str) -> str:
    if app_env not in DEPLOYED_ENVS:
        return "memory://"
    url = os.environ.get("REDIS_URL")
    if not url:
        # per-process counters are useless behind several workers
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    return url


def _register_blueprints(app):
    from .blueprints.analytics import bp as analytics_bp
    from .blueprints.auth import bp as auth_bp
    from .blueprints.daily_reports import bp as daily_reports_bp
    from .blueprints.deliveries import bp as deliveries_bp
    from .blueprints.inventory import bp as inventory_bp
    from .blueprints.materials import bp as materials_bp
    from .blueprints.tasks import bp as tasks_bp
    from .blueprints.team import bp as team_bp

    for bp, prefix in (
        (auth_bp, "/auth"),
        (materials_bp, "/materials"),
        (deliveries_bp, "/deliveries"),
        (daily_reports_bp, "/daily-reports"),
        (tasks_bp, "/tasks"),
        (team_bp, "/team"),
        (inventory_bp, "/inventory"),
        (analytics_bp, "/analytics"),
    ):
        # session cookie is SameSite=Lax and writes arrive as JSON or multipart
        csrf.exempt(bp)
        app.register_blueprint(bp, url_prefix=prefix)


def _json_error(code: str, status: int, **extra):
    return jsonify({"ok": False, "error": code, **extra}), status


def _register_error_handlers(app):
    from flask_wtf.csrf import CSRFError

    from .blueprints.api import error_response
    from .services.common import ServiceError

    simple = {401: "unauthorized", 403: "forbidden", 404: "not_found", 413: "file_too_large", 500: "server_error"}
    for status, code in simple.items():
        app.register_error_handler(status, lambda e, _c=code, _s=status: _json_error(_c, _s))

    @app.errorhandler(400)
    def bad_request(e):
        return _json_error("bad_request", 400, message=getattr(e, "description", ""))

    @app.errorhandler(CSRFError)
    def csrf_failed(e):
        return _json_error("csrf_failed", 400, message=e.description)

    @app.errorhandler(429)
    def rate_limited(e):
        retry_after = getattr(e, "retry_after", None)
        if retry_after is None:
            return _json_error("rate_limited", 429, code=429)
        body, status = _json_error("rate_limited", 429, code=429, retry_after=int(retry_after))
        return body, status, {"Retry-After": str(int(retry_after))}

    # invalid/forbidden/not_found/conflict raised from services
    app.register_error_handler(ServiceError, error_response)


def create_app(config_overrides=None):
    app = Flask(__name__, template_folder="templates")
    app_env = _app_env()

    app.config["RATELIMIT_STORAGE_URI"] = _limiter_storage(app_env)
    app.config.setdefault("RATELIMIT_DEFAULTS", ["1000 per hour"])
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)
    app.config.from_object(get_config())
    if config_overrides:
        app.config.update(config_overrides)

    if app_env in DEPLOYED_ENVS:
        missing = [k for k in REQUIRED_IN_DEPLOYED if not (os.getenv(k) or app.config.get(k))]
        if missing:
            raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    init_logging(app)
    init_sentry(app)
    if app_env in DEPLOYED_ENVS:
        init_security(app)

    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)
    mail.init_app(app)

    from . import models  # noqa: F401  (metadata for migrations)

    _register_blueprints(app)
    _register_error_handlers(app)

    @limiter.exempt
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    @login_manager.unauthorized_handler
    def _unauthorized():
        app.logger.info("unauthorized path=%s", request.path)
        return _json_error("unauthorized", 401)

    from .cli import register_cli
    register_cli(app)

    return app
