import os
from logging.config import dictConfig

JSON_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _env() -> str:
    return (os.getenv("APP_ENV") or "development").lower()


def _json_logging(level: str) -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_LOG_FORMAT},
        },
        "handlers": {"stdout": {"class": "logging.StreamHandler", "formatter": "json"}},
        "root": {"level": level, "handlers": ["stdout"]},
    }


def init_logging(app):
    """JSON lines when deployed; Flask's console handler locally and in tests."""
    level = app.config.get("LOG_LEVEL", "INFO")
    if _env() in ("staging", "production"):
        dictConfig(_json_logging(level))
    else:
        app.logger.setLevel(level)


def init_sentry(app):
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES", "0.0")),
        environment=_env(),
        send_default_pii=False,
    )
    app.logger.info("sentry enabled env=%s", _env())


def log_event(logger, event: str, **fields):
    """One line per domain event; JsonFormatter turns `extra` into top-level keys."""
    logger.info(event, extra={"event": event, **fields})
