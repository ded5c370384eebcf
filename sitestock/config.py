import os


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _database_url(default: str) -> str:
    return os.getenv("DATABASE_URL") or default


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-not-secure")
    WTF_CSRF_SECRET_KEY = SECRET_KEY
    WTF_CSRF_TIME_LIMIT = None

    SQLALCHEMY_DATABASE_URI = _database_url("sqlite:///sitestock.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    REMEMBER_COOKIE_HTTPONLY = True

    # limits are declared per route
    RATELIMIT_DEFAULT = None

    # mail (invites)
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS", "true")
    MAIL_USE_SSL = _flag("MAIL_USE_SSL")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "SiteStock <no-reply@local.test>")
    MAIL_SUPPRESS_SEND = _flag("MAIL_SUPPRESS_SEND")

    # absolute links in emails; https in prod
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5000")
    SITE_NAME = os.getenv("SITE_NAME", "SiteStock")

    INVITE_TOKEN_SALT = os.getenv("INVITE_TOKEN_SALT", "invite-token-v1")
    INVITE_TTL_HOURS = int(os.getenv("INVITE_TTL_HOURS", "168"))

    # report/task photos and delivery invoices
    UPLOAD_FOLDER = os.getenv("UPLOAD_FOLDER", os.path.join("instance", "uploads"))
    MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", str(16 * 1024 * 1024)))
    MAX_REPORT_PHOTOS = 3
    MAX_TASK_PHOTOS = 3

    LOW_STOCK_PCT = int(os.getenv("LOW_STOCK_PCT", "25"))
    MATERIALS_PAGE_SIZE = int(os.getenv("MATERIALS_PAGE_SIZE", "30"))
    TOP_USAGE_LIMIT = int(os.getenv("TOP_USAGE_LIMIT", "5"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    HSTS_MAX_AGE = int(os.getenv("HSTS_MAX_AGE", "31536000"))


class StagingConfig(ProductionConfig):
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    HSTS_MAX_AGE = 300


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    MAIL_SUPPRESS_SEND = True


_ENV_MAP = {
    "development": DevelopmentConfig,
    "staging": StagingConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}


def get_config():
    return _ENV_MAP.get(os.getenv("APP_ENV", "development").lower(), DevelopmentConfig)
