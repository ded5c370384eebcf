from flask import session
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager, current_user
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
mail = Mail()

login_manager = LoginManager()


def _rate_limit_key():
    """Signed-in callers are limited per (user, site); everyone else per client IP."""
    if getattr(current_user, "is_authenticated", False):
        return f"user:{current_user.id}:site:{session.get('current_account_id') or '-'}"
    return f"ip:{get_remote_address()}"


# storage_uri comes from RATELIMIT_STORAGE_URI, set in create_app()
limiter = Limiter(key_func=_rate_limit_key)
