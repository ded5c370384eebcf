from flask_talisman import Talisman

# The API answers JSON and streams stored photos/invoices; nothing is rendered as HTML
API_CSP = {
    "default-src": ["'none'"],
    "img-src": ["'self'", "data:", "blob:"],
    "frame-ancestors": ["'none'"],
    "base-uri": ["'none'"],
    "form-action": ["'none'"],
}


def init_security(app):
    """HTTPS, HSTS and locked-down headers for staging/production."""
    Talisman(
        app,
        content_security_policy=API_CSP,
        force_https=True,
        strict_transport_security=True,
        strict_transport_security_max_age=app.config.get("HSTS_MAX_AGE", 31536000),
        session_cookie_secure=True,
        frame_options="DENY",
        referrer_policy="no-referrer",
    )
