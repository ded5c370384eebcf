"""Small helpers shared by the JSON blueprints."""
from datetime import date, timedelta

from flask import jsonify, request

from sitestock.extensions import db
from sitestock.services.common import ServiceError, INVALID, FORBIDDEN, NOT_FOUND, CONFLICT
from sitestock.utils.helpers import parse_date

STATUS_BY_CODE = {INVALID: 400, FORBIDDEN: 403, NOT_FOUND: 404, CONFLICT: 409}
DEFAULT_RANGE_DAYS = 30


def json_body() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    # multipart/form posts
    return request.form.to_dict() if request.form else {}


def error_response(e: ServiceError):
    db.session.rollback()
    payload = {"ok": False, "error": e.code, "message": e.message}
    if e.errors:
        payload["errors"] = e.errors
    return jsonify(payload), STATUS_BY_CODE.get(e.code, 400)


def committed(fn, *args, **kwargs):
    """
    Run a service call and commit. A ServiceError propagates to the app's
    error handler, which rolls back and answers with JSON.
    """
    result = fn(db.session, *args, **kwargs)
    db.session.commit()
    return result


def arg_int(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ServiceError(f"{name} must be an integer.", INVALID, field=name)


def arg_bool(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes", "on")


def arg_date(name: str, default=None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    d = parse_date(raw)
    if d is None:
        raise ServiceError(f"{name} must be YYYY-MM-DD or DD.MM.YYYY.", INVALID, field=name)
    return d


def date_range():
    """(from, to) from the query string; defaults to the last 30 days."""
    to = arg_date("to", date.today())
    frm = arg_date("from", to - timedelta(days=DEFAULT_RANGE_DAYS - 1))
    if frm > to:
        raise ServiceError("'from' must be on or before 'to'.", INVALID, field="from")
    return frm, to
