from flask import Blueprint
bp = Blueprint("daily_reports", __name__)
from . import routes  # noqa: E402,F401
