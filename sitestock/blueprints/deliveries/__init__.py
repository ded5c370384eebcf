from flask import Blueprint
bp = Blueprint("deliveries", __name__)
from . import routes  # noqa: E402,F401
