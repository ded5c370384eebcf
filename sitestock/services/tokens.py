"""Signed, time-limited tokens for invite links."""
from typing import Optional

from flask import current_app
from itsdangerous import BadSignature, URLSafeTimedSerializer


def _serializer(kind: str) -> URLSafeTimedSerializer:
    # salted per kind so a token minted for one flow never verifies for another
    base = current_app.config.get("INVITE_TOKEN_SALT", "invite-token-v1")
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=f"{base}:{kind}")


def generate(kind: str, identity: str) -> str:
    """identity for invites is "<member_id>:<nonce>"; rotating the nonce revokes older links."""
    return _serializer(kind).dumps(identity)


def verify(kind: str, token: str, max_age_seconds: int) -> Optional[str]:
    try:
        identity = _serializer(kind).loads(token, max_age=max_age_seconds)
    except BadSignature:  # SignatureExpired is a subclass
        return None
    return identity if isinstance(identity, str) else None
