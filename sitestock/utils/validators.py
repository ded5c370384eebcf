import re

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# offline clients mint these; uuid4 or "<device>:<counter>" both fit
_CLIENT_KEY_RE = re.compile(r"^[A-Za-z0-9._:-]{8,120}$")
_UNSAFE_FILE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def clean_str(val: str | None, max_len: int = 255) -> str | None:
    """Single-line text field: whitespace collapsed, truncated, None when blank."""
    if val is None:
        return None
    s = " ".join(str(val).split())
    return s[:max_len] or None


def is_valid_email(val: str | None) -> bool:
    return bool(val) and _EMAIL_RE.match(val) is not None


def normalize_phone(val: str | None) -> str | None:
    """E.164-ish: optional leading '+' then 7..15 digits, everything else dropped."""
    raw = str(val or "").strip()
    digits = re.sub(r"\D", "", raw)
    if not 7 <= len(digits) <= 15:
        return None
    return f"+{digits}" if raw.startswith("+") else digits


def is_valid_client_key(val: str | None) -> bool:
    return bool(val) and _CLIENT_KEY_RE.match(val) is not None


def safe_file_name(name: str | None, max_len: int = 180) -> str:
    return _UNSAFE_FILE_CHARS.sub("_", name or "file")[-max_len:]
