from __future__ import annotations

import re
import secrets
import string

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_CODE_NORMALIZE_PATTERN = re.compile(r"[\s-]+")


def normalize_email(raw_email: str) -> str:
    return raw_email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email))


def normalize_unlock_code(raw_code: str) -> str:
    return _CODE_NORMALIZE_PATTERN.sub("", raw_code.strip())


def is_well_formed_unlock_code(code: str, *, length: int) -> bool:
    return len(code) == length and code.isascii() and code.isdigit()


def generate_unlock_code(length: int = 6) -> str:
    return "".join(secrets.choice(string.digits) for _ in range(length))


def unlock_codes_match(submitted: str, stored: str | None) -> bool:
    if stored is None:
        return False
    return secrets.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))
