from __future__ import annotations

import re

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+?[0-9\-\s()]+$")


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email or ""))


def is_valid_phone(phone: str) -> bool:
    phone = phone or ""
    return bool(_PHONE.match(phone)) and len(phone) >= 7
