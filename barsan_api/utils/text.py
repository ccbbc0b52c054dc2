import re

_PHONE_RE = re.compile(r"^[0-9]{9,10}$")


def sanitize_string(s: str) -> str:
    return s.strip().replace("<", "").replace(">", "")


def is_valid_phone(phone: str) -> bool:
    return _PHONE_RE.match(re.sub(r"[-\s]", "", phone)) is not None
