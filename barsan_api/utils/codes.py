import re
import secrets
import string
import time

CODE_PREFIX = "RSV"
CODE_RE = re.compile(r"^RSV\d{6}[0-9A-Z]{3}$")
_ALPHABET = string.digits + string.ascii_uppercase


def reservation_code() -> str:
    """
    Human-facing reservation code: 'RSV', the last six digits of the
    millisecond clock and three random base-36 characters.
    Not guaranteed unique; the store enforces uniqueness on insert.
    """
    stamp = str(time.time_ns() // 1_000_000)[-6:]
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(3))
    return f"{CODE_PREFIX}{stamp}{suffix}"
