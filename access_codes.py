# access_codes.py

import secrets

CODE_MIN = 100000
CODE_MAX = 999999


def generate_access_code() -> str:
    """Uniform random 6-digit code in [100000, 999999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def is_access_code(value) -> bool:
    if not isinstance(value, str) or len(value) != 6:
        return False
    if not (value.isascii() and value.isdigit()):
        return False
    return value[0] != "0"
