"""
Pickup code generation and hashing.

The digest is unsalted SHA-256. Codes live for minutes and are scoped to a
single order, so this only guards the stored record against casual reading;
it does not resist offline brute force of the 9000-value code space.
"""
import hashlib
import re
import secrets

CODE_MIN = 1000
CODE_MAX = 9999

_CODE_PATTERN = re.compile(r"^[0-9]{4}$")


def generate_code() -> str:
    """Uniform 4-digit code in [1000, 9999]."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode("utf-8")).hexdigest()


def is_well_formed(code) -> bool:
    return isinstance(code, str) and bool(_CODE_PATTERN.match(code))
