"""
Public resource codes.

Codes are only generated here; uniqueness is enforced by the database.
Callers insert with a fresh code and treat an IntegrityError as a collision,
retrying up to CODE_RETRY_LIMIT times.
"""
import re
import secrets
import string

FILE_CODE_LENGTH = 8
SHARE_CODE_LENGTH = 8
CODE_RETRY_LIMIT = 10

SHARE_CODE_ALPHABET = string.ascii_lowercase + string.digits

_FILE_CODE_RE = re.compile(r"^\d{%d}$" % FILE_CODE_LENGTH)
_SHARE_CODE_RE = re.compile(r"^[a-z0-9]{%d}$" % SHARE_CODE_LENGTH)


def generate_file_code() -> str:
    return "".join(secrets.choice(string.digits) for _ in range(FILE_CODE_LENGTH))


def generate_share_code() -> str:
    return "".join(secrets.choice(SHARE_CODE_ALPHABET) for _ in range(SHARE_CODE_LENGTH))


def is_valid_file_code(code: str) -> bool:
    return bool(code) and bool(_FILE_CODE_RE.match(code))


def is_valid_share_code(code: str) -> bool:
    return bool(code) and bool(_SHARE_CODE_RE.match(code))
