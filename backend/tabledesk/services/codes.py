"""
Random public codes printed for guests: table QR codes and session codes.
"""

import secrets
import string
from typing import Callable

from tabledesk_shared.utils.exceptions import ConflictError

CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5


def random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def allocate_code(make: Callable[[], str], exists: Callable[[str], bool], what: str) -> str:
    """
    Draw codes from ``make`` until one is not taken.

    The unique constraint on the column still backs this up; the check only
    keeps collisions from surfacing as integrity errors in the common case.
    """
    for _ in range(MAX_CODE_ATTEMPTS):
        code = make()
        if not exists(code):
            return code
    raise ConflictError(f"Could not allocate a unique {what}")
