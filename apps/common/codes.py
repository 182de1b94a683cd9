import secrets
import string
import time
from typing import Protocol


class _ExistsFunc(Protocol):
    def __call__(self, code: str) -> bool:
        ...


_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _random_code(length: int = 4) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_order_id(*, exists: _ExistsFunc, max_attempts: int = 12) -> str:
    """Return ``ORD-<base36 millis>-<4 random>``, unique under ``exists()``."""
    for _ in range(max_attempts):
        code = f"ORD-{base36(int(time.time() * 1000))}-{_random_code(4)}"
        if not exists(code):
            return code
    raise RuntimeError("unable to generate unique order id")
