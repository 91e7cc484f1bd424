"""Human-readable passport labels for properties (``SS-ZZZZZ-NNNNN``)."""
from __future__ import annotations

import re
import secrets
from typing import Optional, Protocol

PASSPORT_SUFFIX_MIN = 10000
PASSPORT_SUFFIX_MAX = 100000

_NON_DIGITS = re.compile(r"\D")


class RandomSource(Protocol):
    def randrange(self, start: int, stop: int) -> int:
        ...


def generate_passport_id(
    state: Optional[str],
    zip_code: Optional[str],
    *,
    rng: Optional[RandomSource] = None,
) -> str:
    """Build a passport label from a state code and zip.

    The state is uppercased and cut to two characters, the zip keeps its first
    five digits, and a random number in ``[10000, 100000)`` is appended. Empty
    parts are dropped rather than padded, so ``("t", "787")`` yields
    ``"T-787-NNNNN"``. Labels are not guaranteed unique.
    """

    state_part = (state or "").strip().upper()[:2]
    zip_part = _NON_DIGITS.sub("", (zip_code or "").strip())[:5]
    source = rng if rng is not None else secrets.SystemRandom()
    unique_part = str(source.randrange(PASSPORT_SUFFIX_MIN, PASSPORT_SUFFIX_MAX))
    return "-".join(part for part in (state_part, zip_part, unique_part) if part)
