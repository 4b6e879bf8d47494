"""
MonthKey -- the ``MMYYYY`` month identifier used as every ledger sort key.

Invariants enforced:
    - Exactly 6 characters: ``MM`` (01-12) followed by ``YYYY``.
    - Invalid input raises InvalidMonthKeyError; there is no silent default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from energy_kernel.exceptions import InvalidMonthKeyError

_MONTH_KEY_RE = re.compile(r"^(0[1-9]|1[0-2])[0-9]{4}$")


@dataclass(frozen=True, slots=True, order=False)
class MonthKey:
    """Validated ``MMYYYY`` month key."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not _MONTH_KEY_RE.fullmatch(self.value):
            raise InvalidMonthKeyError(self.value)

    @classmethod
    def parse(cls, raw: Any) -> MonthKey:
        if isinstance(raw, MonthKey):
            return raw
        return cls(raw)

    @property
    def month(self) -> int:
        return int(self.value[:2])

    @property
    def year(self) -> int:
        return int(self.value[2:])

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.year, self.month)

    def __str__(self) -> str:
        return self.value
