"""
Module: energy_kernel.selectors.base
Responsibility: Shared query helpers for the read-only selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Selectors never add, delete, flush or commit.
    - Rows leave a selector as frozen DTOs, never as ORM instances.
"""

from abc import ABC
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

InfoType = TypeVar("InfoType")


class BaseSelector(ABC):
    """
    Contract:
        The session belongs to the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _where(model: type, **filters: Any) -> Select:
        """``SELECT model`` filtered on every keyword whose value is not None."""
        stmt = select(model)
        for column, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(model, column) == value)
        return stmt

    def _infos(self, stmt: Select, to_info: Callable[[Any], InfoType]) -> list[InfoType]:
        return [to_info(row) for row in self.session.execute(stmt).scalars()]
