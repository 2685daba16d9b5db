from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

T = TypeVar("T")


class FinanceError(Exception):
    code = "error"


class ValidationError(FinanceError, ValueError):
    code = "validation_error"


class NotFoundError(FinanceError, LookupError):
    code = "not_found"


class ConsistencyError(FinanceError):
    """A planning entry and its ledger transaction disagree.

    Raised after the inconsistency has been logged; the affected ids are kept
    on the exception so the caller can offer a retry.
    """

    code = "consistency_error"

    def __init__(
        self,
        message: str,
        *,
        planning_id: Optional[int] = None,
        transaction_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.planning_id = planning_id
        self.transaction_id = transaction_id


class StoreError(FinanceError):
    code = "store_error"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    code: Optional[str] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, exc: FinanceError) -> "Outcome[T]":
        return cls(ok=False, error=str(exc), code=exc.code)


def capture(fn: Callable[[], T]) -> Outcome[T]:
    try:
        return Outcome.success(fn())
    except FinanceError as exc:
        return Outcome.failure(exc)
    except SQLAlchemyError as exc:
        return Outcome.failure(StoreError(str(exc)))
