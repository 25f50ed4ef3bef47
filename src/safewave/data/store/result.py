from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    UNAVAILABLE = 'unavailable'      # store failed to open; running stateless
    INTEGRITY = 'integrity'          # constraint violation, transaction rolled back
    DATABASE = 'database'            # any other storage failure, rolled back
    NOT_FOUND = 'not_found'
    INVALID_INPUT = 'invalid_input'


class StoreResult(BaseModel):
    """
    Outcome of a store write. Failures are reported here instead of raised.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, data: Any = None) -> 'StoreResult':
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, data: Any = None) -> 'StoreResult':
        return cls(success=False, kind=kind, error=error, data=data)
