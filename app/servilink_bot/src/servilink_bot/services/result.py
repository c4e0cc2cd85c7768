"""Tagged results returned by every API adapter.

Services never raise for expected backend failures and never hand raw JSON
to callers: they return ``Ok(value)`` or ``Err(kind, message)``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    VALIDATION = "validation"
    SERVER = "server"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def retryable(self) -> bool:
        return self.kind in {ErrorKind.NETWORK, ErrorKind.SERVER}


Result = Union[Ok[T], Err]
