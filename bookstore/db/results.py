"""
Tagged outcomes returned by every gateway operation.

Handlers branch on the outcome type instead of catching database errors:
``Ok`` carries the value, ``Conflict`` a uniqueness or stock clash,
``NotFound`` an absent or soft-deleted record, ``Failure`` anything the
database refused for other reasons.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar('T')


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Conflict:
    message: str


@dataclass(frozen=True)
class NotFound:
    message: str


@dataclass(frozen=True)
class Failure:
    message: str = 'Internal server error'


Outcome = Union[Ok[T], Conflict, NotFound, Failure]
