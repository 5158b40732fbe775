"""Tri-state envelope carrying asynchronous outcomes to the view-models.

Streaming operations emit ``Loading`` once, then terminal ``Success`` or
``Error`` values. One-shot repository calls return a ``Result``, which is the
terminal half of the envelope.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from .errors import TASWearError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Error:
    message: str
    error: Optional[TASWearError] = None

    @classmethod
    def of(cls, exc: Exception, fallback: str = "Unknown error occurred") -> "Error":
        return cls(str(exc) or fallback, exc if isinstance(exc, TASWearError) else None)


Resource = Union[Loading, Success[T], Error]
Result = Union[Success[T], Error]


def is_success(resource: "Resource[T]") -> bool:
    return isinstance(resource, Success)


def unwrap_or(resource: "Resource[T]", default: T) -> T:
    if isinstance(resource, Success):
        return resource.value
    return default


def map_success(resource: "Resource[T]", fn: Callable[[T], U]) -> "Resource[U]":
    if isinstance(resource, Success):
        return Success(fn(resource.value))
    return resource
