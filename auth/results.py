"""
auth/results.py -- Tagged result type for core operations.

Core operations return Ok(value) or Err(error) instead of raising or returning
None, so callers handle every outcome explicitly:

    result = verifier.authenticate(email, password, role)
    if isinstance(result, Err):
        ...  # result.error is an AuthError subclass
    view = result.value
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from auth.errors import AuthError

T = TypeVar("T")
E = TypeVar("E", bound=AuthError)


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]
