"""
Stage outcomes for the valuation pipeline.

Each pipeline stage returns exactly one of:
- Success: the stage produced a value, continue
- InsufficientData: expected terminal state, not enough usable data
- Failure: the stage could not complete and no fallback applies
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class InsufficientData:
    reason: str


@dataclass(frozen=True)
class Failure:
    reason: str


Outcome = Union[Success[T], InsufficientData, Failure]
