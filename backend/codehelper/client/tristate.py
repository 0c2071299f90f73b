"""Loading-or-known values for inputs that arrive asynchronously."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Literal, TypeVar, Union

T = TypeVar("T")


class Loading(Enum):
    LOADING = "loading"

    def __repr__(self) -> str:
        return "LOADING"


LOADING = Loading.LOADING


@dataclass(frozen=True)
class Known(Generic[T]):
    value: T


TriState = Union[Literal[Loading.LOADING], Known[T]]


__all__ = ["LOADING", "Known", "Loading", "TriState"]
