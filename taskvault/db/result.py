"""Tagged success/error results returned by repositories."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    DATABASE_ERROR = "DATABASE_ERROR"


@dataclass(frozen=True)
class RepositoryError:
    code: ErrorCode
    message: str


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Error:
    error: RepositoryError

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_not_found(self) -> bool:
        return self.error.code is ErrorCode.NOT_FOUND


Result = Union[Success[T], Error]


def not_found(entity: str, entity_id: str) -> Error:
    return Error(RepositoryError(ErrorCode.NOT_FOUND, f"{entity} {entity_id} not found"))


def failure(code: ErrorCode, message: str) -> Error:
    return Error(RepositoryError(code, message))
