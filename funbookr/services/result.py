"""Typed success/failure result returned by every booking-core operation.

Expected failures (bad input, missing rows, ownership, business rules,
gateway problems) travel as a Failure value instead of an exception so
callers can decide how to surface them.
"""

import enum
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(enum.StrEnum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    BUSINESS_RULE = "business_rule"
    EXTERNAL = "external"


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    rule: str | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: Failure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, rule: str | None = None) -> "Result[T]":
        return cls(error=Failure(kind, message, rule))

    @classmethod
    def from_failure(cls, failure: Failure) -> "Result[T]":
        return cls(error=failure)


def validation(message: str, rule: str | None = None) -> Result:
    return Result.fail(ErrorKind.VALIDATION, message, rule)


def not_found(message: str) -> Result:
    return Result.fail(ErrorKind.NOT_FOUND, message, "not_found")


def forbidden(message: str) -> Result:
    return Result.fail(ErrorKind.FORBIDDEN, message, "forbidden")


def business_rule(message: str, rule: str | None = None) -> Result:
    return Result.fail(ErrorKind.BUSINESS_RULE, message, rule)


def external(message: str) -> Result:
    return Result.fail(ErrorKind.EXTERNAL, message, "external")
