from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """
    Why a pipeline stage gave up.

    Transient model statuses (403/404/429/5xx) only move the ladder forward;
    they surface as ALL_MODELS_FAILED once every model has been tried.
    """

    CONFIGURATION = "configuration"
    BAD_REQUEST = "bad_request"
    UPSTREAM_OTHER = "upstream_other"
    TRANSPORT = "transport"
    ALL_MODELS_FAILED = "all_models_failed"
    PARSE = "parse"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    detail: str
    status_code: Optional[int] = None
    body: Optional[str] = None

    @property
    def status(self) -> str:
        """Human readable status placed on the ProductRecord."""
        return self.detail


Result = Union[Success[Any], Failure]


def redact_key(s: str) -> str:
    """
    Redact 'key=...' in URLs or text so we never leak API keys in logs/responses.
    """
    if not s:
        return s
    # Replace key=XXXXX (until & or whitespace)
    return re.sub(r"(key=)([^&\s]+)", r"\1REDACTED", s)


def configuration_failure(key: str) -> Failure:
    return Failure(ErrorKind.CONFIGURATION, f"Missing {key}")


def bad_request_failure(body: str) -> Failure:
    return Failure(
        ErrorKind.BAD_REQUEST,
        f"API 400 (Bad request). Body: {body}",
        status_code=400,
        body=body,
    )


def upstream_failure(status_code: int, body: str) -> Failure:
    return Failure(
        ErrorKind.UPSTREAM_OTHER,
        f"API {status_code}: {body}",
        status_code=status_code,
        body=body,
    )


def transport_failure(exc: BaseException) -> Failure:
    return Failure(ErrorKind.TRANSPORT, redact_key(f"{exc.__class__.__name__}: {exc}"))


def exhausted_failure(last_error: Optional[str]) -> Failure:
    return Failure(
        ErrorKind.ALL_MODELS_FAILED,
        f"All models failed. Last error: {last_error or 'no model returned content'}",
    )


def parse_failure(exc: BaseException) -> Failure:
    return Failure(ErrorKind.PARSE, f"Parse error: {exc}")
