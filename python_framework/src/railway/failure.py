"""
Failure description: structured error information for the failure track.

Every object builder in mkrpki returns a Result; when it fails, the failure
carries one ErrorCode naming the kind of mistake (bad resources, bad dates,
bad serial, missing URI, unreadable file, signing problem, internal encoding
defect) plus a human-readable message that echoes the offending input.

Enum + frozen dataclass gives __eq__, __hash__ and __repr__ for free, and
One member per way a build can fail; compared with `is`.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Error codes reported on the failure track and printed by the CLI.

    Caller errors (bad input, user-triggered):
      INVALID_RESOURCE_SPEC, INVALID_VALIDITY_WINDOW, INVALID_SERIAL,
      MISSING_REQUIRED_FIELD, FILE_UNAVAILABLE
    Environment / defect errors:
      SIGNING_FAILURE, ENCODING_INVARIANT_VIOLATION, CONFIGURATION_ERROR
    """

    INVALID_RESOURCE_SPEC = "INVALID_RESOURCE_SPEC"
    """Malformed, overlapping or out-of-range address/AS input; duplicate entries."""

    INVALID_VALIDITY_WINDOW = "INVALID_VALIDITY_WINDOW"
    """Inverted or zero-length validity or update window."""

    INVALID_SERIAL = "INVALID_SERIAL"
    """Serial or manifest number ≤ 0, or a negative CRL number."""

    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    """A URI or list the certificate role or object kind needs is absent."""

    FILE_UNAVAILABLE = "FILE_UNAVAILABLE"
    """A key or manifest source file is missing, unreadable or unnameable."""

    SIGNING_FAILURE = "SIGNING_FAILURE"
    """Key/algorithm mismatch or the signing primitive itself failed."""

    ENCODING_INVARIANT_VIOLATION = "ENCODING_INVARIANT_VIOLATION"
    """An ASN.1 structure violated its own tag/length rules; always a defect."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Invalid MKRPKI_* settings."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Why a build failed: code, message, the causing exception if any, and when.

    >>> desc = FailureDescription(ErrorCode.INVALID_SERIAL, "serial must be positive: 0")
    >>> desc.code
    <ErrorCode.INVALID_SERIAL: 'INVALID_SERIAL'>
    >>> desc.message
    'serial must be positive: 0'
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @staticmethod
    def create(
        code: ErrorCode,
        message: str,
        exception: Optional[BaseException] = None,
    ) -> FailureDescription:
        return FailureDescription(code=code, message=message, exception=exception)

    def describe(self) -> str:
        """One-line ``CODE: message`` form used for CLI error output."""
        return f"{self.code.value}: {self.message}"

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, when there is one."""
        if self.exception is None:
            return self.message
        tb = "".join(traceback.format_exception(type(self.exception), self.exception, self.exception.__traceback__))
        return f"{self.message}\n{tb}"
