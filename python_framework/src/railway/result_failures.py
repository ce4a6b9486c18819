"""
Convenience factory methods for the mkrpki failure kinds.

    from railway.result_failures import ResultFailures

    # Instead of:
    Result.failure(ErrorCode.INVALID_SERIAL, "serial must be positive: 0")

    # Write:
    ResultFailures.invalid_serial("serial must be positive: 0")
"""

from __future__ import annotations

from pyasn1.error import PyAsn1Error

from railway.failure import ErrorCode
from railway.result import Result


class ResultFailures:
    """Factory methods for the failure kinds object builders report."""

    @staticmethod
    def invalid_resource_spec(message: str) -> Result:
        """Malformed, overlapping or out-of-range resource input."""
        return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, message)

    @staticmethod
    def invalid_validity_window(message: str) -> Result:
        return Result.failure(ErrorCode.INVALID_VALIDITY_WINDOW, message)

    @staticmethod
    def invalid_serial(message: str) -> Result:
        return Result.failure(ErrorCode.INVALID_SERIAL, message)

    @staticmethod
    def missing_required_field(message: str) -> Result:
        """A role-mandatory URI, or an empty prefix/file list."""
        return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, message)

    @staticmethod
    def file_unavailable(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.FILE_UNAVAILABLE, message, exception)

    @staticmethod
    def signing_failure(message: str, exception: BaseException | None = None) -> Result:
        return Result.failure(ErrorCode.SIGNING_FAILURE, message, exception)

    @staticmethod
    def encoding_invariant_violation(message: str, exception: BaseException | None = None) -> Result:
        """Internal defect: the ASN.1 layer refused a structure we built."""
        return Result.failure(ErrorCode.ENCODING_INVARIANT_VIOLATION, message, exception)

    @staticmethod
    def configuration_error(message: str) -> Result:
        return Result.failure(ErrorCode.CONFIGURATION_ERROR, message)

    @staticmethod
    def from_exception(message: str, exception: BaseException) -> Result:
        """
        Auto-map a library exception to the appropriate ErrorCode.

        Mapping:
          - OSError (missing file, permission denied, ...) → FILE_UNAVAILABLE
          - PyAsn1Error → ENCODING_INVARIANT_VIOLATION
          - Everything else (cryptography errors, bad keys) → SIGNING_FAILURE
        """
        code = _map_exception_to_code(exception)
        return Result.failure(code, f"{message}: {exception}", exception)


def _map_exception_to_code(exception: BaseException) -> ErrorCode:
    match exception:
        case OSError():
            return ErrorCode.FILE_UNAVAILABLE
        case PyAsn1Error():
            return ErrorCode.ENCODING_INVARIANT_VIOLATION
        case _:
            return ErrorCode.SIGNING_FAILURE
