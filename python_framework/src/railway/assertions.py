"""
Assertions used across the mkrpki test suite.

Usage in tests:
    from railway import ErrorCode, ResultAssertions

    def test_ta_certificate_builds():
        der = ResultAssertions.assert_success(build_ta_certificate(key, spec))
        assert der[0] == 0x30

    def test_zero_serial_is_rejected():
        result = build_ta_certificate(key, replace(spec, serial=0))
        ResultAssertions.assert_failure(result, ErrorCode.INVALID_SERIAL)
        ResultAssertions.assert_failure_message_contains(result, "serial")
"""

from __future__ import annotations

from typing import TypeVar

from railway.failure import ErrorCode, FailureDescription
from railway.result import Result

T = TypeVar("T")


class ResultAssertions:
    """pytest helpers for asserting on Result values."""

    @staticmethod
    def assert_success(result: Result[T], message: str = "") -> T:
        """Assert the Result is a Success and return the value."""
        context = f" ({message})" if message else ""
        assert result.is_success(), (
            f"Expected Success but got Failure("
            f"{result.error().code.value}: {result.error().message!r}){context}"
        )
        return result.value()

    @staticmethod
    def assert_failure(
        result: Result[T],
        expected_code: ErrorCode | None = None,
        message: str = "",
    ) -> FailureDescription:
        """
        Fail the test unless the Result failed, with the given code when one is passed.

            error = ResultAssertions.assert_failure(result, ErrorCode.INVALID_RESOURCE_SPEC)
        """
        context = f" ({message})" if message else ""
        assert result.is_failure(), (
            f"Expected Failure but got Success({result.value()!r}){context}"
        )
        error = result.error()
        if expected_code is not None:
            assert error.code == expected_code, (
                f"Expected error code {expected_code.value} "
                f"but got {error.code.value}: {error.message!r}{context}"
            )
        return error

    @staticmethod
    def assert_failure_message_contains(result: Result[T], substring: str) -> None:
        """Assert that the failure message contains the given substring (case-insensitive)."""
        assert result.is_failure(), (
            f"Expected Failure but got Success({result.value()!r})"
        )
        error = result.error()
        assert substring.lower() in error.message.lower(), (
            f"Expected failure message to contain {substring!r} "
            f"but message was: {error.message!r}"
        )
