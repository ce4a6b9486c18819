"""Trust Anchor Locator text (RFC 8630)."""

from __future__ import annotations

import base64

from railway import ErrorCode, Result

from mkrpki.domain.models import Tal
from mkrpki.encoding.signer import check_public_key, subject_public_key_info_der


def build_tal(tal: Tal) -> Result[bytes]:
    """
    URIs one per line in the given order, a blank line, then the base64 of
    the trust anchor's SubjectPublicKeyInfo on a single line.
    """
    if not tal.uris:
        return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "a TAL needs at least one URI")
    return check_public_key(tal.public_key).map(
        lambda key: (
            "\n".join(tal.uris)
            + "\n\n"
            + base64.b64encode(subject_public_key_info_der(key)).decode("ascii")
            + "\n"
        ).encode("utf-8")
    )
