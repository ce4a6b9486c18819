"""
Unit tests for the CRL factory.

Test categories:
  - Success track: v2 CRL, sorted revocations, AKI + CRL Number, signature
  - Failure track: duplicate serials, bad serials, bad windows, negative number
"""

from __future__ import annotations

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from pyasn1_modules import rfc5280
from railway import ErrorCode, ResultAssertions

from mkrpki.domain.models import CrlSpec, KeyPair, RevokedEntry
from mkrpki.encoding.crl import build_crl, sorted_revocations
from mkrpki.encoding.signer import key_identifier
from tests.conftest import decode_crl, decode_extension_value, utc


def _spec(*serials: int, number: int = 7) -> CrlSpec:
    return CrlSpec(
        this_update=utc(2024, 3, 1),
        next_update=utc(2024, 3, 2),
        number=number,
        revoked=tuple(RevokedEntry(serial, utc(2024, 2, serial % 28 + 1)) for serial in serials),
    )


class TestBuildCrl:
    def test_signature_verifies_under_issuer_key(self, ca_key: KeyPair) -> None:
        der = ResultAssertions.assert_success(build_crl(ca_key, _spec(3, 5)))

        crl = x509.load_der_x509_crl(der)
        ca_key.public_key.verify(crl.signature, crl.tbs_certlist_bytes, padding.PKCS1v15(), hashes.SHA256())

    def test_revoked_entries_sorted_by_serial(self, ca_key: KeyPair) -> None:
        der = build_crl(ca_key, _spec(9, 2, 5)).value()

        entries = decode_crl(der)["tbsCertList"]["revokedCertificates"]

        assert [int(entry["userCertificate"]) for entry in entries] == [2, 5, 9]

    def test_empty_crl_omits_revoked_certificates(self, ca_key: KeyPair) -> None:
        der = build_crl(ca_key, _spec()).value()

        tbs = decode_crl(der)["tbsCertList"]

        assert not tbs["revokedCertificates"].isValue
        assert len(x509.load_der_x509_crl(der)) == 0

    def test_version_and_extensions(self, ca_key: KeyPair) -> None:
        tbs = decode_crl(build_crl(ca_key, _spec(1)).value())["tbsCertList"]

        assert int(tbs["version"]) == 1
        extensions = list(tbs["crlExtensions"])
        assert [e["extnID"] for e in extensions] == [
            rfc5280.id_ce_authorityKeyIdentifier,
            rfc5280.id_ce_cRLNumber,
        ]
        aki = decode_extension_value(extensions[0], rfc5280.AuthorityKeyIdentifier())
        number = decode_extension_value(extensions[1], rfc5280.CRLNumber())
        assert bytes(aki["keyIdentifier"]) == key_identifier(ca_key.public_key)
        assert int(number) == 7

    def test_crl_number_zero_is_allowed(self, ca_key: KeyPair) -> None:
        ResultAssertions.assert_success(build_crl(ca_key, _spec(number=0)))


class TestCrlFailures:
    def test_duplicate_serial_is_rejected(self, ca_key: KeyPair) -> None:
        """
        GIVEN revoked entries {5, 3, 5}
        WHEN the CRL is built
        THEN it fails with INVALID_RESOURCE_SPEC naming serial 5, before signing.
        """
        result = build_crl(ca_key, _spec(5, 3, 5))

        ResultAssertions.assert_failure(result, ErrorCode.INVALID_RESOURCE_SPEC)
        ResultAssertions.assert_failure_message_contains(result, "duplicate revoked serial numbers: 5")

    def test_non_positive_revoked_serial(self) -> None:
        result = sorted_revocations((RevokedEntry(0, utc(2024)),))
        ResultAssertions.assert_failure(result, ErrorCode.INVALID_SERIAL)

    def test_next_update_must_be_later(self, ca_key: KeyPair) -> None:
        spec = CrlSpec(this_update=utc(2024, 3, 2), next_update=utc(2024, 3, 2), number=1)
        ResultAssertions.assert_failure(build_crl(ca_key, spec), ErrorCode.INVALID_VALIDITY_WINDOW)

    def test_negative_crl_number(self, ca_key: KeyPair) -> None:
        ResultAssertions.assert_failure(build_crl(ca_key, _spec(number=-1)), ErrorCode.INVALID_SERIAL)
