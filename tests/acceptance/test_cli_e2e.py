"""
Acceptance tests: the mkrpki CLI end to end.

Success scenarios check the objects the `chain` fixture produced the way a
relying party would (signatures, issuer links, payload contents). Failure
scenarios check the CLI contract: exit status 1, `error: CODE: message` on
stderr, nothing on stdout and no file written.
"""

from __future__ import annotations

import base64
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding
from pyasn1.codec.der import decoder as der_decoder
from pyasn1.codec.der import encoder as der_encoder
from pyasn1_modules import rfc5652, rfc6482, rfc6486

from mkrpki import __version__
from tests.acceptance.conftest import BASE_URI, Chain, run_cli, run_ok, signed_object_args
from tests.conftest import decode_signed_data, encapsulated_content


def _certificate(path: Path) -> x509.Certificate:
    return x509.load_der_x509_certificate(path.read_bytes())


def _ee_certificate(signed_data: rfc5652.SignedData) -> x509.Certificate:
    return x509.load_der_x509_certificate(der_encoder.encode(signed_data["certificates"][0]["certificate"]))


def _verify(issuer: x509.Certificate, signature: bytes, data: bytes) -> None:
    issuer.public_key().verify(signature, data, padding.PKCS1v15(), hashes.SHA256())


# ─────────────────────── Success scenarios ───────────────────────


class TestRepositoryChain:
    def test_key_files_are_der(self, chain: Chain) -> None:
        private = serialization.load_der_private_key(chain.key("ta.der").read_bytes(), password=None)
        public = serialization.load_der_public_key(chain.key("ta.pub").read_bytes())

        assert private.key_size == 2048
        assert public.public_numbers() == private.public_key().public_numbers()

    def test_ta_is_self_signed(self, chain: Chain) -> None:
        ta = _certificate(chain.published("ta.cer"))

        assert ta.issuer == ta.subject
        _verify(ta, ta.signature, ta.tbs_certificate_bytes)

    def test_tal_points_at_ta_key(self, chain: Chain) -> None:
        """
        GIVEN `mkrpki ta` with an rsync and an https TAL URI
        WHEN the TAL is read
        THEN it lists both URIs, a blank line and the TA's SubjectPublicKeyInfo.
        """
        lines = chain.published("ta.tal").read_text().split("\n")

        assert lines[:3] == [f"{BASE_URI}/ta.cer", "https://example.net/ta.cer", ""]
        assert base64.b64decode(lines[3]) == chain.key("ta.pub").read_bytes()

    def test_ta_without_output_tal_leaves_tal_files_alone(self, chain: Chain, tmp_path: Path) -> None:
        """
        GIVEN a file named ta.tal next to the certificate output
        WHEN `mkrpki ta` runs without --output-tal
        THEN only the certificate is written and ta.tal keeps its contents.
        """
        existing = tmp_path / "ta.tal"
        existing.write_text("keep me")

        result = run_ok(
            "ta",
            "--key", chain.key("ta.der"),
            "--serial", "1",
            "--ca-repository", f"{BASE_URI}/",
            "--rpki-manifest", f"{BASE_URI}/ta.mft",
            "--v4", "10.0.0.0/8",
            "--tal-rsync-uri", f"{BASE_URI}/ta.cer",
            "--output", tmp_path / "ta.cer",
        )

        assert result.stdout.splitlines() == [str(tmp_path / "ta.cer")]
        assert existing.read_text() == "keep me"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["ta.cer", "ta.tal"]

    def test_ca_is_signed_by_ta(self, chain: Chain) -> None:
        ta = _certificate(chain.published("ta.cer"))
        ca = _certificate(chain.published("ca.cer"))

        assert ca.issuer == ta.subject
        _verify(ta, ca.signature, ca.tbs_certificate_bytes)
        spki = ca.public_key().public_bytes(
            serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        assert spki == chain.key("ca.pub").read_bytes()

    def test_crl_is_signed_by_ca_with_sorted_revocations(self, chain: Chain) -> None:
        ca = _certificate(chain.published("ca.cer"))
        crl = x509.load_der_x509_crl(chain.published("ca/ca.crl").read_bytes())

        _verify(ca, crl.signature, crl.tbs_certlist_bytes)
        assert [entry.serial_number for entry in crl] == [3, 5, 9]
        assert crl.extensions.get_extension_for_class(x509.CRLNumber).value.crl_number == 1

    def test_roa_payload_and_ee_certificate(self, chain: Chain) -> None:
        signed_data = decode_signed_data(chain.published("ca/a.roa").read_bytes())
        roa, _ = der_decoder.decode(encapsulated_content(signed_data), asn1Spec=rfc6482.RouteOriginAttestation())

        assert int(roa["asID"]) == 64496
        addresses = roa["ipAddrBlocks"][0]["addresses"]
        assert [int(a["maxLength"]) if a["maxLength"].isValue else None for a in addresses] == [26, None]

        ee = _ee_certificate(signed_data)
        _verify(_certificate(chain.published("ca.cer")), ee.signature, ee.tbs_certificate_bytes)
        assert ee.serial_number == 10

    def test_manifest_lists_both_files(self, chain: Chain) -> None:
        signed_data = decode_signed_data(chain.published("ca/ca.mft").read_bytes())
        manifest, _ = der_decoder.decode(encapsulated_content(signed_data), asn1Spec=rfc6486.Manifest())

        assert [str(item["file"]) for item in manifest["fileList"]] == ["a.roa", "ca.crl"]
        assert int(manifest["manifestNumber"]) == 1
        assert str(manifest["nextUpdate"]) == "20240302000000Z"

    def test_written_paths_are_printed(self, tmp_path: Path) -> None:
        result = run_ok("key", "--private", tmp_path / "k.der", "--public", tmp_path / "k.pub")

        assert result.stdout.splitlines() == [str(tmp_path / "k.der"), str(tmp_path / "k.pub")]


# ─────────────────────── Failure scenarios ───────────────────────


class TestCliFailures:
    def test_bad_max_length_writes_nothing(self, chain: Chain, tmp_path: Path) -> None:
        """
        GIVEN a ROA prefix 192.0.2.0/24 with max-length 16
        WHEN `mkrpki roa` runs
        THEN it exits 1 with INVALID_RESOURCE_SPEC and no ROA file exists.
        """
        output = tmp_path / "bad.roa"

        result = run_cli(
            "roa",
            "--issuer-key", chain.key("ca.der"),
            "--serial", "20",
            *signed_object_args(f"{BASE_URI}/ca/bad.roa"),
            "--asn", "64496",
            "--prefixes", "192.0.2.0/24-16",
            "--output", output,
        )

        assert result.exit_code == 1
        assert result.stdout == ""
        assert "error: INVALID_RESOURCE_SPEC" in result.stderr
        assert not output.exists()

    def test_missing_issuer_key(self, tmp_path: Path) -> None:
        result = run_cli(
            "crl",
            "--issuer-key", tmp_path / "absent.der",
            "--crl", "1",
            "--output", tmp_path / "x.crl",
        )

        assert result.exit_code == 1
        assert "error: FILE_UNAVAILABLE" in result.stderr
        assert not (tmp_path / "x.crl").exists()

    def test_duplicate_revoked_serial(self, chain: Chain, tmp_path: Path) -> None:
        result = run_cli(
            "crl",
            "--issuer-key", chain.key("ca.der"),
            "-c", "5,3,5",
            "--crl", "2",
            "--output", tmp_path / "dup.crl",
        )

        assert result.exit_code == 1
        assert "error: INVALID_RESOURCE_SPEC: duplicate revoked serial numbers: 5" in result.stderr

    def test_manifest_with_missing_file(self, chain: Chain, tmp_path: Path) -> None:
        result = run_cli(
            "mft",
            "--issuer-key", chain.key("ca.der"),
            "--serial", "21",
            *signed_object_args(f"{BASE_URI}/ca/ca.mft"),
            "--number", "2",
            "--files", tmp_path / "gone.roa",
            "--output", tmp_path / "ca.mft",
        )

        assert result.exit_code == 1
        assert "error: FILE_UNAVAILABLE" in result.stderr
        assert not (tmp_path / "ca.mft").exists()

    def test_ta_failure_writes_neither_certificate_nor_tal(self, chain: Chain, tmp_path: Path) -> None:
        result = run_cli(
            "ta",
            "--key", chain.key("ta.der"),
            "--serial", "0",
            "--ca-repository", f"{BASE_URI}/",
            "--rpki-manifest", f"{BASE_URI}/ta.mft",
            "--v4", "10.0.0.0/8",
            "--tal-rsync-uri", f"{BASE_URI}/ta.cer",
            "--output", tmp_path / "ta.cer",
        )

        assert result.exit_code == 1
        assert "error: INVALID_SERIAL" in result.stderr
        assert list(tmp_path.iterdir()) == []

    def test_overclaiming_ca_is_refused(self, chain: Chain, tmp_path: Path) -> None:
        result = run_cli(
            "cer",
            "--issuer-key", chain.key("ta.der"),
            "--subject-key", chain.key("ca.pub"),
            "--serial", "3",
            "--issuer-v4", "10.0.0.0/8",
            "--crl", f"{BASE_URI}/ta.crl",
            "--ca-issuer", f"{BASE_URI}/ta.cer",
            "--ca-repository", f"{BASE_URI}/ca2/",
            "--rpki-manifest", f"{BASE_URI}/ca2/ca.mft",
            "--v4", "192.0.2.0/24",
            "--output", tmp_path / "ca2.cer",
        )

        assert result.exit_code == 1
        assert "192.0.2.0/24" in result.stderr
        assert not (tmp_path / "ca2.cer").exists()

    def test_invalid_configuration(self, tmp_path: Path) -> None:
        result = run_cli(
            "key", "--private", tmp_path / "k.der", "--public", tmp_path / "k.pub",
            env={"MKRPKI_MANIFEST_HASH_WORKERS": "0"},
        )

        assert result.exit_code == 1
        assert "error: CONFIGURATION_ERROR" in result.stderr
        assert not (tmp_path / "k.der").exists()

    def test_usage_error_for_bad_uri(self, tmp_path: Path) -> None:
        result = run_cli(
            "roa",
            "--issuer-key", tmp_path / "k.der",
            "--serial", "1",
            "--crl", "ftp://example.net/ca.crl",
            "--ca-issuer", f"{BASE_URI}/ca.cer",
            "--signed-object", f"{BASE_URI}/a.roa",
            "--asn", "1",
            "--output", tmp_path / "a.roa",
        )

        assert result.exit_code == 2
        assert "ftp://example.net/ca.crl" in result.stderr


def test_version() -> None:
    result = run_cli("--version")

    assert result.exit_code == 0
    assert __version__ in result.stdout
