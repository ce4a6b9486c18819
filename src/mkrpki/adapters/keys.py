"""
RSA key adapter: generate key pairs and load DER key files.

Adapter layer: implements the KeyGenerator and KeyLoader ports using
cryptography (PyCA). Key files are raw DER, one key per file:

  private key: PKCS#1 RSAPrivateKey when written; PKCS#1 or PKCS#8 accepted
  public key:  SubjectPublicKeyInfo

Exceptions never escape: an unreadable file becomes FILE_UNAVAILABLE, a
file that does not hold an RSA-2048 key becomes SIGNING_FAILURE.
"""

from __future__ import annotations

from pathlib import Path

import structlog
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from railway import ErrorCode, Result, ResultFailures

from mkrpki.domain.models import Artifact, KeyPair
from mkrpki.domain.profile import RSA_KEY_SIZE, RSA_PUBLIC_EXPONENT
from mkrpki.encoding.signer import check_private_key, check_public_key, subject_public_key_info_der

log = structlog.get_logger()


def _read_bytes(path: Path) -> Result[bytes]:
    try:
        return Result.success(path.read_bytes())
    except OSError as e:
        return ResultFailures.from_exception(f"cannot read key file {path}", e)


class RsaKeyGenerator:
    """
    Generate fresh RSA-2048 key pairs (public exponent 65537).

    Implements the KeyGenerator port.
    """

    def generate(self) -> Result[KeyPair]:
        return Result.from_computation(
            lambda: KeyPair(rsa.generate_private_key(RSA_PUBLIC_EXPONENT, RSA_KEY_SIZE)),
            ErrorCode.SIGNING_FAILURE,
            "RSA key generation failed",
        ).peek(lambda _: log.debug("keys.generated", size=RSA_KEY_SIZE))


class DerKeyStore:
    """
    Load DER-encoded RSA keys from disk.

    Implements the KeyLoader port.
    """

    def load_private_key(self, path: Path) -> Result[KeyPair]:
        return (
            _read_bytes(path)
            .flat_map(
                lambda der: Result.from_computation(
                    lambda: serialization.load_der_private_key(der, password=None),
                    ErrorCode.SIGNING_FAILURE,
                    f"{path} is not a DER private key",
                )
            )
            .flat_map(check_private_key)
            .map(KeyPair)
            .peek(lambda _: log.debug("keys.private_loaded", path=str(path)))
        )

    def load_public_key(self, path: Path) -> Result[rsa.RSAPublicKey]:
        return (
            _read_bytes(path)
            .flat_map(
                lambda der: Result.from_computation(
                    lambda: serialization.load_der_public_key(der),
                    ErrorCode.SIGNING_FAILURE,
                    f"{path} is not a DER SubjectPublicKeyInfo",
                )
            )
            .flat_map(check_public_key)
            .peek(lambda _: log.debug("keys.public_loaded", path=str(path)))
        )


def key_pair_artifacts(key: KeyPair, private_path: Path, public_path: Path) -> list[Artifact]:
    """The two files `mkrpki key` writes: PKCS#1 private key, SPKI public key."""
    private_der = key.private_key.private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )
    return [
        Artifact(private_path, private_der),
        Artifact(public_path, subject_public_key_info_der(key.public_key)),
    ]
