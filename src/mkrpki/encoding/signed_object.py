"""
EE / Signed-Object Factory: the CMS SignedData envelope of RFC 6488.

Every ROA and manifest is built the same way:

  1. A fresh one-time key pair comes from the injected KeyGenerator and an
     EE certificate is issued for it (no Basic Constraints, digitalSignature,
     SIA pointing at the object's own publication URI).
  2. The type-specific payload (roa.py, manifest.py) is DER-encoded and
     becomes eContent.
  3. The signed attributes (content-type, message-digest, signing-time) are
     signed with the EE key, and SignedData is assembled around them.

The signed attributes have two encodings. The signature covers them as an
explicit SET OF (tag 0x31); inside SignerInfo they travel under the
implicit [0] tag (0xA0). signed_attributes_for_signature and
embed_signed_attributes produce those two forms from the same attribute
list; the DER encoder sorts SET OF members identically in both.
"""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime

import structlog
from pyasn1.codec.der import decoder as der_decoder
from pyasn1.codec.der import encoder as der_encoder
from pyasn1.type import base, univ
from pyasn1_modules import rfc5280, rfc5652
from railway import ErrorCode, Result

from mkrpki.domain.models import CertificateSpec, KeyPair, ResourceSet, SignedObjectSpec
from mkrpki.domain.ports import KeyGenerator
from mkrpki.domain.profile import (
    ATTR_CONTENT_TYPE,
    ATTR_MESSAGE_DIGEST,
    ATTR_SIGNING_TIME,
    CMS_SIGNATURE_ALGORITHM,
    CT_SIGNED_DATA,
    DIGEST_ALGORITHM,
    SIGNED_DATA_VERSION,
    SIGNER_INFO_VERSION,
)
from mkrpki.encoding.certificate import build_ee_certificate
from mkrpki.encoding.signer import (
    algorithm_identifier,
    encode_der,
    encode_time,
    key_identifier,
    rsa_sign,
)

log = structlog.get_logger()


# ─────────────────────── Signed attributes ───────────────────────


def _attribute(attribute_type: univ.ObjectIdentifier, value: base.Asn1Item) -> rfc5652.Attribute:
    attribute = rfc5652.Attribute()
    attribute["attrType"] = attribute_type
    attribute["attrValues"].append(der_encoder.encode(value))
    return attribute


def build_signed_attributes(
    content_type: univ.ObjectIdentifier, payload_der: bytes, signing_time: datetime
) -> list[rfc5652.Attribute]:
    """content-type, message-digest (SHA-256 of eContent) and signing-time."""
    return [
        _attribute(ATTR_CONTENT_TYPE, univ.ObjectIdentifier(content_type)),
        _attribute(ATTR_MESSAGE_DIGEST, univ.OctetString(hashlib.sha256(payload_der).digest())),
        _attribute(ATTR_SIGNING_TIME, encode_time(signing_time)),
    ]


def signed_attributes_for_signature(attributes: list[rfc5652.Attribute]) -> Result[bytes]:
    """The bytes the signature is computed over: an explicit, untagged SET OF."""
    signed = rfc5652.SignedAttributes()
    for attribute in attributes:
        signed.append(attribute)
    return encode_der(signed, "signed attributes")


def embed_signed_attributes(signer_info: rfc5652.SignerInfo, attributes: list[rfc5652.Attribute]) -> None:
    """Place the attributes in SignerInfo.signedAttrs, under the implicit [0] tag."""
    embedded = signer_info["signedAttrs"]
    for attribute in attributes:
        embedded.append(attribute)


# ─────────────────────── SignedData ───────────────────────


def _signer_info(
    ee_key_id: bytes, attributes: list[rfc5652.Attribute], signature: bytes
) -> rfc5652.SignerInfo:
    signer_info = rfc5652.SignerInfo()
    signer_info["version"] = SIGNER_INFO_VERSION
    signer_info["sid"]["subjectKeyIdentifier"] = ee_key_id
    signer_info["digestAlgorithm"] = algorithm_identifier(DIGEST_ALGORITHM, null_parameters=False)
    embed_signed_attributes(signer_info, attributes)
    signer_info["signatureAlgorithm"] = algorithm_identifier(CMS_SIGNATURE_ALGORITHM)
    signer_info["signature"] = signature
    return signer_info


def _content_info(
    content_type: univ.ObjectIdentifier,
    payload_der: bytes,
    ee_certificate: rfc5280.Certificate,
    signer_info: rfc5652.SignerInfo,
) -> rfc5652.ContentInfo:
    signed_data = rfc5652.SignedData()
    signed_data["version"] = SIGNED_DATA_VERSION
    signed_data["digestAlgorithms"].append(algorithm_identifier(DIGEST_ALGORITHM, null_parameters=False))
    signed_data["encapContentInfo"]["eContentType"] = content_type
    signed_data["encapContentInfo"]["eContent"] = payload_der
    certificate = rfc5652.CertificateChoices()
    certificate["certificate"] = ee_certificate
    signed_data["certificates"].append(certificate)
    signed_data["signerInfos"].append(signer_info)

    content_info = rfc5652.ContentInfo()
    content_info["contentType"] = CT_SIGNED_DATA
    content_info["content"] = der_encoder.encode(signed_data)
    return content_info


def _decode_certificate(der: bytes) -> Result[rfc5280.Certificate]:
    return Result.from_computation(
        lambda: der_decoder.decode(der, asn1Spec=rfc5280.Certificate())[0],
        ErrorCode.ENCODING_INVARIANT_VIOLATION,
        "EE certificate does not decode as a Certificate",
    )


def sign_content(
    ee_key: KeyPair,
    ee_certificate: rfc5280.Certificate,
    content_type: univ.ObjectIdentifier,
    payload_der: bytes,
    signing_time: datetime,
) -> Result[bytes]:
    """Sign payload_der with the EE key and wrap it as a DER ContentInfo."""
    attributes = build_signed_attributes(content_type, payload_der, signing_time)
    return (
        signed_attributes_for_signature(attributes)
        .flat_map(lambda to_sign: rsa_sign(ee_key.private_key, to_sign))
        .flat_map(
            lambda signature: Result.from_computation(
                lambda: _content_info(
                    content_type,
                    payload_der,
                    ee_certificate,
                    _signer_info(key_identifier(ee_key.public_key), attributes, signature),
                ),
                ErrorCode.ENCODING_INVARIANT_VIOLATION,
                "cannot assemble SignedData",
            )
        )
        .flat_map(lambda content_info: encode_der(content_info, "ContentInfo"))
    )


def build_signed_object(
    issuer: KeyPair,
    key_generator: KeyGenerator,
    spec: SignedObjectSpec,
    ee_resources: ResourceSet,
    content_type: univ.ObjectIdentifier,
    payload_der: bytes,
) -> Result[bytes]:
    """
    Issue a one-time EE certificate and use it to sign payload_der.

    The EE certificate, and only it, travels in SignedData.certificates;
    the issuing CA's certificate is not embedded and there are no CRLs.
    """
    ee_spec = CertificateSpec(
        serial=spec.serial,
        validity=spec.validity,
        resources=ee_resources,
        crl_uri=spec.crl_uri,
        ca_issuer=spec.ca_issuer,
        signed_object=spec.signed_object,
    )
    signing_time = spec.signing_time or datetime.now(UTC)

    def sign_with(ee_key: KeyPair) -> Result[bytes]:
        return (
            build_ee_certificate(issuer, ee_key.public_key, ee_spec)
            .flat_map(_decode_certificate)
            .flat_map(lambda certificate: sign_content(
                ee_key, certificate, content_type, payload_der, signing_time
            ))
        )

    return (
        key_generator.generate()
        .flat_map(sign_with)
        .peek(lambda der: log.info(
            "signed_object.built",
            content_type=str(content_type),
            uri=spec.signed_object,
            size=len(der),
        ))
    )
