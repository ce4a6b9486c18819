"""
Extension Builder: the X.509v3 extensions of the RPKI certificate profile.

Extensions are always emitted in one canonical order; which of them appear
depends on the certificate role:

    #  extension                       TA   CA   EE   critical
    1  Subject Key Identifier          x    x    x
    2  Authority Key Identifier             x    x
    3  Key Usage                       x    x    x    yes
    4  Basic Constraints (cA)          x    x         yes
    5  Certificate Policies            x    x    x    yes
    6  Subject Information Access      x    x    x
    7  Authority Information Access         x    x
    8  CRL Distribution Points              x    x
    9  IP Address Blocks               (when present) yes
    10 AS Identifiers                  (when present) yes

CA and TA certificates point their SIA at the repository, the manifest and,
optionally, the RRDP notification file; an EE certificate's SIA points at
the signed object it validates (RFC 6487 §4.8.8).
"""

from __future__ import annotations

from collections.abc import Iterable

from pyasn1.codec.der import encoder as der_encoder
from pyasn1.type import base, univ
from pyasn1_modules import rfc3779, rfc5280
from railway import ErrorCode, Result

from mkrpki.domain.models import CertificateRole, CertificateSpec, ResourceSet
from mkrpki.domain.profile import (
    AD_CA_ISSUERS,
    AD_CA_REPOSITORY,
    AD_RPKI_MANIFEST,
    AD_RPKI_NOTIFY,
    AD_SIGNED_OBJECT,
    RPKI_CERTIFICATE_POLICY,
)
from mkrpki.encoding.resources import (
    encode_as_identifiers,
    encode_ip_address_blocks,
    normalize_resources,
)

_REQUIRED_URIS: dict[CertificateRole, tuple[str, ...]] = {
    CertificateRole.TA: ("ca_repository", "rpki_manifest"),
    CertificateRole.CA: ("ca_repository", "rpki_manifest", "crl_uri", "ca_issuer"),
    CertificateRole.EE: ("crl_uri", "ca_issuer", "signed_object"),
}


def check_required_uris(spec: CertificateSpec, role: CertificateRole) -> Result[CertificateSpec]:
    missing = [name for name in _REQUIRED_URIS[role] if not getattr(spec, name)]
    if missing:
        return Result.failure(
            ErrorCode.MISSING_REQUIRED_FIELD,
            f"{role.name} certificate requires: {', '.join(missing)}",
        )
    return Result.success(spec)


# ─────────────────────── Individual extension values ───────────────────────


def make_extension(oid: univ.ObjectIdentifier, value: base.Asn1Item, critical: bool) -> rfc5280.Extension:
    extension = rfc5280.Extension()
    extension["extnID"] = oid
    extension["critical"] = critical
    extension["extnValue"] = der_encoder.encode(value)
    return extension


def _uri_name(uri: str) -> rfc5280.GeneralName:
    name = rfc5280.GeneralName()
    name["uniformResourceIdentifier"] = uri
    return name


def _access_descriptions(
    syntax: univ.SequenceOf, entries: Iterable[tuple[univ.ObjectIdentifier, str]]
) -> univ.SequenceOf:
    for method, uri in entries:
        description = rfc5280.AccessDescription()
        description["accessMethod"] = method
        description["accessLocation"] = _uri_name(uri)
        syntax.append(description)
    return syntax


def subject_key_identifier(key_id: bytes) -> rfc5280.Extension:
    return make_extension(rfc5280.id_ce_subjectKeyIdentifier, rfc5280.SubjectKeyIdentifier(key_id), False)


def authority_key_identifier(key_id: bytes) -> rfc5280.Extension:
    value = rfc5280.AuthorityKeyIdentifier()
    value["keyIdentifier"] = key_id
    return make_extension(rfc5280.id_ce_authorityKeyIdentifier, value, False)


def key_usage(role: CertificateRole) -> rfc5280.Extension:
    bits = "digitalSignature" if role is CertificateRole.EE else "keyCertSign, cRLSign"
    return make_extension(rfc5280.id_ce_keyUsage, rfc5280.KeyUsage(bits), True)


def basic_constraints() -> rfc5280.Extension:
    value = rfc5280.BasicConstraints()
    value["cA"] = True
    return make_extension(rfc5280.id_ce_basicConstraints, value, True)


def certificate_policies() -> rfc5280.Extension:
    policy = rfc5280.PolicyInformation()
    policy["policyIdentifier"] = RPKI_CERTIFICATE_POLICY
    value = rfc5280.CertificatePolicies()
    value.append(policy)
    return make_extension(rfc5280.id_ce_certificatePolicies, value, True)


def subject_information_access(spec: CertificateSpec, role: CertificateRole) -> rfc5280.Extension:
    if role is CertificateRole.EE:
        entries = [(AD_SIGNED_OBJECT, spec.signed_object)]
    else:
        entries = [(AD_CA_REPOSITORY, spec.ca_repository), (AD_RPKI_MANIFEST, spec.rpki_manifest)]
        if spec.rpki_notify:
            entries.append((AD_RPKI_NOTIFY, spec.rpki_notify))
    value = _access_descriptions(rfc5280.SubjectInfoAccessSyntax(), entries)
    return make_extension(rfc5280.id_pe_subjectInfoAccess, value, False)


def authority_information_access(ca_issuer: str) -> rfc5280.Extension:
    value = _access_descriptions(rfc5280.AuthorityInfoAccessSyntax(), [(AD_CA_ISSUERS, ca_issuer)])
    return make_extension(rfc5280.id_pe_authorityInfoAccess, value, False)


def crl_distribution_points(crl_uri: str) -> rfc5280.Extension:
    point = rfc5280.DistributionPoint()
    point["distributionPoint"]["fullName"].append(_uri_name(crl_uri))
    value = rfc5280.CRLDistributionPoints()
    value.append(point)
    return make_extension(rfc5280.id_ce_cRLDistributionPoints, value, False)


def crl_number(number: int) -> rfc5280.Extension:
    """CRL Number, a CRL (not certificate) extension."""
    return make_extension(rfc5280.id_ce_cRLNumber, rfc5280.CRLNumber(number), False)


def resource_extensions(resources: ResourceSet) -> list[rfc5280.Extension]:
    """IP Address Blocks then AS Identifiers, each only when its families are present."""
    extensions = []
    ip_blocks = encode_ip_address_blocks(resources)
    if ip_blocks is not None:
        extensions.append(make_extension(rfc3779.id_pe_ipAddrBlocks, ip_blocks, True))
    as_identifiers = encode_as_identifiers(resources)
    if as_identifiers is not None:
        extensions.append(make_extension(rfc3779.id_pe_autonomousSysIds, as_identifiers, True))
    return extensions


# ─────────────────────── Assembly ───────────────────────


def _assemble(
    spec: CertificateSpec,
    role: CertificateRole,
    resources: ResourceSet,
    subject_key_id: bytes,
    issuer_key_id: bytes,
) -> list[rfc5280.Extension]:
    self_signed = role is CertificateRole.TA
    extensions = [subject_key_identifier(subject_key_id)]
    if not self_signed:
        extensions.append(authority_key_identifier(issuer_key_id))
    extensions.append(key_usage(role))
    if role is not CertificateRole.EE:
        extensions.append(basic_constraints())
    extensions.append(certificate_policies())
    extensions.append(subject_information_access(spec, role))
    if not self_signed:
        extensions.append(authority_information_access(spec.ca_issuer))
        extensions.append(crl_distribution_points(spec.crl_uri))
    extensions.extend(resource_extensions(resources))
    return extensions


def build_extensions(
    spec: CertificateSpec,
    role: CertificateRole,
    subject_key_id: bytes,
    issuer_key_id: bytes,
) -> Result[list[rfc5280.Extension]]:
    """
    The ordered extension list for a certificate.

    Fails with MISSING_REQUIRED_FIELD when a role-mandatory URI is absent
    and with INVALID_RESOURCE_SPEC when the resources are malformed,
    overlapping, or absent from all three families.
    """
    return (
        check_required_uris(spec, role)
        .flat_map(lambda s: normalize_resources(s.resources))
        .ensure(
            lambda resources: not resources.is_empty,
            ErrorCode.INVALID_RESOURCE_SPEC,
            "certificate must hold at least one IPv4, IPv6 or AS resource",
        )
        .flat_map(
            lambda resources: Result.from_computation(
                lambda: _assemble(spec, role, resources, subject_key_id, issuer_key_id),
                ErrorCode.ENCODING_INVARIANT_VIOLATION,
                "cannot encode certificate extensions",
            )
        )
    )
