"""
Route Origin Authorization (RFC 6482, RFC 9582).

The payload names one origin AS and the prefixes it may announce, each with
an optional max-length. Entries are grouped IPv4 then IPv6, sorted by
address, prefix length and max-length, and exact duplicates are dropped.

The EE certificate signing a ROA carries exactly the ROA's prefixes
(collapsed into the smallest equivalent set of CIDR blocks) as its IP
resources and no AS resources; validators check the payload against it.
"""

from __future__ import annotations

import structlog
from pyasn1.codec.der import encoder as der_encoder
from pyasn1_modules import rfc6482
from railway import ErrorCode, Result

from mkrpki.domain.models import (
    Explicit,
    IpFamily,
    KeyPair,
    ResourceSet,
    RoaPayload,
    RoaPrefix,
    SignedObjectSpec,
)
from mkrpki.domain.ports import KeyGenerator
from mkrpki.domain.profile import CT_ROUTE_ORIGIN_AUTHZ, MAX_AS_NUMBER
from mkrpki.encoding.resources import merge_address_blocks, parse_ip_block, prefix_bits
from mkrpki.encoding.signed_object import build_signed_object

log = structlog.get_logger()


def parse_roa_prefix(text: str) -> Result[RoaPrefix]:
    """Parse "192.0.2.0/24" or "192.0.2.0/24-26" (prefix, then optional max-length)."""
    prefix_text, _, max_length_text = text.strip().partition("-")
    if "/" not in prefix_text:
        return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, f"invalid ROA prefix {text!r}")
    if max_length_text and not max_length_text.isdigit():
        return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, f"invalid ROA max-length in {text!r}")
    max_length = int(max_length_text) if max_length_text else None
    return parse_ip_block(prefix_text).map(lambda block: RoaPrefix(block, max_length))


# ─────────────────────── Validation ───────────────────────


def _check_prefix(prefix: RoaPrefix) -> Result[RoaPrefix]:
    block = prefix.block
    if not block.is_prefix:
        return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, f"ROA entry is not a prefix: {block}")
    if prefix.max_length is not None:
        if prefix.max_length < block.prefix_length:
            return Result.failure(
                ErrorCode.INVALID_RESOURCE_SPEC,
                f"max-length {prefix.max_length} is less than the prefix length of {block}",
            )
        if prefix.max_length > block.family.bits:
            return Result.failure(
                ErrorCode.INVALID_RESOURCE_SPEC,
                f"max-length {prefix.max_length} exceeds {block.family.bits} bits for {block}",
            )
    return Result.success(prefix)


def _sort_key(prefix: RoaPrefix) -> tuple[int, int, int, int]:
    length = prefix.block.prefix_length
    return (
        prefix.family.value,
        prefix.block.low,
        length,
        length if prefix.max_length is None else prefix.max_length,
    )


def canonical_prefixes(payload: RoaPayload) -> Result[list[RoaPrefix]]:
    """Validated prefixes in canonical order with exact duplicates removed."""
    if not 0 <= payload.asn <= MAX_AS_NUMBER:
        return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, f"AS number out of range: {payload.asn}")
    if not payload.prefixes:
        return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "a ROA needs at least one prefix")
    return Result.all_of([_check_prefix(prefix) for prefix in payload.prefixes]).map(
        lambda prefixes: list(dict.fromkeys(sorted(prefixes, key=_sort_key)))
    )


# ─────────────────────── Encoding ───────────────────────


def _route_origin_attestation(asn: int, prefixes: list[RoaPrefix]) -> rfc6482.RouteOriginAttestation:
    roa = rfc6482.RouteOriginAttestation()
    roa["asID"] = asn
    blocks = roa["ipAddrBlocks"]
    for family in (IpFamily.IPV4, IpFamily.IPV6):
        entries = [prefix for prefix in prefixes if prefix.family is family]
        if not entries:
            continue
        address_family = rfc6482.ROAIPAddressFamily()
        address_family["addressFamily"] = family.afi
        addresses = address_family["addresses"]
        for prefix in entries:
            address = rfc6482.ROAIPAddress()
            address["address"] = rfc6482.IPAddress(binValue=prefix_bits(prefix.block))
            if prefix.max_length is not None:
                address["maxLength"] = prefix.max_length
            addresses.append(address)
        blocks.append(address_family)
    return roa


def encode_roa_payload(asn: int, prefixes: list[RoaPrefix]) -> Result[bytes]:
    return Result.from_computation(
        lambda: der_encoder.encode(_route_origin_attestation(asn, prefixes)),
        ErrorCode.ENCODING_INVARIANT_VIOLATION,
        "cannot encode RouteOriginAttestation",
    )


def roa_resources(prefixes: list[RoaPrefix]) -> ResourceSet:
    """
    The EE certificate's resources: the ROA prefixes with nested, overlapping
    and adjacent ones joined, and no AS family.
    """
    families = {
        family: Explicit(merge_address_blocks(prefix.block for prefix in prefixes if prefix.family is family))
        for family in (IpFamily.IPV4, IpFamily.IPV6)
    }
    return ResourceSet(ipv4=families[IpFamily.IPV4], ipv6=families[IpFamily.IPV6])


def build_roa(
    issuer: KeyPair,
    key_generator: KeyGenerator,
    spec: SignedObjectSpec,
    payload: RoaPayload,
) -> Result[bytes]:
    """
    Build a signed ROA.

    The payload is validated and encoded before any key is generated, so
    a bad max-length or an empty prefix list fails without signing anything.
    """
    return canonical_prefixes(payload).flat_map(
        lambda prefixes: encode_roa_payload(payload.asn, prefixes)
        .peek(lambda _: log.debug("roa.payload_encoded", asn=payload.asn, prefixes=len(prefixes)))
        .flat_map(
            lambda payload_der: build_signed_object(
                issuer,
                key_generator,
                spec,
                roa_resources(prefixes),
                CT_ROUTE_ORIGIN_AUTHZ,
                payload_der,
            )
        )
    )
