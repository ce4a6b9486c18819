"""
Resource Set Encoder: RFC 3779 IP address and AS identifier extensions.

Three steps, each usable on its own:

  1. Parsing (parse_ip_block, parse_as_block): turn "10.0.0.0/8",
     "10.0.0.0-10.0.2.255", "AS64496" or "64496-64511" into AddressBlock /
     AsBlock values. A low-high pair that happens to be an aligned CIDR block
     becomes a prefix when encoded; explicit ranges are never split.

  2. Normalization (normalize_resources): check every block is inside its
     family's address space, sort ascending, and reject duplicates,
     overlaps and adjacent blocks (RFC 3779 requires contiguous blocks to be
     written as one). Nothing is merged silently; merge_address_blocks is
     for callers that derive resources themselves, such as ROA EE certificates.

  3. Encoding (encode_ip_address_blocks, encode_as_identifiers): build the
     pyasn1 IPAddrBlocks / ASIdentifiers values. Prefixes are encoded as
     addressPrefix with exactly prefix-length bits; other blocks become
     addressRange with trailing zero bits stripped from min and trailing
     one bits stripped from max (RFC 3779 §2.1.2).

intersect_resources and find_overclaims implement the CA certificate
overclaim policy: TRIM reduces the subject to what the issuer holds, REFUSE
reports what it does not.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable, Sequence

from pyasn1.type import univ
from pyasn1_modules import rfc3779
from railway import ErrorCode, Result

from mkrpki.domain.models import (
    AddressBlock,
    AsBlock,
    Explicit,
    Inherit,
    IpFamily,
    ResourceFamily,
    ResourceSet,
)
from mkrpki.domain.profile import MAX_AS_NUMBER

# ─────────────────────── Parsing ───────────────────────


def _invalid(message: str) -> Result:
    return Result.failure(ErrorCode.INVALID_RESOURCE_SPEC, message)


def _family_of(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> IpFamily:
    return IpFamily.IPV4 if address.version == 4 else IpFamily.IPV6


def prefix_block(family: IpFamily, network: int, length: int) -> AddressBlock:
    """The AddressBlock covering network/length; host bits must already be zero."""
    return AddressBlock(family, network, network + (1 << (family.bits - length)) - 1)


def parse_ip_block(text: str, family: IpFamily | None = None) -> Result[AddressBlock]:
    """
    Parse "addr/len", "low-high" or a single address into an AddressBlock.

    When family is given the block must belong to it, which lets the CLI
    reject an IPv6 prefix passed to --v4.
    """
    text = text.strip()
    try:
        if "-" in text:
            low_text, high_text = (part.strip() for part in text.split("-", 1))
            low = ipaddress.ip_address(low_text)
            high = ipaddress.ip_address(high_text)
            if low.version != high.version:
                return _invalid(f"address range mixes IPv4 and IPv6: {text!r}")
            if int(low) > int(high):
                return _invalid(f"address range min is greater than max: {text!r}")
            block = AddressBlock(_family_of(low), int(low), int(high))
        else:
            network = ipaddress.ip_network(text, strict=True)
            block = prefix_block(
                _family_of(network.network_address),
                int(network.network_address),
                network.prefixlen,
            )
    except ValueError as e:
        return _invalid(f"invalid address block {text!r}: {e}")

    if family is not None and block.family is not family:
        return _invalid(f"{text!r} is not an {family.name} block")
    return Result.success(block)


def _parse_as_number(text: str) -> int:
    text = text.strip()
    if text[:2].upper() == "AS":
        text = text[2:]
    if not text.isdigit():
        raise ValueError(f"not an AS number: {text!r}")
    return int(text)


def parse_as_number(text: str) -> Result[int]:
    """Parse "64496" or "AS64496"."""
    try:
        number = _parse_as_number(text)
    except ValueError:
        return _invalid(f"invalid AS number {text!r}")
    if number > MAX_AS_NUMBER:
        return _invalid(f"AS number out of range: {text!r}")
    return Result.success(number)


def parse_as_block(text: str) -> Result[AsBlock]:
    """Parse a single AS number or an "low-high" AS range."""
    try:
        if "-" in text:
            low_text, high_text = text.split("-", 1)
            low, high = _parse_as_number(low_text), _parse_as_number(high_text)
        else:
            low = high = _parse_as_number(text)
    except ValueError:
        return _invalid(f"invalid AS block {text!r}")
    return Result.success(AsBlock(low, high))


# ─────────────────────── Normalization ───────────────────────


def _check_sorted_disjoint(blocks: Sequence, label: str) -> Result[tuple]:
    ordered = sorted(blocks, key=lambda b: (b.low, b.high))
    for previous, current in zip(ordered, ordered[1:]):
        if previous == current:
            return _invalid(f"duplicate {label} block: {current}")
        if current.low <= previous.high:
            return _invalid(f"overlapping {label} blocks: {previous} and {current}")
        if current.low == previous.high + 1:
            return _invalid(f"adjacent {label} blocks must be combined into one: {previous} and {current}")
    return Result.success(tuple(ordered))


def merge_address_blocks(blocks: Iterable[AddressBlock]) -> tuple[AddressBlock, ...]:
    """Sorted blocks with overlapping and adjacent ones joined into single ranges."""
    merged: list[AddressBlock] = []
    for block in sorted(blocks, key=lambda b: (b.low, b.high)):
        if merged and block.low <= merged[-1].high + 1:
            last = merged[-1]
            merged[-1] = AddressBlock(last.family, last.low, max(last.high, block.high))
        else:
            merged.append(block)
    return tuple(merged)


def normalize_address_blocks(
    family: IpFamily, blocks: Iterable[AddressBlock]
) -> Result[tuple[AddressBlock, ...]]:
    """Validate blocks of one family and return them sorted ascending."""
    blocks = list(blocks)
    top = (1 << family.bits) - 1
    for block in blocks:
        if block.family is not family:
            return _invalid(f"{block} listed as {family.name} resource")
        if not 0 <= block.low <= block.high <= top:
            return _invalid(
                f"{family.name} block out of range or min greater than max: "
                f"{block.low}-{block.high}"
            )
    return _check_sorted_disjoint(blocks, family.name)


def normalize_as_blocks(blocks: Iterable[AsBlock]) -> Result[tuple[AsBlock, ...]]:
    blocks = list(blocks)
    for block in blocks:
        if block.low > block.high:
            return _invalid(f"AS range min is greater than max: {block.low}-{block.high}")
        if block.low < 0 or block.high > MAX_AS_NUMBER:
            return _invalid(f"AS number out of range: {block}")
    return _check_sorted_disjoint(blocks, "AS")


def _normalize_family(family: ResourceFamily, normalize) -> Result[ResourceFamily]:
    match family:
        case Inherit():
            return Result.success(family)
        case Explicit(blocks=blocks):
            return normalize(blocks).map(Explicit)
    return _invalid(f"unknown resource family value: {family!r}")


def normalize_resources(resources: ResourceSet) -> Result[ResourceSet]:
    """Sorted, validated copy of a resource set; fails on any bad or overlapping block."""
    return Result.all_of([
        _normalize_family(resources.ipv4, lambda b: normalize_address_blocks(IpFamily.IPV4, b)),
        _normalize_family(resources.ipv6, lambda b: normalize_address_blocks(IpFamily.IPV6, b)),
        _normalize_family(resources.asn, normalize_as_blocks),
    ]).map(lambda families: ResourceSet(*families))


# ─────────────────────── Encoding ───────────────────────


def _bits(value: int, width: int) -> str:
    return format(value, f"0{width}b") if width else ""


def prefix_bits(block: AddressBlock) -> str:
    """The leading prefix-length bits of a CIDR block, as a BIT STRING value."""
    length = block.prefix_length
    return _bits(block.low >> (block.family.bits - length), length)


def encode_address(block: AddressBlock) -> rfc3779.IPAddressOrRange:
    """One IPAddressOrRange: addressPrefix for CIDR blocks, addressRange otherwise."""
    width = block.family.bits
    choice = rfc3779.IPAddressOrRange()
    if block.is_prefix:
        choice["addressPrefix"] = rfc3779.IPAddress(binValue=prefix_bits(block))
        return choice
    address_range = rfc3779.IPAddressRange()
    address_range["min"] = rfc3779.IPAddress(binValue=_bits(block.low, width).rstrip("0"))
    address_range["max"] = rfc3779.IPAddress(binValue=_bits(block.high, width).rstrip("1"))
    choice["addressRange"] = address_range
    return choice


def encode_ip_address_blocks(resources: ResourceSet) -> rfc3779.IPAddrBlocks | None:
    """
    IPAddrBlocks for a normalized resource set, IPv4 before IPv6.

    Returns None when neither IP family is present, in which case the
    extension is omitted.
    """
    blocks = rfc3779.IPAddrBlocks()
    for family in (IpFamily.IPV4, IpFamily.IPV6):
        resource = resources.ip(family)
        if isinstance(resource, Explicit) and resource.is_absent:
            continue
        address_family = rfc3779.IPAddressFamily()
        address_family["addressFamily"] = family.afi
        choice = address_family["ipAddressChoice"]
        if isinstance(resource, Inherit):
            choice["inherit"] = univ.Null("")
        else:
            ranges = choice["addressesOrRanges"]
            for block in resource.blocks:
                ranges.append(encode_address(block))
        blocks.append(address_family)
    return blocks if len(blocks) else None


def encode_as_identifiers(resources: ResourceSet) -> rfc3779.ASIdentifiers | None:
    """ASIdentifiers (asnum only, never rdi) or None when the AS family is absent."""
    resource = resources.asn
    if isinstance(resource, Explicit) and resource.is_absent:
        return None
    identifiers = rfc3779.ASIdentifiers()
    asnum = identifiers["asnum"]
    if isinstance(resource, Inherit):
        asnum["inherit"] = univ.Null("")
        return identifiers
    entries = asnum["asIdsOrRanges"]
    for block in resource.blocks:
        entry = rfc3779.ASIdOrRange()
        if block.low == block.high:
            entry["id"] = block.low
        else:
            as_range = entry["range"]
            as_range["min"] = block.low
            as_range["max"] = block.high
        entries.append(entry)
    return identifiers


# ─────────────────────── Overclaim policy ───────────────────────


def _clip(blocks: Sequence, bounds: Sequence, make) -> list:
    clipped = []
    for block in blocks:
        for bound in bounds:
            low, high = max(block.low, bound.low), min(block.high, bound.high)
            if low <= high:
                clipped.append(make(low, high))
    return sorted(clipped, key=lambda b: (b.low, b.high))


def _intersect_family(subject: ResourceFamily, issuer: ResourceFamily, make) -> ResourceFamily:
    if isinstance(subject, Inherit) or isinstance(issuer, Inherit):
        return subject
    return Explicit(tuple(_clip(subject.blocks, issuer.blocks, make)))


def intersect_resources(subject: ResourceSet, issuer: ResourceSet) -> ResourceSet:
    """
    Subject resources reduced to what the issuer holds.

    Inherit families on either side pass through unchanged, since there is
    nothing explicit to compare against. Both sets must be normalized.
    """
    return ResourceSet(
        ipv4=_intersect_family(subject.ipv4, issuer.ipv4, lambda lo, hi: AddressBlock(IpFamily.IPV4, lo, hi)),
        ipv6=_intersect_family(subject.ipv6, issuer.ipv6, lambda lo, hi: AddressBlock(IpFamily.IPV6, lo, hi)),
        asn=_intersect_family(subject.asn, issuer.asn, AsBlock),
    )


def find_overclaims(subject: ResourceSet, issuer: ResourceSet) -> list[str]:
    """Subject blocks not fully covered by the issuer's explicit resources, as text."""
    overclaims: list[str] = []
    for mine, theirs in zip(subject.families, issuer.families):
        if isinstance(mine, Inherit) or isinstance(theirs, Inherit):
            continue
        for block in mine.blocks:
            covered = sum(
                min(block.high, bound.high) - max(block.low, bound.low) + 1
                for bound in theirs.blocks
                if max(block.low, bound.low) <= min(block.high, bound.high)
            )
            if covered != block.high - block.low + 1:
                overclaims.append(str(block))
    return overclaims
