"""
Domain models: immutable value objects for keys, resources and object specs.

Everything an object builder consumes is described here. Callers construct
these fresh for each invocation from already-parsed input (the CLI does the
string parsing), hand them to a builder, and discard them once the DER is
produced. Nothing is persisted.

All models are frozen dataclasses. Validation that needs to report a typed
error (overlapping ranges, inverted windows, bad serials) lives in the
builders, which return a Result; the models only carry data and derived
properties.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, unique
from ipaddress import IPv4Address, IPv6Address
from pathlib import Path

from cryptography.hazmat.primitives.asymmetric import rsa

from mkrpki.domain.profile import AFI_IPV4, AFI_IPV6

# ─────────────────────── Keys ───────────────────────


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    An RSA signing key and its public half.

    The builders only sign with the private key and embed the public key;
    reading and writing key files is the key adapter's job.
    """

    private_key: rsa.RSAPrivateKey = field(repr=False)

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()


# ─────────────────────── Resources ───────────────────────


@unique
class IpFamily(Enum):
    IPV4 = 4
    IPV6 = 6

    @property
    def bits(self) -> int:
        return 32 if self is IpFamily.IPV4 else 128

    @property
    def afi(self) -> bytes:
        """Two-octet Address Family Identifier used in RFC 3779 and RFC 6482."""
        return AFI_IPV4 if self is IpFamily.IPV4 else AFI_IPV6

    def address(self, value: int) -> IPv4Address | IPv6Address:
        return IPv4Address(value) if self is IpFamily.IPV4 else IPv6Address(value)


@dataclass(frozen=True, slots=True)
class AddressBlock:
    """An inclusive [low, high] range of addresses within one family."""

    family: IpFamily
    low: int
    high: int

    @property
    def size(self) -> int:
        return self.high - self.low + 1

    @property
    def is_prefix(self) -> bool:
        """True when the block is a power-of-two sized, aligned CIDR block."""
        size = self.size
        return size & (size - 1) == 0 and self.low % size == 0

    @property
    def prefix_length(self) -> int:
        """Prefix length of a block for which is_prefix holds."""
        return self.family.bits - (self.size.bit_length() - 1)

    def contains(self, other: AddressBlock) -> bool:
        return self.low <= other.low and other.high <= self.high

    def __str__(self) -> str:
        if self.is_prefix:
            return f"{self.family.address(self.low)}/{self.prefix_length}"
        return f"{self.family.address(self.low)}-{self.family.address(self.high)}"


@dataclass(frozen=True, slots=True, order=True)
class AsBlock:
    """An inclusive [low, high] range of AS numbers; low == high for a single AS."""

    low: int
    high: int

    def __str__(self) -> str:
        return str(self.low) if self.low == self.high else f"{self.low}-{self.high}"


@dataclass(frozen=True, slots=True)
class Inherit:
    """The family's resources are taken from the issuer (encoded as ASN.1 NULL)."""


@dataclass(frozen=True, slots=True)
class Explicit:
    """
    An explicit list of blocks. An empty list means the family is absent.

    Blocks are kept as given; the resource encoder sorts and validates them.
    """

    blocks: tuple = ()

    @property
    def is_absent(self) -> bool:
        return not self.blocks


ResourceFamily = Inherit | Explicit

INHERIT = Inherit()
ABSENT = Explicit()


@dataclass(frozen=True, slots=True)
class ResourceSet:
    """The three independent RFC 3779 resource families of a certificate."""

    ipv4: ResourceFamily = ABSENT
    ipv6: ResourceFamily = ABSENT
    asn: ResourceFamily = ABSENT

    def ip(self, family: IpFamily) -> ResourceFamily:
        return self.ipv4 if family is IpFamily.IPV4 else self.ipv6

    @property
    def families(self) -> tuple[ResourceFamily, ResourceFamily, ResourceFamily]:
        return (self.ipv4, self.ipv6, self.asn)

    @property
    def is_empty(self) -> bool:
        return all(isinstance(f, Explicit) and f.is_absent for f in self.families)

    @property
    def has_inherit(self) -> bool:
        return any(isinstance(f, Inherit) for f in self.families)

    @staticmethod
    def inherit_all() -> ResourceSet:
        return ResourceSet(ipv4=INHERIT, ipv6=INHERIT, asn=INHERIT)


# ─────────────────────── Certificates ───────────────────────


@dataclass(frozen=True, slots=True)
class Validity:
    not_before: datetime
    not_after: datetime


@unique
class CertificateRole(Enum):
    TA = "ta"
    CA = "ca"
    EE = "ee"


@unique
class OverclaimPolicy(Enum):
    """What a CA certificate does with resources its issuer does not hold."""

    REFUSE = "refuse"
    TRIM = "trim"


@dataclass(frozen=True, slots=True)
class CertificateSpec:
    """
    Everything a TA, CA or EE certificate needs besides its keys.

    Which URIs are mandatory depends on the role:
      TA: ca_repository, rpki_manifest
      CA: ca_repository, rpki_manifest, crl_uri, ca_issuer
      EE: crl_uri, ca_issuer, signed_object
    rpki_notify is always optional.
    """

    serial: int
    validity: Validity
    resources: ResourceSet
    ca_repository: str | None = None
    rpki_manifest: str | None = None
    rpki_notify: str | None = None
    crl_uri: str | None = None
    ca_issuer: str | None = None
    signed_object: str | None = None
    overclaim: OverclaimPolicy = OverclaimPolicy.REFUSE
    issuer_resources: ResourceSet | None = None


# ─────────────────────── CRLs ───────────────────────


@dataclass(frozen=True, slots=True)
class RevokedEntry:
    serial: int
    revoked_at: datetime


@dataclass(frozen=True, slots=True)
class CrlSpec:
    """
    A CRL's contents. The CRL number must increase across a CA's CRLs; that
    history is the caller's to keep.
    """

    this_update: datetime
    next_update: datetime
    number: int
    revoked: tuple[RevokedEntry, ...] = ()


# ─────────────────────── Signed objects ───────────────────────


@dataclass(frozen=True, slots=True)
class RoaPrefix:
    """One authorized prefix; max_length None means "exactly this prefix length"."""

    block: AddressBlock
    max_length: int | None = None

    @property
    def family(self) -> IpFamily:
        return self.block.family


@dataclass(frozen=True, slots=True)
class RoaPayload:
    asn: int
    prefixes: tuple[RoaPrefix, ...]


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    """A published file's name (directory stripped) and its SHA-256 digest."""

    name: str
    digest: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class ManifestPayload:
    number: int
    this_update: datetime
    next_update: datetime
    entries: tuple[ManifestEntry, ...]


@dataclass(frozen=True, slots=True)
class SignedObjectSpec:
    """
    Parameters of the one-time EE certificate that signs a ROA or manifest.

    resources is only consulted for manifests; a ROA's EE certificate always
    carries exactly the ROA's prefixes. signing_time defaults to the moment
    the object is built.
    """

    serial: int
    validity: Validity
    crl_uri: str
    ca_issuer: str
    signed_object: str
    signing_time: datetime | None = None
    resources: ResourceSet | None = None


# ─────────────────────── Trust anchor locator ───────────────────────


@dataclass(frozen=True, slots=True)
class Tal:
    uris: tuple[str, ...]
    public_key: rsa.RSAPublicKey = field(repr=False)


# ─────────────────────── Outputs ───────────────────────


@dataclass(frozen=True, slots=True)
class Artifact:
    """One finished output: the bytes and where the writer should put them."""

    path: Path
    content: bytes = field(repr=False)
