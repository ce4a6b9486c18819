"""
Profile constants: the fixed algorithm choices and object identifiers of the
RPKI certificate and signed-object profiles (RFC 6485, RFC 6487, RFC 6488).

Nothing here is configurable. Every builder refers to these names instead of
repeating literals, so the profile can be read in one place.
"""

from __future__ import annotations

from pyasn1.type import univ
from pyasn1_modules import rfc4055, rfc5280, rfc5652, rfc6482, rfc6486, rfc6487

# ─────────────────────── Keys and algorithms ───────────────────────

RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537

# Certificates and CRLs carry sha256WithRSAEncryption with NULL parameters.
SIGNATURE_ALGORITHM = rfc4055.sha256WithRSAEncryption
# CMS SignerInfo.signatureAlgorithm is rsaEncryption (RFC 6485 §2).
CMS_SIGNATURE_ALGORITHM = rfc4055.rsaEncryption
# Digest algorithm identifiers omit the parameters field.
DIGEST_ALGORITHM = rfc4055.id_sha256

CERTIFICATE_VERSION = 2  # v3
CRL_VERSION = 1  # v2
SIGNED_DATA_VERSION = 3
SIGNER_INFO_VERSION = 3

# Years from 2050 on are encoded as GeneralizedTime (RFC 5280 §4.1.2.5).
UTC_TIME_CUTOFF_YEAR = 2050

# ─────────────────────── Certificate policy and access methods ───────────────────────

RPKI_CERTIFICATE_POLICY = univ.ObjectIdentifier("1.3.6.1.5.5.7.14.2")

AD_CA_ISSUERS = rfc5280.id_ad_caIssuers
AD_CA_REPOSITORY = rfc5280.id_ad_caRepository
AD_RPKI_MANIFEST = rfc6487.id_ad_rpkiManifest
AD_SIGNED_OBJECT = rfc6487.id_ad_signedObject
AD_RPKI_NOTIFY = univ.ObjectIdentifier("1.3.6.1.5.5.7.48.13")

# ─────────────────────── CMS content types and attributes ───────────────────────

CT_SIGNED_DATA = rfc5652.id_signedData
CT_ROUTE_ORIGIN_AUTHZ = rfc6482.id_ct_routeOriginAuthz
CT_RPKI_MANIFEST = rfc6486.id_ct_rpkiManifest

ATTR_CONTENT_TYPE = rfc5652.id_contentType
ATTR_MESSAGE_DIGEST = rfc5652.id_messageDigest
ATTR_SIGNING_TIME = rfc5652.id_signingTime

# ─────────────────────── Resource families ───────────────────────

AFI_IPV4 = b"\x00\x01"
AFI_IPV6 = b"\x00\x02"

MAX_AS_NUMBER = 2**32 - 1
