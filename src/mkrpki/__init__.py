"""
mkrpki: creates RPKI objects by hand.

Builds RSA key pairs, trust anchor certificates and TALs, CA certificates,
CRLs, ROAs and manifests as DER, signed according to RFC 5280, RFC 3779
and RFC 6488, without running a certificate authority.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
