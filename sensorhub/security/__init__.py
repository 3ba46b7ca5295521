"""TLS identity primitives for the broker connection."""

from .identity import (
    IdentityError,
    InvalidCAError,
    InvalidCertificateError,
    InvalidKeyError,
    SecureTransportContext,
    TlsMaterial,
    build_from_material,
    build_secure_transport,
    load_ca_certificates,
    parse_private_key,
    to_pkcs8_pem,
)

__all__ = [
    "IdentityError",
    "InvalidCAError",
    "InvalidCertificateError",
    "InvalidKeyError",
    "SecureTransportContext",
    "TlsMaterial",
    "build_from_material",
    "build_secure_transport",
    "load_ca_certificates",
    "parse_private_key",
    "to_pkcs8_pem",
]
