"""TLS identity loading for the broker connection.

Turns a CA bundle and an optional client certificate/private key, all given
as PEM bytes, into an ``ssl.SSLContext`` ready for mutual authentication.
Only the roots found in the bundle are trusted; the system store is never
consulted.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from ..const import MQTT_TLS_MIN_VERSION

logger = logging.getLogger("sensorhub.security")

_PEM_KEY_ENVELOPE = re.compile(rb"-----(?:BEGIN|END) [A-Z0-9 ]*PRIVATE KEY-----")


class IdentityError(Exception):
    """TLS material could not be turned into a usable context."""


class InvalidCAError(IdentityError):
    """The CA bundle holds no parseable certificate."""


class InvalidCertificateError(IdentityError):
    """The client certificate does not parse."""


class InvalidKeyError(IdentityError):
    """The client private key is neither PKCS#8 nor PKCS#1."""


@dataclass(frozen=True, slots=True)
class TlsMaterial:
    """Opaque PEM blobs supplied by the host environment."""

    ca_bundle: bytes
    client_cert: bytes | None = None
    client_key: bytes | None = None

    @classmethod
    def from_files(
        cls,
        ca_bundle: str | Path,
        client_cert: str | Path | None = None,
        client_key: str | Path | None = None,
    ) -> TlsMaterial:
        """Read the material from disk; raises OSError when a file is missing."""
        return cls(
            ca_bundle=Path(ca_bundle).read_bytes(),
            client_cert=Path(client_cert).read_bytes() if client_cert else None,
            client_key=Path(client_key).read_bytes() if client_key else None,
        )


@dataclass(frozen=True, slots=True)
class SecureTransportContext:
    ssl_context: ssl.SSLContext
    ca_count: int
    has_client_identity: bool


def load_ca_certificates(ca_bundle: bytes) -> list[x509.Certificate]:
    """Parse every PEM certificate in *ca_bundle*."""
    try:
        certificates = x509.load_pem_x509_certificates(ca_bundle)
    except ValueError as exc:
        raise InvalidCAError(f"CA bundle holds no valid certificates: {exc}") from exc
    if not certificates:
        raise InvalidCAError("CA bundle holds no certificates")
    return certificates


def _decode_pem_body(key_pem: bytes) -> bytes:
    body = b"".join(_PEM_KEY_ENVELOPE.sub(b"", key_pem).split())
    if not body:
        raise InvalidKeyError("private key is empty")
    try:
        return base64.b64decode(body, validate=True)
    except binascii.Error as exc:
        raise InvalidKeyError(f"private key is not valid base64: {exc}") from exc


def parse_private_key(key_pem: bytes) -> PrivateKeyTypes:
    """Parse a PEM private key in PKCS#8 or PKCS#1 layout.

    The envelope is stripped and the body base64-decoded. The DER loader
    reads PKCS#8 ``PrivateKeyInfo`` and the traditional PKCS#1
    ``RSAPrivateKey`` structures alike; :func:`to_pkcs8_pem` produces the
    PKCS#8 form for ``ssl``.
    Encrypted keys are rejected.
    """
    der = _decode_pem_body(key_pem)
    try:
        return serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise InvalidKeyError(f"private key is neither PKCS#8 nor PKCS#1: {exc}") from exc


def to_pkcs8_pem(key: PrivateKeyTypes) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _load_client_identity(context: ssl.SSLContext, client_cert: bytes, client_key: bytes) -> None:
    try:
        chain = x509.load_pem_x509_certificates(client_cert)
    except ValueError as exc:
        raise InvalidCertificateError(f"client certificate does not parse: {exc}") from exc

    key_pem = to_pkcs8_pem(parse_private_key(client_key))
    chain_pem = b"".join(cert.public_bytes(serialization.Encoding.PEM) for cert in chain)

    # ssl only loads identities from the filesystem.
    with tempfile.TemporaryDirectory(prefix="sensorhub-tls-") as tmp_dir:
        identity_path = Path(tmp_dir) / "client.pem"
        identity_path.touch(mode=0o600)
        identity_path.write_bytes(chain_pem + key_pem)
        try:
            context.load_cert_chain(str(identity_path))
        except ssl.SSLError as exc:
            raise InvalidKeyError(f"client key does not match certificate: {exc}") from exc


def build_secure_transport(
    ca_bundle: bytes,
    client_cert: bytes | None = None,
    client_key: bytes | None = None,
) -> SecureTransportContext:
    """Build a TLS context trusting exactly the roots in *ca_bundle*.

    With both *client_cert* and *client_key* the context also presents a
    client identity; with neither it only authenticates the server.
    """
    certificates = load_ca_certificates(ca_bundle)
    cadata = "".join(cert.public_bytes(serialization.Encoding.PEM).decode("ascii") for cert in certificates)

    try:
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=cadata)
    except ssl.SSLError as exc:
        raise InvalidCAError(f"CA bundle rejected by ssl: {exc}") from exc
    context.minimum_version = MQTT_TLS_MIN_VERSION
    logger.debug("Loaded %d CA certificates from bundle.", len(certificates))

    if bool(client_cert) != bool(client_key):
        raise IdentityError("Both client certificate and client key must be provided for mTLS.")

    has_identity = False
    if client_cert and client_key:
        _load_client_identity(context, client_cert, client_key)
        has_identity = True
        logger.debug("TLS context created with client authentication.")

    return SecureTransportContext(
        ssl_context=context,
        ca_count=len(certificates),
        has_client_identity=has_identity,
    )


def build_from_material(material: TlsMaterial) -> SecureTransportContext:
    return build_secure_transport(material.ca_bundle, material.client_cert, material.client_key)


__all__ = [
    "IdentityError",
    "InvalidCAError",
    "InvalidCertificateError",
    "InvalidKeyError",
    "TlsMaterial",
    "SecureTransportContext",
    "load_ca_certificates",
    "parse_private_key",
    "to_pkcs8_pem",
    "build_secure_transport",
    "build_from_material",
]
