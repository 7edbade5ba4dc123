# -*- coding: utf-8 -*-
"""Helpers that turn provider files into the data map of a Kubernetes secret.

For ``kubernetes.io/tls`` secrets the raw provider content is normalised:

tls.crt  - every CERTIFICATE block of a PEM bundle, re-encoded, or the
           certificates of a PKCS#12 archive when no PEM block is present
tls.key  - the private key, whatever its source encoding (PKCS#1, PKCS#8,
           SEC1, PKCS#12), emitted as an ``RSA PRIVATE KEY`` or
           ``EC PRIVATE KEY`` PEM block

Key parsing is an ordered chain of evaluators (``PRIVATE_KEY_EVALUATORS``).
Each evaluator either returns the canonical PEM or ``None`` to let the next
one try, so the fallback order stays explicit.
"""

import base64
import binascii
import re

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .exceptions import CertificateParseError, \
    SecretDataError, \
    SecretObjectValidationError, \
    UnsupportedKeyError, \
    UnsupportedPrivateKeyError

TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"

SECRET_TYPE_OPAQUE = "Opaque"
SECRET_TYPE_TLS = "kubernetes.io/tls"

CERT_TYPE = "CERTIFICATE"
PRIVATE_KEY_TYPE = "PRIVATE KEY"
PRIVATE_KEY_TYPE_RSA = "RSA PRIVATE KEY"
PRIVATE_KEY_TYPE_EC = "EC PRIVATE KEY"

# boundary lines may carry trailing blanks
_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN ([^\r\n-]+)-----[ \t]*\r?\n(.*?)-----END \1-----[ \t]*",
    re.DOTALL)

_ASN1_INTEGER = 0x02
_ASN1_OCTET_STRING = 0x04
_ASN1_SEQUENCE = 0x30


def decode_pem_blocks(data):
    """Return ``(type, der)`` for every PEM block in ``data`` that decodes.

    Blocks whose body is not valid base64 are skipped, as is any text between
    blocks.
    """
    blocks = []
    for match in _PEM_BLOCK_RE.finditer(data):
        block_type = match.group(1).decode("ascii", errors="replace")
        lines = match.group(2).splitlines()
        # RFC 1421 headers (Proc-Type, DEK-Info) end at the first blank line
        if lines and b":" in lines[0]:
            while lines and lines[0].strip():
                lines.pop(0)
        try:
            der = base64.b64decode(b"".join(line.strip() for line in lines), validate=True)
        except (binascii.Error, ValueError):
            continue
        blocks.append((block_type, der))
    return blocks


def pem_encode(block_type, der):
    body = base64.b64encode(der)
    lines = [body[i:i + 64] for i in range(0, len(body), 64)]
    return b"".join([f"-----BEGIN {block_type}-----\n".encode("ascii"),
                     *[line + b"\n" for line in lines],
                     f"-----END {block_type}-----\n".encode("ascii")])


def _load_pkcs12(data):
    # archives are read with an empty password, either absent or ""
    error = None
    for password in (None, b""):
        try:
            return pkcs12.load_key_and_certificates(data, password)
        except (ValueError, TypeError) as e:
            error = e
    raise CertificateParseError(f"failed to decode data as pkcs12: {error}")


def _read_tlv_header(der, offset):
    tag = der[offset]
    length = der[offset + 1]
    offset += 2
    if length & 0x80:
        num_bytes = length & 0x7F
        if num_bytes == 0 or num_bytes > 4:
            raise ValueError("unsupported DER length")
        length = int.from_bytes(der[offset:offset + num_bytes], "big")
        offset += num_bytes
    return tag, offset, length


def _key_structure(der):
    """Tag of the element following the leading version INTEGER, or None.

    PKCS#1 RSAPrivateKey continues with an INTEGER (the modulus), PKCS#8
    PrivateKeyInfo with a SEQUENCE (the algorithm identifier) and SEC1
    ECPrivateKey with an OCTET STRING (the private scalar).
    """
    try:
        tag, offset, _ = _read_tlv_header(der, 0)
        if tag != _ASN1_SEQUENCE:
            return None
        tag, offset, length = _read_tlv_header(der, offset)
        if tag != _ASN1_INTEGER:
            return None
        return der[offset + length]
    except (IndexError, ValueError, TypeError):
        return None


def _load_der_key(der):
    try:
        return serialization.load_der_private_key(der, password=None)
    except (ValueError, TypeError):
        return None


def _traditional_pem(key):
    return key.private_bytes(encoding=serialization.Encoding.PEM,
                             format=serialization.PrivateFormat.TraditionalOpenSSL,
                             encryption_algorithm=serialization.NoEncryption())


def parse_pkcs1_private_key(der):
    """RSA key in PKCS#1 form."""
    if _key_structure(der) != _ASN1_INTEGER:
        return None
    try:
        key = _load_der_key(der)
    except UnsupportedAlgorithm:
        return None
    if not isinstance(key, rsa.RSAPrivateKey):
        return None
    return _traditional_pem(key)


def parse_pkcs8_private_key(der):
    """Unencrypted PKCS#8 key holding an RSA or EC key.

    Any other algorithm inside the PKCS#8 envelope is fatal.
    """
    if _key_structure(der) != _ASN1_SEQUENCE:
        return None
    try:
        key = _load_der_key(der)
    except UnsupportedAlgorithm as e:
        raise UnsupportedPrivateKeyError(str(e)) from e
    if key is None:
        return None
    if isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        return _traditional_pem(key)
    raise UnsupportedPrivateKeyError(type(key).__name__)


def parse_sec1_private_key(der):
    """EC key in SEC1 form."""
    if _key_structure(der) != _ASN1_OCTET_STRING:
        return None
    try:
        key = _load_der_key(der)
    except UnsupportedAlgorithm:
        return None
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        return None
    return _traditional_pem(key)


PRIVATE_KEY_EVALUATORS = (parse_pkcs1_private_key,
                          parse_pkcs8_private_key,
                          parse_sec1_private_key)


def get_private_key(data):
    """Return the private key of ``data`` as canonical PEM.

    The last PEM block that is not a certificate is taken as the key. With no
    such block the input is read as a PKCS#12 archive.
    """
    der = None
    for block_type, block_der in decode_pem_blocks(data):
        if block_type != CERT_TYPE:
            der = block_der

    if der is None:
        private_key, _, _ = _load_pkcs12(data)
        if private_key is None:
            raise CertificateParseError("no private key found in pkcs12 data")
        der = private_key.private_bytes(encoding=serialization.Encoding.DER,
                                        format=serialization.PrivateFormat.PKCS8,
                                        encryption_algorithm=serialization.NoEncryption())

    for evaluator in PRIVATE_KEY_EVALUATORS:
        pem = evaluator(der)
        if pem is not None:
            return pem

    raise CertificateParseError("private key is not a PKCS#1, PKCS#8 or SEC1 encoded key")


def get_cert(data):
    """Return every certificate of ``data`` as concatenated PEM blocks."""
    certs = b"".join(pem_encode(CERT_TYPE, der)
                     for block_type, der in decode_pem_blocks(data)
                     if block_type == CERT_TYPE)
    if certs:
        return certs

    # no PEM certificate, might be a pfx archive
    _, certificate, additional_certificates = _load_pkcs12(data)
    pfx_certs = ([certificate] if certificate is not None else []) + list(additional_certificates)
    return b"".join(c.public_bytes(serialization.Encoding.PEM) for c in pfx_certs)


def get_cert_part(data, key):
    """Return the certificate or the private key part of ``data``."""
    if key == TLS_PRIVATE_KEY_KEY:
        return get_private_key(data)
    if key == TLS_CERT_KEY:
        return get_cert(data)
    raise UnsupportedKeyError(key)


def get_secret_type(secret_type):
    """Kubernetes secret type, ``Opaque`` when unset."""
    secret_type = (secret_type or "").strip()
    if not secret_type:
        return SECRET_TYPE_OPAQUE
    return secret_type


def validate_secret_object(secret_name, secret_object):
    if not secret_name:
        raise SecretObjectValidationError("secret name is empty")
    if not secret_object.type:
        raise SecretObjectValidationError("secret type is empty")
    if not secret_object.data:
        raise SecretObjectValidationError("data is empty")


def get_secret_data(secret_object_data, secret_type, files):
    """
    Build the data map of the target secret from the provider files.

    :param secret_object_data: ordered list of SecretObjectData entries
    :param secret_type: kubernetes secret type of the target secret
    :param files: mapping of provider source path to raw bytes
    :return: mapping of target key to bytes, later duplicate keys win
    """
    datamap = {}
    for data in secret_object_data:
        source_path = (data.source_path or "").strip()
        target_key = (data.target_key or "").strip()

        if not source_path:
            raise SecretDataError("sourcePath in secretObject.data is empty")
        if not target_key:
            raise SecretDataError("targetKey in secretObject.data is empty")
        if source_path not in files:
            raise SecretDataError(f"file matching sourcePath {source_path} not found")

        content = files[source_path]
        if secret_type == SECRET_TYPE_TLS:
            try:
                content = get_cert_part(content, target_key)
            except (UnsupportedKeyError, CertificateParseError) as e:
                raise SecretDataError(f"failed to get cert data for {target_key}: {e}") from e
        datamap[target_key] = content
    return datamap
