"""
Certificate utilities for DCAP quote verification.

The quote's certification data carries the PCK certificate chain as
concatenated PEM certificates, leaf first. Only the leaf is used here: its
public key verifies the QE report signature. Establishing trust in the leaf
(validity period, issuance up to the Intel SGX Root CA, revocation) is left
to the caller.
"""

from typing import List

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import ec

from .types import CertificateError, PemParsingError

PEM_END_MARKER = b'-----END CERTIFICATE-----'
_PEM_PADDING = b'\x00\n\r\t '


def load_leaf_certificate(pem_data: bytes) -> x509.Certificate:
    """
    Parse the first PEM certificate in pem_data.

    Leading whitespace and null bytes are skipped and anything after the
    first certificate is ignored.

    Args:
        pem_data: PEM-encoded certificate or certificate chain

    Returns:
        The leaf certificate

    Raises:
        PemParsingError: If no well-formed PEM certificate is found
    """
    remaining = bytes(pem_data).lstrip(_PEM_PADDING)
    if not remaining:
        raise PemParsingError("No PEM certificate found in certification data")

    end_pos = remaining.find(PEM_END_MARKER)
    if end_pos == -1:
        raise PemParsingError("PEM certificate is missing its END marker")

    try:
        return x509.load_pem_x509_certificate(remaining[:end_pos + len(PEM_END_MARKER)])
    except ValueError as e:
        raise PemParsingError(f"Failed to parse PEM certificate: {e}") from e


def extract_pck_public_key(pem_data: bytes) -> ec.EllipticCurvePublicKey:
    """
    Extract the P-256 public key of the leaf (PCK) certificate.

    Args:
        pem_data: PEM-encoded PCK certificate chain

    Returns:
        The leaf certificate's public key

    Raises:
        PemParsingError: If the PEM or X.509 structure is malformed
        CertificateError: If the key cannot be decoded or is not a P-256 key
    """
    cert = load_leaf_certificate(pem_data)
    try:
        public_key = cert.public_key()
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CertificateError(f"Unable to decode PCK certificate public key: {e}") from e

    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise CertificateError(
            f"PCK certificate has unexpected key type: {type(public_key).__name__}"
        )
    if not isinstance(public_key.curve, ec.SECP256R1):
        raise CertificateError(
            f"PCK certificate key is on {public_key.curve.name}, expected secp256r1"
        )
    return public_key


def parse_pem_chain(pem_data: bytes) -> List[x509.Certificate]:
    """
    Parse concatenated PEM certificates.

    Handles leading/trailing whitespace and the trailing null bytes that
    commonly pad the certification data of a quote.

    Args:
        pem_data: PEM-encoded certificate chain (bytes)

    Returns:
        List of parsed certificates in order

    Raises:
        PemParsingError: If any certificate fails to parse
    """
    certs = []
    remaining = bytes(pem_data)

    while remaining.strip(_PEM_PADDING):
        cert = load_leaf_certificate(remaining)
        certs.append(cert)
        remaining = remaining[remaining.find(PEM_END_MARKER) + len(PEM_END_MARKER):]

    return certs
