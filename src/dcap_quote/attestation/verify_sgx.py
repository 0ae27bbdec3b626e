"""
SGX DCAP quote cryptographic verification.

This module implements the three checks that link the PCK certificate
embedded in a quote to the enclave report:

1. Verify the ISV enclave report signature (attestation key over
   Header || Enclave Report Body)
2. Verify the QE report signature using the PCK leaf certificate
3. Verify the QE report data binding (attestation key hash)

Each check is a pure function of the quote bytes. Verifying the PCK
certificate chain up to the Intel SGX Root CA is the caller's job.
"""

import hashlib
import logging
from typing import Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .abi_sgx import (
    Quote,
    ATTESTATION_KEY_SIZE,
    ATTESTATION_KEY_TYPE_ECDSA_P256,
    BINDING_DIGEST_SIZE,
    CERT_DATA_TYPE_PCK_CERT_CHAIN,
    ECDSA_P256_COMPONENT_SIZE,
    INTEL_QE_VENDOR_ID,
    QUOTE_VERSION_V3,
    REPORT_DATA_SIZE,
    SIGNATURE_SIZE,
)
from .cert_utils import extract_pck_public_key, load_leaf_certificate
from .types import (
    AttestationKeyBindingError,
    CertificateError,
    KeyDecodeError,
    PemParsingError,
    QuoteLengthError,
    QuoteVerificationError,
    SignatureError,
)

logger = logging.getLogger(__name__)

PublicKeyLike = Union[bytes, ec.EllipticCurvePublicKey]


# =============================================================================
# Signature verification
# =============================================================================

def p256_public_key_from_bytes(key_bytes: bytes) -> ec.EllipticCurvePublicKey:
    """
    Convert a raw 64-byte P-256 public key to a cryptography public key.

    The raw format is X || Y (32 bytes each) without the 0x04 tag of an
    uncompressed SEC1 point.

    Args:
        key_bytes: 64 bytes representing X || Y coordinates

    Returns:
        EllipticCurvePublicKey object

    Raises:
        KeyDecodeError: If the bytes are not a point on P-256
    """
    if len(key_bytes) != ATTESTATION_KEY_SIZE:
        raise KeyDecodeError(
            f"Public key is {len(key_bytes)} bytes, expected {ATTESTATION_KEY_SIZE}"
        )

    uncompressed = b'\x04' + bytes(key_bytes)

    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), uncompressed)
    except (ValueError, TypeError) as e:
        raise KeyDecodeError(f"Invalid P-256 public key: {e}") from e


def raw_signature_to_der(sig_bytes: bytes) -> bytes:
    """
    Convert a raw R || S signature to DER.

    Quote signatures are 64 bytes: R (32 bytes) || S (32 bytes), both
    big-endian. DER format is required by the cryptography library.

    Raises:
        SignatureError: If the signature is not 64 bytes
    """
    if len(sig_bytes) != SIGNATURE_SIZE:
        raise SignatureError(
            f"Signature is {len(sig_bytes)} bytes, expected {SIGNATURE_SIZE}"
        )

    r = int.from_bytes(sig_bytes[0:ECDSA_P256_COMPONENT_SIZE], byteorder='big')
    s = int.from_bytes(sig_bytes[ECDSA_P256_COMPONENT_SIZE:SIGNATURE_SIZE], byteorder='big')

    return encode_dss_signature(r, s)


def verify_ecdsa_p256(message: bytes, signature: bytes, public_key: PublicKeyLike) -> None:
    """
    Verify an ECDSA P-256 / SHA-256 signature over message.

    Args:
        message: The signed bytes (not a digest)
        signature: 64-byte raw R || S signature
        public_key: A 64-byte raw X || Y key, or an EC public key object

    Raises:
        KeyDecodeError: If a raw key is not a valid P-256 point
        SignatureError: If the signature is malformed or does not verify
    """
    if isinstance(public_key, (bytes, bytearray, memoryview)):
        public_key = p256_public_key_from_bytes(bytes(public_key))

    signature_der = raw_signature_to_der(signature)

    try:
        public_key.verify(signature_der, bytes(message), ec.ECDSA(hashes.SHA256()))
    except InvalidSignature as e:
        raise SignatureError("ECDSA signature does not match the signed data") from e


# =============================================================================
# Attestation key binding
# =============================================================================

def check_attestation_key_binding(
    attestation_key: bytes, auth_data: bytes, report_data: bytes
) -> None:
    """
    Verify that report_data binds the attestation key.

    report_data must contain SHA256(attestation_key || auth_data) followed
    by 32 zero bytes. Without this check, an attacker could substitute a
    different attestation key.

    Raises:
        AttestationKeyBindingError: If the digest or the zero padding does not match
    """
    expected_hash = hashlib.sha256(bytes(attestation_key) + bytes(auth_data)).digest()
    expected_report_data = expected_hash + b'\x00' * (REPORT_DATA_SIZE - BINDING_DIGEST_SIZE)

    # Both values are public attestation data; no timing side-channel concern.
    if bytes(report_data) != expected_report_data:
        raise AttestationKeyBindingError(
            "QE report data does not match SHA256(attestation_key || auth_data) "
            "followed by zero padding"
        )


# =============================================================================
# Quote checks
# =============================================================================

def _check_attestation_key_type(quote: Quote) -> None:
    ak_type = quote.header().attestation_key_type
    if ak_type != ATTESTATION_KEY_TYPE_ECDSA_P256:
        raise KeyDecodeError(
            f"Unsupported attestation key type: {ak_type}. "
            f"Expected {ATTESTATION_KEY_TYPE_ECDSA_P256} (ECDSA-P256)."
        )


def verify_enclave_report_body(quote: Quote) -> None:
    """
    Verify the ISV enclave report signature.

    The attestation key in the quote signs Header || Enclave Report Body.

    Raises:
        QuoteLengthError: If the quote is too short
        KeyDecodeError: If the attestation key is not an ECDSA P-256 key
        SignatureError: If the signature does not verify
    """
    try:
        _check_attestation_key_type(quote)
        message = quote.header_and_enclave_report_body()
        signature = quote.isv_enclave_signature()
        key = p256_public_key_from_bytes(quote.attestation_key())
        verify_ecdsa_p256(message, signature, key)
    except QuoteVerificationError as e:
        logger.debug("Enclave report body verification failed: %s", e)
        raise


def _pck_certification_data(quote: Quote) -> bytes:
    try:
        header = quote.header()
        cert_type = quote.certification_data_type()
        pem_data = quote.certification_data()
    except QuoteLengthError as e:
        raise PemParsingError(f"Unable to locate PCK certificate: {e}") from e

    # Certification data is only located correctly for the version 3 layout.
    if header.version != QUOTE_VERSION_V3:
        raise CertificateError(
            f"Unsupported quote version: {header.version}. Expected {QUOTE_VERSION_V3}."
        )
    if cert_type != CERT_DATA_TYPE_PCK_CERT_CHAIN:
        raise CertificateError(
            f"Unsupported certification data type {cert_type}, "
            f"expected {CERT_DATA_TYPE_PCK_CERT_CHAIN} (PCK cert chain)"
        )
    if header.qe_vendor_id != INTEL_QE_VENDOR_ID:
        logger.debug(
            "Quote QE vendor ID %s is not the Intel QE (%s)",
            header.qe_vendor_id.hex(), INTEL_QE_VENDOR_ID.hex(),
        )
    return pem_data


def verify_quoting_enclave_report(quote: Quote) -> None:
    """
    Verify the QE report signature using the PCK leaf certificate.

    The PCK certificate is assumed to be trusted; its chain is not checked.

    Raises:
        PemParsingError: If the certificate is missing or malformed
        CertificateError: If the quote version, certification data type or
            certificate key is unsupported
        SignatureError: If the signature does not verify
    """
    try:
        pck_key = extract_pck_public_key(_pck_certification_data(quote))
        verify_ecdsa_p256(quote.qe_report(), quote.qe_report_signature(), pck_key)
    except QuoteVerificationError as e:
        logger.debug("QE report verification failed: %s", e)
        raise


def verify_attestation_key(quote: Quote) -> None:
    """
    Verify that the QE report data binds the attestation key.

    Raises:
        QuoteLengthError: If the quote is too short
        AttestationKeyBindingError: If the binding does not hold
    """
    try:
        check_attestation_key_binding(
            quote.attestation_key(),
            quote.qe_authentication_data(),
            quote.qe_report_data(),
        )
    except QuoteVerificationError as e:
        logger.debug("Attestation key binding failed: %s", e)
        raise


def verify_sgx_quote(quote: Quote) -> x509.Certificate:
    """
    Perform all three cryptographic checks on a quote.

    1. Verify the enclave report body signature using the attestation key
    2. Verify the QE report signature using the PCK certificate
    3. Verify the QE report data binding

    Args:
        quote: The quote to verify

    Returns:
        The PCK leaf certificate, for the caller's certificate chain check

    Raises:
        QuoteVerificationError: If any check fails
    """
    verify_enclave_report_body(quote)
    verify_quoting_enclave_report(quote)
    verify_attestation_key(quote)
    logger.debug("Quote verified (%d bytes)", len(quote))

    return load_leaf_certificate(quote.certification_data())
