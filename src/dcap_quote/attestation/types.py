"""
Shared error types for DCAP quote verification.

This module has no intra-package dependencies, so any module can import
from it without risk of circular imports.
"""


class QuoteVerificationError(Exception):
    """Base class for quote verification errors"""
    pass


class CertificateError(QuoteVerificationError):
    """Raised when the signing certificate or its key cannot be obtained"""
    pass


class PemParsingError(QuoteVerificationError):
    """Raised when the PEM or X.509 data in the quote is malformed"""
    pass


class SignatureError(QuoteVerificationError):
    """Raised when a signature is malformed or does not verify"""
    pass


class KeyDecodeError(QuoteVerificationError):
    """Raised when raw key bytes are not a valid P-256 point"""
    pass


class AttestationKeyBindingError(QuoteVerificationError):
    """Raised when the QE report data does not bind the attestation key"""
    pass


class QuoteLengthError(QuoteVerificationError):
    """
    Raised when a quote field extends past the end of the quote buffer.

    Attributes:
        field: Human-readable name of the field being read
        offset: Byte offset of the field within the quote
        size: Number of bytes the field requires
        available: Number of bytes in the quote buffer
    """

    def __init__(self, field: str, offset: int, size: int, available: int):
        self.field = field
        self.offset = offset
        self.size = size
        self.available = available
        super().__init__(
            f"Quote too short for {field}: need {size} bytes at offset "
            f"{offset}, but quote is {available} bytes"
        )
