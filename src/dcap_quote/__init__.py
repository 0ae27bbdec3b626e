from .attestation import (
    Quote,
    QuoteVerificationError,
    verify_sgx_quote,
)

__all__ = ["Quote", "QuoteVerificationError", "verify_sgx_quote"]
