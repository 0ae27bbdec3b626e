from .abi_sgx import Quote, QuoteHeader, EnclaveReportBody
from .types import (
    QuoteVerificationError,
    CertificateError,
    PemParsingError,
    SignatureError,
    KeyDecodeError,
    AttestationKeyBindingError,
    QuoteLengthError,
)
from .cert_utils import extract_pck_public_key
from .verify_sgx import (
    check_attestation_key_binding,
    verify_ecdsa_p256,
    verify_enclave_report_body,
    verify_quoting_enclave_report,
    verify_attestation_key,
    verify_sgx_quote,
)

__all__ = [
    'Quote',
    'QuoteHeader',
    'EnclaveReportBody',
    'QuoteVerificationError',
    'CertificateError',
    'PemParsingError',
    'SignatureError',
    'KeyDecodeError',
    'AttestationKeyBindingError',
    'QuoteLengthError',
    'extract_pck_public_key',
    'check_attestation_key_binding',
    'verify_ecdsa_p256',
    'verify_enclave_report_body',
    'verify_quoting_enclave_report',
    'verify_attestation_key',
    'verify_sgx_quote',
]
