"""
SGX DCAP quote layout structures and constants.

This module provides the byte layout of Intel SGX ECDSA quotes (version 3)
and checked accessors over a quote buffer. Offsets follow the tables of the
Intel SGX ECDSA Quote Library Reference (DCAP API):
https://download.01.org/intel-sgx/latest/dcap-latest/linux/docs/Intel_SGX_ECDSA_QuoteLibReference_DCAP_API.pdf
"""

import struct
from dataclasses import dataclass, field
from typing import ClassVar

from .types import QuoteLengthError

# =============================================================================
# Constants
# =============================================================================

# Structure sizes (Tables 3, 5, 6 and 7)
HEADER_SIZE = 0x30  # 48 bytes
ENCLAVE_REPORT_SIZE = 0x180  # 384 bytes
REPORT_DATA_SIZE = 0x40  # 64 bytes
SIGNATURE_SIZE = 0x40  # 64 bytes
ATTESTATION_KEY_SIZE = 0x40  # 64 bytes
ECDSA_P256_COMPONENT_SIZE = 0x20  # 32 bytes per R or S component
SIGNATURE_DATA_LEN_SIZE = 4  # Quote Signature Data Len (Table 2)
QE_AUTH_DATA_SIZE_SIZE = 2
BINDING_DIGEST_SIZE = 0x20  # SHA-256 digest in the QE report data
CERT_DATA_HEADER_SIZE = 6  # 2 bytes type + 4 bytes size

# Supported quote version
QUOTE_VERSION_V3 = 3

# Attestation key type (ECDSA-256-with-P-256 curve)
ATTESTATION_KEY_TYPE_ECDSA_P256 = 2

# Certification data types (Table 9)
CERT_DATA_TYPE_PCK_CERT_CHAIN = 5

# Intel QE Vendor ID: 939a7233-f79c-4ca9-940a-0db3957f0607
INTEL_QE_VENDOR_ID = bytes.fromhex("939a7233f79c4ca9940a0db3957f0607")

# =============================================================================
# Quote-level offsets
# =============================================================================

QUOTE_HEADER_START = 0x00
QUOTE_REPORT_BODY_START = HEADER_SIZE
QUOTE_REPORT_BODY_END = HEADER_SIZE + ENCLAVE_REPORT_SIZE  # 0x1B0
QUOTE_SIGNATURE_DATA_LEN_START = QUOTE_REPORT_BODY_END
# The variable-length signature data follows the 4-byte length.
ISV_ENCLAVE_SIGNATURE_START = QUOTE_SIGNATURE_DATA_LEN_START + SIGNATURE_DATA_LEN_SIZE  # 0x1B4
ATTESTATION_KEY_START = ISV_ENCLAVE_SIGNATURE_START + SIGNATURE_SIZE  # 0x1F4
QE_REPORT_START = ATTESTATION_KEY_START + ATTESTATION_KEY_SIZE  # 0x234
QE_REPORT_SIGNATURE_START = QE_REPORT_START + ENCLAVE_REPORT_SIZE  # 0x3B4
QE_AUTH_DATA_SIZE_START = QE_REPORT_SIGNATURE_START + SIGNATURE_SIZE  # 0x3F4
QE_AUTH_DATA_START = QE_AUTH_DATA_SIZE_START + QE_AUTH_DATA_SIZE_SIZE  # 0x3F6

# =============================================================================
# Enclave report body offsets (relative to report start)
# =============================================================================

REPORT_DATA_OFFSET = 0x140
QE_REPORT_DATA_START = QE_REPORT_START + REPORT_DATA_OFFSET  # 0x374


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class QuoteHeader:
    """
    SGX quote header (48 bytes, Table 3).
    """
    version: int  # 2 bytes - 3 for SGX ECDSA quotes
    attestation_key_type: int  # 2 bytes - 2 (ECDSA-P256)
    reserved: bytes  # 4 bytes
    qe_svn: int  # 2 bytes
    pce_svn: int  # 2 bytes
    qe_vendor_id: bytes  # 16 bytes
    user_data: bytes  # 20 bytes - first 16 bytes hold the platform ID

    format_string: ClassVar[str] = "<HH4sHH16s20s"

    @classmethod
    def from_bytes(cls, data: bytes) -> "QuoteHeader":
        if len(data) < HEADER_SIZE:
            raise QuoteLengthError("quote header", 0, HEADER_SIZE, len(data))
        return cls(*struct.unpack_from(cls.format_string, data, 0))

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.format_string,
            self.version,
            self.attestation_key_type,
            self.reserved,
            self.qe_svn,
            self.pce_svn,
            self.qe_vendor_id,
            self.user_data,
        )

    def __str__(self) -> str:
        return (
            f"QuoteHeader(version={self.version}, "
            f"ak_type={self.attestation_key_type}, "
            f"qe_svn={self.qe_svn}, pce_svn={self.pce_svn}, "
            f"qe_vendor_id={self.qe_vendor_id.hex()})"
        )


@dataclass
class EnclaveReportBody:
    """
    SGX enclave report body (384 bytes, Table 5).

    Used both for the ISV enclave report and for the Quoting Enclave report.
    Reserved areas are kept so that serializing a parsed report reproduces
    the original bytes.
    """
    cpu_svn: bytes  # 16 bytes
    misc_select: int  # 4 bytes
    reserved1: bytes  # 12 bytes
    isv_ext_prod_id: bytes  # 16 bytes
    attributes: bytes  # 16 bytes
    mr_enclave: bytes  # 32 bytes
    reserved2: bytes  # 32 bytes
    mr_signer: bytes  # 32 bytes
    reserved3: bytes  # 32 bytes
    config_id: bytes  # 64 bytes
    isv_prod_id: int  # 2 bytes
    isv_svn: int  # 2 bytes
    config_svn: int  # 2 bytes
    reserved4: bytes  # 42 bytes
    isv_family_id: bytes  # 16 bytes
    report_data: bytes  # 64 bytes

    format_string: ClassVar[str] = (
        "<"
        "16s"  # cpu_svn
        "I"  # misc_select
        "12s"  # reserved1
        "16s"  # isv_ext_prod_id
        "16s"  # attributes
        "32s"  # mr_enclave
        "32s"  # reserved2
        "32s"  # mr_signer
        "32s"  # reserved3
        "64s"  # config_id
        "H"  # isv_prod_id
        "H"  # isv_svn
        "H"  # config_svn
        "42s"  # reserved4
        "16s"  # isv_family_id
        "64s"  # report_data
    )

    @classmethod
    def from_bytes(cls, data: bytes) -> "EnclaveReportBody":
        if len(data) < ENCLAVE_REPORT_SIZE:
            raise QuoteLengthError(
                "enclave report body", 0, ENCLAVE_REPORT_SIZE, len(data)
            )
        return cls(*struct.unpack_from(cls.format_string, data, 0))

    def to_bytes(self) -> bytes:
        return struct.pack(
            self.format_string,
            self.cpu_svn,
            self.misc_select,
            self.reserved1,
            self.isv_ext_prod_id,
            self.attributes,
            self.mr_enclave,
            self.reserved2,
            self.mr_signer,
            self.reserved3,
            self.config_id,
            self.isv_prod_id,
            self.isv_svn,
            self.config_svn,
            self.reserved4,
            self.isv_family_id,
            self.report_data,
        )

    def __str__(self) -> str:
        return (
            f"EnclaveReportBody(mr_enclave={self.mr_enclave.hex()}, "
            f"mr_signer={self.mr_signer.hex()}, "
            f"isv_prod_id={self.isv_prod_id}, "
            f"isv_svn={self.isv_svn})"
        )


@dataclass(frozen=True)
class Quote:
    """
    An SGX DCAP quote.

    Construction copies the supplied bytes and never fails, whatever their
    length. Field accessors check the buffer length and raise
    QuoteLengthError rather than returning a short slice.

    Example:
        >>> quote = Quote(raw_quote)
        >>> verify_sgx_quote(quote)
    """
    data: bytes = field(repr=False)

    def __post_init__(self):
        object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"Quote({len(self.data)} bytes)"

    def _slice(self, name: str, offset: int, size: int) -> bytes:
        if offset + size > len(self.data):
            raise QuoteLengthError(name, offset, size, len(self.data))
        return self.data[offset:offset + size]

    def _read_u16(self, name: str, offset: int) -> int:
        return struct.unpack("<H", self._slice(name, offset, 2))[0]

    def _read_u32(self, name: str, offset: int) -> int:
        return struct.unpack("<I", self._slice(name, offset, 4))[0]

    # -------------------------------------------------------------------------
    # Fixed-offset fields
    # -------------------------------------------------------------------------

    def header_and_enclave_report_body(self) -> bytes:
        """Return Header || Enclave Report Body, the message of the ISV signature."""
        return self._slice("header and enclave report body", 0, QUOTE_REPORT_BODY_END)

    def signature_data_length(self) -> int:
        """Return the declared Quote Signature Data Len (not validated)."""
        return self._read_u32("signature data length", QUOTE_SIGNATURE_DATA_LEN_START)

    def isv_enclave_signature(self) -> bytes:
        return self._slice("ISV enclave signature", ISV_ENCLAVE_SIGNATURE_START, SIGNATURE_SIZE)

    def attestation_key(self) -> bytes:
        """Return the raw attestation public key (X || Y, no 0x04 tag)."""
        return self._slice("attestation key", ATTESTATION_KEY_START, ATTESTATION_KEY_SIZE)

    def qe_report(self) -> bytes:
        return self._slice("QE report", QE_REPORT_START, ENCLAVE_REPORT_SIZE)

    def qe_report_data(self) -> bytes:
        return self._slice("QE report data", QE_REPORT_DATA_START, REPORT_DATA_SIZE)

    def qe_report_signature(self) -> bytes:
        return self._slice("QE report signature", QE_REPORT_SIGNATURE_START, SIGNATURE_SIZE)

    # -------------------------------------------------------------------------
    # Variable-offset fields
    # -------------------------------------------------------------------------

    def qe_authentication_data(self) -> bytes:
        """
        Return the QE authentication data.

        The data is preceded by its 2-byte little-endian length. The length
        is checked against the bytes remaining in the quote.
        """
        size = self._read_u16("QE authentication data size", QE_AUTH_DATA_SIZE_START)
        return self._slice("QE authentication data", QE_AUTH_DATA_START, size)

    def _certification_data_header_start(self) -> int:
        return QE_AUTH_DATA_START + len(self.qe_authentication_data())

    def certification_data_type(self) -> int:
        return self._read_u16(
            "certification data type", self._certification_data_header_start()
        )

    def certification_data_size(self) -> int:
        """Return the declared size of the certification data."""
        return self._read_u32(
            "certification data size", self._certification_data_header_start() + 2
        )

    def certification_data_offset(self) -> int:
        """
        Return the offset of the certification data payload.

        The payload follows the variable-length QE authentication data and
        the 6-byte certification data header, so the offset depends on the
        authentication data length stored in the quote.
        """
        start = self._certification_data_header_start()
        # Require the header itself to be present.
        self._slice("certification data header", start, CERT_DATA_HEADER_SIZE)
        return start + CERT_DATA_HEADER_SIZE

    def certification_data(self) -> bytes:
        """Return the certification data (PEM PCK chain) through the end of the quote."""
        return self.data[self.certification_data_offset():]

    # -------------------------------------------------------------------------
    # Parsed views
    # -------------------------------------------------------------------------

    def header(self) -> QuoteHeader:
        return QuoteHeader.from_bytes(self._slice("quote header", QUOTE_HEADER_START, HEADER_SIZE))

    def enclave_report_body(self) -> EnclaveReportBody:
        return EnclaveReportBody.from_bytes(
            self._slice("enclave report body", QUOTE_REPORT_BODY_START, ENCLAVE_REPORT_SIZE)
        )

    def qe_report_body(self) -> EnclaveReportBody:
        return EnclaveReportBody.from_bytes(self.qe_report())
