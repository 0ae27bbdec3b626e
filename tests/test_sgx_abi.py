"""
Unit tests for SGX quote layout (abi_sgx.py).
"""

import struct

import pytest

from dcap_quote.attestation.abi_sgx import (
    # Constants
    HEADER_SIZE,
    ENCLAVE_REPORT_SIZE,
    QUOTE_SIGNATURE_DATA_LEN_START,
    ISV_ENCLAVE_SIGNATURE_START,
    ATTESTATION_KEY_START,
    QE_REPORT_START,
    QE_REPORT_DATA_START,
    QE_REPORT_SIGNATURE_START,
    QE_AUTH_DATA_SIZE_START,
    QE_AUTH_DATA_START,
    CERT_DATA_TYPE_PCK_CERT_CHAIN,
    INTEL_QE_VENDOR_ID,
    # Structures
    Quote,
    QuoteHeader,
    EnclaveReportBody,
)
from dcap_quote.attestation.types import QuoteLengthError, QuoteVerificationError

from sgx_quote_builder import (
    DEFAULT_AUTH_DATA,
    build_header,
    build_report_body,
    build_signed_quote,
)


# =============================================================================
# Layout Constants
# =============================================================================

class TestLayoutConstants:
    """Offsets must match the DCAP quote format tables."""

    def test_quote_offsets(self):
        assert HEADER_SIZE == 48
        assert ENCLAVE_REPORT_SIZE == 384
        assert QUOTE_SIGNATURE_DATA_LEN_START == 432
        assert ISV_ENCLAVE_SIGNATURE_START == 436
        assert ATTESTATION_KEY_START == 500
        assert QE_REPORT_START == 564
        assert QE_REPORT_SIGNATURE_START == 948
        assert QE_AUTH_DATA_SIZE_START == 1012
        assert QE_AUTH_DATA_START == 1014

    def test_report_data_offset(self):
        assert QE_REPORT_DATA_START == QE_REPORT_START + 320


# =============================================================================
# Construction
# =============================================================================

class TestQuoteConstruction:
    """Test that construction never fails."""

    @pytest.mark.parametrize("length", [0, 1, 47, 432, 1013, 1014, 4096])
    def test_any_length(self, length):
        quote = Quote(b'\x00' * length)
        assert len(quote) == length

    def test_copies_input(self):
        data = bytearray(b'\x01' * 16)
        quote = Quote(data)
        data[0] = 0xFF
        assert quote.data == b'\x01' * 16
        assert isinstance(quote.data, bytes)

    def test_immutable(self):
        quote = Quote(b'\x00' * 8)
        with pytest.raises(AttributeError):
            quote.data = b''

    def test_equality(self):
        assert Quote(b'abc') == Quote(bytearray(b'abc'))
        assert hash(Quote(b'abc')) == hash(Quote(b'abc'))

    def test_repr_does_not_dump_bytes(self):
        assert repr(Quote(b'\x00' * 10)) == "Quote(10 bytes)"


# =============================================================================
# Accessors
# =============================================================================

class TestQuoteAccessors:
    """Test field accessors on a well-formed quote."""

    def test_fixed_fields(self):
        signed = build_signed_quote()
        raw = signed.raw
        quote = Quote(raw)

        assert quote.header_and_enclave_report_body() == raw[:432]
        assert quote.isv_enclave_signature() == raw[436:500]
        assert quote.attestation_key() == raw[500:564]
        assert quote.qe_report() == raw[564:948]
        assert quote.qe_report_data() == raw[884:948]
        assert quote.qe_report_signature() == raw[948:1012]

    def test_signature_data_length(self):
        raw = build_signed_quote().raw
        quote = Quote(raw)
        assert quote.signature_data_length() == len(raw) - 436

    def test_qe_authentication_data(self):
        quote = Quote(build_signed_quote().raw)
        assert quote.qe_authentication_data() == DEFAULT_AUTH_DATA

    def test_empty_qe_authentication_data(self):
        quote = Quote(build_signed_quote(auth_data=b'').raw)
        assert quote.qe_authentication_data() == b''
        assert quote.certification_data_offset() == QE_AUTH_DATA_START + 6

    def test_certification_data(self):
        signed = build_signed_quote()
        quote = Quote(signed.raw)

        assert quote.certification_data_type() == CERT_DATA_TYPE_PCK_CERT_CHAIN
        assert quote.certification_data_size() == len(quote.certification_data())
        assert quote.certification_data().startswith(signed.pck_cert_pem)

    def test_certification_data_offset_with_32_byte_auth_data(self):
        """32 bytes of auth data put the PEM data at 0x41C."""
        quote = Quote(build_signed_quote(auth_data=b'\x42' * 32).raw)
        assert quote.certification_data_offset() == 0x41C

    def test_certification_data_offset_follows_auth_data_length(self):
        quote = Quote(build_signed_quote(auth_data=b'\x42' * 100).raw)
        assert quote.certification_data_offset() == QE_AUTH_DATA_START + 100 + 6
        assert quote.certification_data().startswith(b'-----BEGIN CERTIFICATE-----')


class TestQuoteAccessorBounds:
    """Accessors raise QuoteLengthError instead of reading past the buffer."""

    @pytest.mark.parametrize("accessor,min_length", [
        ("header_and_enclave_report_body", 432),
        ("signature_data_length", 436),
        ("isv_enclave_signature", 500),
        ("attestation_key", 564),
        ("qe_report", 948),
        ("qe_report_data", 948),
        ("qe_report_signature", 1012),
        ("qe_authentication_data", 1014 + len(DEFAULT_AUTH_DATA)),
    ])
    def test_truncated(self, accessor, min_length):
        raw = build_signed_quote().raw

        short = Quote(raw[:min_length - 1])
        with pytest.raises(QuoteLengthError):
            getattr(short, accessor)()

        getattr(Quote(raw[:min_length]), accessor)()

    def test_empty_quote(self):
        quote = Quote(b'')
        with pytest.raises(QuoteLengthError, match="need 432 bytes at offset 0"):
            quote.header_and_enclave_report_body()

    def test_auth_data_length_exceeds_buffer(self):
        """A declared auth data length past the end of the quote is rejected."""
        raw = bytearray(build_signed_quote().raw[:QE_AUTH_DATA_START + 10])
        struct.pack_into('<H', raw, QE_AUTH_DATA_SIZE_START, 11)
        quote = Quote(raw)

        with pytest.raises(QuoteLengthError) as exc_info:
            quote.qe_authentication_data()
        assert exc_info.value.offset == QE_AUTH_DATA_START
        assert exc_info.value.size == 11
        assert exc_info.value.available == QE_AUTH_DATA_START + 10

    def test_auth_data_length_exactly_fits(self):
        raw = bytearray(build_signed_quote().raw[:QE_AUTH_DATA_START + 10])
        struct.pack_into('<H', raw, QE_AUTH_DATA_SIZE_START, 10)
        assert len(Quote(raw).qe_authentication_data()) == 10

    def test_missing_certification_data_header(self):
        raw = build_signed_quote().raw
        cert_header_start = QE_AUTH_DATA_START + len(DEFAULT_AUTH_DATA)
        quote = Quote(raw[:cert_header_start + 5])

        with pytest.raises(QuoteLengthError):
            quote.certification_data_offset()
        with pytest.raises(QuoteLengthError):
            quote.certification_data_size()

    def test_length_error_is_verification_error(self):
        assert issubclass(QuoteLengthError, QuoteVerificationError)


# =============================================================================
# Structured Views
# =============================================================================

class TestQuoteHeader:
    """Test QuoteHeader serialization."""

    def test_parse(self):
        header = QuoteHeader.from_bytes(build_header().to_bytes())

        assert header.version == 3
        assert header.attestation_key_type == 2
        assert header.qe_svn == 8
        assert header.pce_svn == 13
        assert header.qe_vendor_id == INTEL_QE_VENDOR_ID

    def test_field_positions(self):
        data = build_header().to_bytes()
        assert len(data) == HEADER_SIZE
        assert data[0:2] == b'\x03\x00'
        assert data[2:4] == b'\x02\x00'
        assert data[8:10] == struct.pack('<H', 8)
        assert data[10:12] == struct.pack('<H', 13)
        assert data[12:28] == INTEL_QE_VENDOR_ID

    def test_too_short(self):
        with pytest.raises(QuoteLengthError):
            QuoteHeader.from_bytes(b'\x00' * 47)

    def test_str(self):
        assert "version=3" in str(build_header())


class TestEnclaveReportBody:
    """Test EnclaveReportBody serialization."""

    def test_size(self):
        assert len(build_report_body().to_bytes()) == ENCLAVE_REPORT_SIZE

    def test_field_positions(self):
        data = build_report_body(report_data=b'\x99' * 64).to_bytes()

        assert data[64:96] == b'\x11' * 32  # mr_enclave
        assert data[128:160] == b'\x22' * 32  # mr_signer
        assert struct.unpack_from('<H', data, 256)[0] == 1  # isv_prod_id
        assert struct.unpack_from('<H', data, 258)[0] == 2  # isv_svn
        assert data[320:384] == b'\x99' * 64  # report_data

    def test_preserves_reserved_bytes(self):
        data = bytes(range(256)) + bytes(range(128))
        assert EnclaveReportBody.from_bytes(data).to_bytes() == data

    def test_quote_views(self):
        quote = Quote(build_signed_quote().raw)

        assert quote.header().version == 3
        assert quote.enclave_report_body().mr_enclave == b'\x11' * 32
        assert quote.qe_report_body().mr_enclave == b'\xee' * 32
        assert quote.qe_report_body().report_data == quote.qe_report_data()

    def test_too_short(self):
        with pytest.raises(QuoteLengthError):
            EnclaveReportBody.from_bytes(b'\x00' * 383)
