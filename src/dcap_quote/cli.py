"""
Command-line verification of SGX DCAP quotes.

Usage: dcap-quote-verify quote.dat [--check all|report|qe-report|binding]
"""

import argparse
import binascii
import logging
import sys

from .attestation import Quote, QuoteVerificationError
from .attestation.cert_utils import parse_pem_chain
from .attestation.verify_sgx import (
    verify_attestation_key,
    verify_enclave_report_body,
    verify_quoting_enclave_report,
)

EXIT_OK = 0
EXIT_VERIFICATION_FAILED = 1
EXIT_IO_ERROR = 2

CHECKS = {
    "report": ("Enclave report body signature", verify_enclave_report_body),
    "qe-report": ("QE report signature", verify_quoting_enclave_report),
    "binding": ("Attestation key binding", verify_attestation_key),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dcap-quote-verify",
        description="Verify the signatures and key binding of an SGX DCAP quote",
    )
    parser.add_argument('quote',
                        help='Path to the quote file, or - for stdin')
    parser.add_argument('-c', '--check',
                        choices=["all"] + list(CHECKS),
                        default="all",
                        help='Which check to run')
    parser.add_argument('--hex',
                        action='store_true',
                        help='Quote file is hex encoded')
    parser.add_argument('-v', '--verbose',
                        action='store_true',
                        help='Enable debug logging')
    return parser


def read_quote(path: str, hex_encoded: bool = False) -> Quote:
    """Read a quote from path (- for stdin), decoding hex if requested."""
    if path == "-":
        data = sys.stdin.buffer.read()
    else:
        with open(path, "rb") as f:
            data = f.read()

    if hex_encoded:
        data = binascii.unhexlify(b"".join(data.split()))
    return Quote(data)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        format='%(message)s',
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    try:
        quote = read_quote(args.quote, args.hex)
    except (OSError, binascii.Error) as e:
        logging.error(f"Error reading quote: {e}")
        return EXIT_IO_ERROR

    selected = list(CHECKS) if args.check == "all" else [args.check]

    failed = False
    for name in selected:
        description, check = CHECKS[name]
        try:
            check(quote)
        except QuoteVerificationError as e:
            logging.error(f"{description}: FAILED ({type(e).__name__}: {e})")
            failed = True
        else:
            logging.info(f"{description}: OK")

    if args.verbose and "qe-report" in selected:
        try:
            chain = parse_pem_chain(quote.certification_data())
        except QuoteVerificationError as e:
            logging.debug(f"PCK certificate chain unavailable: {e}")
        else:
            logging.debug(f"PCK certificate chain contains {len(chain)} certificates")
            for cert in chain:
                logging.debug(f"  {cert.subject.rfc4514_string()}")

    return EXIT_VERIFICATION_FAILED if failed else EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
