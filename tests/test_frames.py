"""Tests for VIN and trouble code reassembly."""

import pytest

from elmlink.frames import (
    decode_dtcs, decode_vin, dtc_request, extract_vin, payload_bytes,
)
from elmlink.hexcodec import ParseError

VIN_OK = ("000D\r"
          "0: 49 02 01 31 32 33\r"
          "1: 34 35 36 37 38 39 30\r\r>")

# Declares 0x17 bytes but only carries 10 characters
VIN_SHORT = ("0017\r"
             "0: 49 02 01 31 32 33\r"
             "1: 34 35 36 37 38 39 30\r\r>")

VIN_FULL = ("014\r"
            "0: 49 02 01 31 44 34\r"
            "1: 47 50 30 30 52 35 35\r"
            "2: 42 31 32 33 34 35 36\r\r>")


def test_payload_bytes_follow_continuation_lines():
    text = "AA BB\r1: CC\r2: DD EE\r\r>"
    assert list(payload_bytes(text, 0)) == [0xAA, 0xBB, 0xCC, 0xDD, 0xEE]


def test_extract_vin_skips_line_indices():
    assert extract_vin(VIN_SHORT) == (0x17, "1234567890")


def test_decode_vin():
    assert decode_vin(VIN_OK) == "1234567890"
    assert decode_vin(VIN_FULL) == "1D4GP00R55B123456"


def test_decode_vin_tolerates_leading_line_break():
    assert decode_vin("\r" + VIN_OK) == "1234567890"


def test_decode_vin_length_mismatch():
    with pytest.raises(ParseError, match="length"):
        decode_vin(VIN_SHORT)


def test_decode_vin_missing_header():
    with pytest.raises(ParseError):
        decode_vin("NO DATA\r\r>")


def test_dtc_request():
    assert dtc_request(0) == "03\r"
    assert dtc_request(1) == "0301\r"
    assert dtc_request(5) == "0305\r"


def test_decode_dtcs():
    assert decode_dtcs("43 01 08 01 09\r") == [0x0108, 0x0109]


def test_decode_dtcs_stops_at_padding():
    assert decode_dtcs("43 01 33 00 00 01 08\r\r>") == [0x0133]


def test_decode_dtcs_caps_count():
    text = "43 01 01 01 02 01 03 01 04\r\r>"
    assert decode_dtcs(text, max_codes=2) == [0x0101, 0x0102]


def test_decode_dtcs_code_split_across_lines():
    text = "43 01 08 01\r1: 09 01 33\r\r>"
    assert decode_dtcs(text) == [0x0108, 0x0109, 0x0133]


def test_decode_dtcs_without_response_byte():
    assert decode_dtcs("NO DATA\r\r>") == []
