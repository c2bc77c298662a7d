"""Multi-frame response reassembly for VIN (09 02) and stored DTCs (03).

A multi-frame reply is a set of indexed lines:

    014
    0: 49 02 01 31 44 34
    1: 47 50 30 30 52 35 35
    2: 42 31 32 33 34 35 36

The first line is the declared byte count (hex). Payload bytes are taken
from each line in order; line indices and colons are never part of the
payload.
"""

from .constants import (
    VIN_HEADER, VIN_HEADER_BYTES, DTC_RESPONSE, MAX_DTC_CODES,
)
from .hexcodec import ParseError, hex_byte, hex_word

_LINE_BREAKS = "\r\n"


def _skip_spaces(text, pos):
    while pos < len(text) and text[pos] == " ":
        pos += 1
    return pos


def payload_bytes(text, pos):
    """Yield hex bytes from text[pos:], following indexed continuation lines.

    Bytes are read pair by pair until a line break. Reading then resumes
    after the next ":" (the "<n>:" prefix of the following frame). Stops
    when no further ":" exists.
    """
    while True:
        pos = _skip_spaces(text, pos)
        while pos < len(text) and text[pos] not in _LINE_BREAKS:
            yield hex_byte(text[pos:pos + 2])
            while pos < len(text) and text[pos] not in " " + _LINE_BREAKS:
                pos += 1
            pos = _skip_spaces(text, pos)

        colon = text.find(":", pos)
        if colon < 0:
            return
        pos = colon + 1


def extract_vin(text):
    """Reconstruct VIN characters without validating them.

    Returns (declared_length, chars). declared_length is the hex word at the
    start of the response and counts the 3 header bytes.
    Raises ParseError if the "0: 49 02 01" header is missing.
    """
    declared = hex_word(text.lstrip(_LINE_BREAKS))
    header = text.find(VIN_HEADER)
    if header < 0:
        raise ParseError("VIN header not found")
    chars = "".join(chr(b) for b in payload_bytes(text, header + len(VIN_HEADER)))
    return declared, chars


def decode_vin(text):
    """Return the VIN from a 09 02 response.

    Raises ParseError if the header is missing or the number of characters
    differs from the declared length minus the header bytes.
    """
    declared, chars = extract_vin(text)
    if len(chars) != declared - VIN_HEADER_BYTES:
        raise ParseError(
            f"VIN length mismatch: got {len(chars)}, declared {declared - VIN_HEADER_BYTES}")
    return chars


def dtc_request(page):
    """Mode 03 request for a DTC page: "03\\r" for page 0, "03NN\\r" after."""
    return "03\r" if page == 0 else f"03{page:02X}\r"


def decode_dtcs(text, max_codes=MAX_DTC_CODES):
    """Decode 16-bit trouble codes following the "43" response byte.

    Stops at a 0x0000 padding code or after max_codes codes.
    """
    start = text.find(DTC_RESPONSE)
    if start < 0:
        return []

    codes = []
    high = None
    for b in payload_bytes(text, start + len(DTC_RESPONSE)):
        if len(codes) >= max_codes:
            break
        if high is None:
            high = b
            continue
        code = (high << 8) | b
        high = None
        if code == 0:
            break
        codes.append(code)
    return codes
