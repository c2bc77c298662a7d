"""Hex and decimal text parsing for adapter responses.

Malformed hex decodes to 0 instead of raising. Malformed decimals raise
ParseError.
"""

INT32_MAX = 0x7FFFFFFF


class ParseError(ValueError):
    """Response text could not be parsed."""


def _nibble(c):
    """Return the value of one hex digit, or None."""
    if "0" <= c <= "9":
        return ord(c) - ord("0")
    if "A" <= c <= "F":
        return ord(c) - ord("A") + 10
    if "a" <= c <= "f":
        return ord(c) - ord("a") + 10
    return None


def hex_byte(text):
    """Decode up to two hex characters at the start of text.

    "7B" -> 0x7B, "7" -> 0x7, "7\\r" -> 0x7, "Z7" -> 0.
    """
    if not text:
        return 0
    hi = _nibble(text[0])
    if hi is None:
        return 0
    lo = _nibble(text[1]) if len(text) > 1 else None
    if lo is None:
        return hi
    return (hi << 4) | lo


def hex_word(text):
    """Decode up to 4 hex digits, allowing one space between the two bytes.

    "1AF8" and "1A F8" both give 0x1AF8. Stops at the first other character.
    """
    value = 0
    digits = 0
    skipped_space = False
    for c in text:
        if digits >= 4:
            break
        if c == " " and digits == 2 and not skipped_space:
            skipped_space = True
            continue
        n = _nibble(c)
        if n is None:
            break
        value = (value << 4) | n
        digits += 1
    return value


def parse_decimal(text):
    """Parse an optionally negative decimal integer without wrapping.

    Digits are read up to the first non-digit. Raises ParseError when no
    digit is present or the value does not fit a signed 32-bit int.
    """
    if text is None:
        raise ParseError("no input")

    negative = text.startswith("-")
    digits = text[1:] if negative else text
    limit = INT32_MAX + 1 if negative else INT32_MAX

    result = 0
    count = 0
    for c in digits:
        if not "0" <= c <= "9":
            break
        result = result * 10 + (ord(c) - ord("0"))
        count += 1
        if result > limit:
            raise ParseError(f"{text!r} overflows int32")

    if count == 0:
        raise ParseError(f"{text!r} is not a decimal number")
    return -result if negative else result


def parse_decimal_or_zero(text):
    """parse_decimal(), substituting 0 when the text is rejected."""
    try:
        return parse_decimal(text)
    except ParseError:
        return 0
