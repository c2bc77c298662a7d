"""Tests for hex and decimal text parsing."""

import pytest

from elmlink.hexcodec import (
    ParseError, hex_byte, hex_word, parse_decimal, parse_decimal_or_zero,
)


@pytest.mark.parametrize("text,expected", [
    ("7B", 0x7B),
    ("7b", 0x7B),
    ("ff", 0xFF),
    ("00", 0),
    ("32 \r\r>", 0x32),
])
def test_hex_byte(text, expected):
    assert hex_byte(text) == expected


def test_hex_byte_single_nibble():
    assert hex_byte("7") == 7
    assert hex_byte("A\r") == 0xA
    assert hex_byte("3 ") == 3


def test_hex_byte_invalid_is_zero():
    assert hex_byte("") == 0
    assert hex_byte("ZZ") == 0
    assert hex_byte(" 7") == 0


def test_hex_word():
    assert hex_word("1AF8") == 6904
    assert hex_word("1A F8") == 0x1AF8
    assert hex_word("1a f8 \r>") == 0x1AF8


def test_hex_word_stops_at_disallowed_char():
    assert hex_word("014\r0: 49") == 0x014
    assert hex_word("1AF8FF") == 0x1AF8
    assert hex_word("1 AF8") == 0x1
    assert hex_word("1A  F8") == 0x1A
    assert hex_word("") == 0


def test_parse_decimal():
    assert parse_decimal("-123") == -123
    assert parse_decimal("0") == 0
    assert parse_decimal("2147483647") == 2147483647
    assert parse_decimal("-2147483648") == -2147483648
    assert parse_decimal("42km") == 42


@pytest.mark.parametrize("text", ["2147483648", "-2147483649", "99999999999", "", "-", "abc"])
def test_parse_decimal_rejects(text):
    with pytest.raises(ParseError):
        parse_decimal(text)


def test_parse_error_is_value_error():
    with pytest.raises(ValueError):
        parse_decimal("x")


def test_parse_decimal_or_zero():
    assert parse_decimal_or_zero("2147483648") == 0
    assert parse_decimal_or_zero("17") == 17
