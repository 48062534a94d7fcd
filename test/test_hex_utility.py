"""Unit tests for hex and unit conversion helpers."""

import pytest

from avalanche_explorer.utils.hex_utility import (
    hex_to_int,
    int_to_hex,
    iso_to_timestamp,
    timestamp_to_iso,
    wei_to_gwei,
    wei_to_token,
)


class TestHexToInt:
    """Tests for hex_to_int()."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("0x64", 100),
            ("0X1f", 31),
            ("42", 42),
            (7, 7),
            (None, 0),
            ("", 0),
            ("0x", 0),
        ],
    )
    def test_values(self, value, expected):
        assert hex_to_int(value) == expected

    def test_rejects_other_types(self):
        with pytest.raises(ValueError):
            hex_to_int(1.5)

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            hex_to_int("latest")


class TestIntToHex:
    def test_encode(self):
        assert int_to_hex(0) == "0x0"
        assert int_to_hex(100) == "0x64"

    def test_negative(self):
        with pytest.raises(ValueError):
            int_to_hex(-1)


class TestUnits:
    """Tests for wei formatting."""

    def test_wei_to_token(self):
        assert wei_to_token(1_775_000_000_000_000) == "0.001775"
        assert wei_to_token(0) == "0.000000"
        assert wei_to_token(10**18, places=2) == "1.00"

    def test_wei_to_gwei(self):
        assert wei_to_gwei(25_000_000_000) == "25.0000"
        assert wei_to_gwei(1_500_000_000, places=2) == "1.50"


class TestTimestamps:
    def test_iso(self):
        assert timestamp_to_iso(1_700_000_000) == "2023-11-14T22:13:20.000Z"
        assert iso_to_timestamp("2023-11-14T22:13:20.000Z") == 1_700_000_000
        assert iso_to_timestamp("2023-11-14T23:13:20+01:00") == 1_700_000_000
