"""
Tests for the SMC value decoder module
"""

import struct

import pytest

from smcinflux.smc.decoder import (
    TypedValue,
    decode,
    decode_flt,
    decode_fpe2,
    decode_rpm,
    decode_sp78,
    decode_temperature,
    decode_uint,
)
from smcinflux.smc.keys import SensorKey

KEY = SensorKey("TEST")


def typed(data_type: str, data: bytes, size: int = None) -> TypedValue:
    return TypedValue(key=KEY, data_size=len(data) if size is None else size,
                      data_type=data_type, data=data)


class TestSP78:
    """Test signed 8.8 fixed point temperatures"""

    @pytest.mark.parametrize("raw,expected", [
        ((0x00, 0x00), 0.0),
        ((0x20, 0x00), 32.0),
        ((0x20, 0x80), 32.5),
        ((0x24, 0x00), 36.0),
        ((0x00, 0x40), 0.25),
    ])
    def test_values(self, raw, expected):
        assert decode_sp78(bytes(raw)) == expected

    def test_negative(self):
        """Test integer byte is signed"""
        assert decode_sp78(bytes([0xFF, 0x80])) == -0.5
        assert decode_sp78(bytes([0xF6, 0x00])) == -10.0

    def test_ignores_padding(self):
        assert decode_sp78(bytes([0x20, 0x80]) + b"\xff" * 30) == 32.5


class TestFPE2:
    """Test fixed point with two fractional bits"""

    def test_whole_value(self):
        assert decode_fpe2(bytes([0x1C, 0x20]), 2) == 1800.0

    def test_quarter_ticks(self):
        """Test each low bit step of the last byte adds 0.25"""
        base = decode_fpe2(bytes([0x1C, 0x20]), 2)
        for tick in range(1, 4):
            assert decode_fpe2(bytes([0x1C, 0x20 + tick]), 2) == base + tick * 0.25

    def test_byte_positions(self):
        """Test higher bytes weigh 2**6 per position"""
        assert decode_fpe2(bytes([0x01, 0x00]), 2) == 64.0
        assert decode_fpe2(bytes([0x01, 0x00, 0x00]), 3) == 4096.0
        assert decode_fpe2(bytes([0x00, 0x04]), 2) == 1.0

    def test_monotonic(self):
        """Test increasing raw values never decrease the result"""
        values = [decode_fpe2(raw.to_bytes(2, "big"), 2) for raw in range(0, 0x400)]
        assert values == sorted(values)

    def test_no_data(self):
        assert decode_fpe2(b"", 0) == 0.0


class TestFLT:
    """Test IEEE float speeds"""

    def test_known_value(self):
        assert decode_flt(struct.pack("=f", 1800.0)) == 1800.0

    def test_only_first_four_bytes(self):
        assert decode_flt(struct.pack("=f", 2400.5) + b"\x01\x02") == 2400.5


class TestDispatch:
    """Test type tag selection"""

    def test_decode_by_tag(self):
        assert decode(typed("sp78", bytes([0x20, 0x80]))) == 32.5
        assert decode(typed("fpe2", bytes([0x1C, 0x20]))) == 1800.0
        assert decode(typed("flt ", struct.pack("=f", 1200.0))) == 1200.0

    def test_unknown_tag(self):
        """Test opaque types decode to None"""
        assert decode(typed("ui8 ", bytes([2]))) is None
        assert decode(typed("flt", struct.pack("=f", 1.0))) is None

    def test_empty_value(self):
        """Test values without data decode to None"""
        assert decode(typed("sp78", bytes([0x20, 0x00]), size=0)) is None

    def test_rpm_accepts_speed_types_only(self):
        assert decode_rpm(typed("flt ", struct.pack("=f", 900.0))) == 900.0
        assert decode_rpm(typed("fpe2", bytes([0x0E, 0x10]))) == 900.0
        assert decode_rpm(typed("sp78", bytes([0x20, 0x00]))) is None

    def test_temperature_accepts_sp78_only(self):
        assert decode_temperature(typed("sp78", bytes([0x20, 0x00]))) == 32.0
        assert decode_temperature(typed("flt ", struct.pack("=f", 32.0))) is None


class TestDecodeUint:
    """Test integer decoding"""

    def test_base16_big_endian(self):
        assert decode_uint(bytes([0x46, 0x4E, 0x75, 0x6D]), 4, base=16) == 0x464E756D
        assert decode_uint(bytes([0x01, 0x00]), 2) == 256

    def test_base16_uses_at_most_four_bytes(self):
        assert decode_uint(bytes([0, 0, 0, 1, 9]), 5, base=16) == 1

    def test_base10_single_byte(self):
        """Test a one byte fan count"""
        assert decode_uint(bytes([2]), 1, base=10) == 2

    def test_base10_ascii_digits(self):
        assert decode_uint(b"2", 1, base=10) == 2
        assert decode_uint(b"12", 2, base=10) == 12

    def test_base10_byte_wise(self):
        """Test bytes above the last one are truncated away"""
        assert decode_uint(bytes([0x01, 0x03]), 2, base=10) == 3

    def test_no_data(self):
        assert decode_uint(b"", 0, base=10) == 0
        assert decode_uint(b"", 0, base=16) == 0

    def test_invalid_base(self):
        with pytest.raises(ValueError):
            decode_uint(bytes([1]), 1, base=8)


class TestTypedValue:
    """Test typed value invariants"""

    def test_padding(self):
        value = typed("sp78", bytes([0x20, 0x80]))
        assert len(value.data) == 32
        assert value.payload == bytes([0x20, 0x80])
        assert not value.is_empty

    def test_size_limits(self):
        with pytest.raises(ValueError):
            TypedValue(key=KEY, data_size=33, data_type="sp78", data=b"")
        with pytest.raises(ValueError):
            TypedValue(key=KEY, data_size=-1, data_type="sp78", data=b"")

    def test_oversized_buffer(self):
        with pytest.raises(ValueError):
            TypedValue(key=KEY, data_size=1, data_type="sp78", data=b"\x00" * 33)
