"""
SMC Value Decoder Module

This module converts raw SMC register payloads into physical values.
All functions are pure: they never talk to the controller.

Supported encodings (selected by exact type tag):
- "flt ": IEEE-754 single precision float, native byte order (fan RPM)
- "fpe2": unsigned fixed point with 2 fractional bits (legacy fan RPM)
- "sp78": signed 8.8 fixed point (temperatures in °C)

Any other tag, or a value with no data, decodes to None.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .keys import SensorKey

logger = logging.getLogger(__name__)

SMC_BYTES_SIZE = 32

TYPE_FLT = "flt "
TYPE_FPE2 = "fpe2"
TYPE_SP78 = "sp78"

RPM_TYPES = (TYPE_FLT, TYPE_FPE2)
TEMPERATURE_TYPES = (TYPE_SP78,)


@dataclass(frozen=True)
class TypedValue:
    """Result of one SMC key read.

    Attributes:
        key: Key that was read
        data_size: Number of meaningful bytes in data (0-32)
        data_type: Four-character type tag (e.g., "sp78")
        data: Raw payload buffer, zero padded to 32 bytes
    """
    key: SensorKey
    data_size: int
    data_type: str
    data: bytes

    def __post_init__(self):
        if not 0 <= self.data_size <= SMC_BYTES_SIZE:
            raise ValueError(f"Data size {self.data_size} outside 0-{SMC_BYTES_SIZE} for {self.key}")
        if len(self.data) > SMC_BYTES_SIZE:
            raise ValueError(f"Payload for {self.key} exceeds {SMC_BYTES_SIZE} bytes")
        if len(self.data) < SMC_BYTES_SIZE:
            object.__setattr__(self, "data", bytes(self.data).ljust(SMC_BYTES_SIZE, b"\x00"))

    @property
    def is_empty(self) -> bool:
        """True when the controller returned no usable data"""
        return self.data_size == 0

    @property
    def payload(self) -> bytes:
        """The meaningful bytes only"""
        return self.data[:self.data_size]


def decode_flt(data: bytes) -> float:
    """Decode an "flt " payload.

    Args:
        data: Buffer holding at least 4 bytes

    Returns:
        float: The first 4 bytes read as a native-order IEEE-754 float

    Examples:
        >>> decode_flt(struct.pack("=f", 1800.0))
        1800.0
    """
    return struct.unpack("=f", bytes(data[:4]))[0]


def decode_fpe2(data: bytes, size: int) -> float:
    """Decode an "fpe2" payload.

    Every byte but the last is shifted into place six bits per position,
    most significant byte first. The last byte contributes its top six bits
    as the integer part and its low two bits as quarters.

    Args:
        data: Raw payload
        size: Number of meaningful bytes

    Returns:
        float: Decoded value

    Examples:
        >>> decode_fpe2(bytes([0x1c, 0x20]), 2)
        1800.0
        >>> decode_fpe2(bytes([0x1c, 0x21]), 2)
        1800.25
    """
    if size <= 0:
        return 0.0
    total = 0.0
    for i in range(size):
        if i == size - 1:
            total += data[i] >> 2
        else:
            total += data[i] << (size - 1 - i) * (8 - 2)
    total += (data[size - 1] & 0x03) * 0.25
    return total


def decode_sp78(data: bytes) -> float:
    """Decode an "sp78" payload.

    Args:
        data: Buffer holding at least 2 bytes

    Returns:
        float: Signed integer part from byte 0 plus byte 1 / 256

    Examples:
        >>> decode_sp78(bytes([0x20, 0x80]))
        32.5
    """
    return int.from_bytes(bytes(data[:2]), "big", signed=True) / 256.0


def decode_uint(data: bytes, size: int, base: int = 16) -> int:
    """Decode an unsigned integer of up to 4 bytes.

    Args:
        data: Raw payload
        size: Number of meaningful bytes (at most 4 are used)
        base: 16 packs the bytes big-endian (binary integers and keys);
            10 reads an ASCII digit string as a decimal number and
            otherwise keeps the controller's byte-wise rule, where each
            byte is shifted into place and truncated to 8 bits

    Returns:
        int: Decoded value

    Raises:
        ValueError: If base is not 10 or 16
    """
    raw = bytes(data[:min(size, 4)])
    if base == 16:
        return int.from_bytes(raw, "big")
    if base != 10:
        raise ValueError(f"Unsupported base: {base}")
    if raw and raw.isdigit():
        return int(raw.decode("ascii"))
    total = 0
    for i, byte in enumerate(raw):
        total += (byte << (len(raw) - 1 - i) * 8) & 0xFF
    return total


DECODERS: Dict[str, Callable[[TypedValue], float]] = {
    TYPE_FLT: lambda value: decode_flt(value.data),
    TYPE_FPE2: lambda value: decode_fpe2(value.data, value.data_size),
    TYPE_SP78: lambda value: decode_sp78(value.data),
}


def decode(value: TypedValue) -> Optional[float]:
    """Decode a typed value according to its type tag.

    Returns:
        float: Decoded physical value
        None: If the value is empty or its type tag is not recognised
    """
    if value.is_empty:
        logger.debug(f"No data for {value.key}")
        return None
    decoder = DECODERS.get(value.data_type)
    if decoder is None:
        logger.debug(f"Unsupported type {value.data_type!r} for {value.key}")
        return None
    return decoder(value)


def decode_rpm(value: TypedValue) -> Optional[float]:
    """Decode a fan speed register ("flt " or "fpe2") in RPM"""
    if value.data_type not in RPM_TYPES:
        return None
    return decode(value)


def decode_temperature(value: TypedValue) -> Optional[float]:
    """Decode a temperature register ("sp78") in °C"""
    if value.data_type not in TEMPERATURE_TYPES:
        return None
    return decode(value)
