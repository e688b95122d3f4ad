"""
SMC Key Module

This module handles the four-character codes used by the System Management
Controller to name registers (keys) and their value encodings (type tags).
"""

from dataclasses import dataclass

KEY_LENGTH = 4


def pack_fourcc(code: str) -> int:
    """Pack a four-character code into a 32-bit big-endian integer.

    Args:
        code: Four ASCII characters (e.g., "TC0P")

    Returns:
        int: Integer with the first character in the most significant byte

    Examples:
        >>> hex(pack_fourcc("FNum"))
        '0x464e756d'
    """
    return int.from_bytes(code.encode("ascii"), "big")


def unpack_fourcc(value: int) -> str:
    """Unpack a 32-bit integer into its four-character code.

    Args:
        value: Packed code as returned by the controller

    Returns:
        str: Four characters, most significant byte first
    """
    return (value & 0xFFFFFFFF).to_bytes(KEY_LENGTH, "big").decode("latin-1")


@dataclass(frozen=True)
class SensorKey:
    """Immutable identifier of one SMC register.

    Attributes:
        name: Exactly four printable ASCII characters (e.g., "TC0P", "F0Ac")

    Raises:
        ValueError: If the name is not four printable ASCII characters
    """
    name: str

    def __post_init__(self):
        if not isinstance(self.name, str) or len(self.name) != KEY_LENGTH:
            raise ValueError(f"SMC key must be {KEY_LENGTH} characters: {self.name!r}")
        if not all(" " <= c <= "~" for c in self.name):
            raise ValueError(f"SMC key must be printable ASCII: {self.name!r}")

    def __str__(self) -> str:
        return self.name

    def to_int(self) -> int:
        """Wire form of the key"""
        return pack_fourcc(self.name)

    @classmethod
    def from_int(cls, value: int) -> "SensorKey":
        """Build a key from its wire form"""
        return cls(unpack_fourcc(value))


def fan_key(index: int, suffix: str) -> SensorKey:
    """Build the key of a per-fan register.

    Args:
        index: Fan index (0-9)
        suffix: Two-character register suffix ("ID", "Ac", "Mn", "Mx")

    Returns:
        SensorKey: e.g. fan_key(0, "Ac") -> SensorKey("F0Ac")

    Raises:
        ValueError: If the index and suffix do not form a valid key
    """
    if index < 0:
        raise ValueError(f"Fan index must not be negative: {index}")
    return SensorKey(f"F{index}{suffix}")
