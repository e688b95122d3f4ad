"""
Shared test fixtures: a simulated SMC driver and payload encoders
"""

import struct
from typing import Dict, Iterable, Tuple

import pytest

from smcinflux.smc.connection import KERN_SUCCESS, SMCCommand, SMCKeyData
from smcinflux.smc.keys import pack_fourcc, unpack_fourcc

# kIOReturnNotFound
KERN_NOT_FOUND = 0xE00002F0

TIMESTAMP = 1700000000123456789


def sp78(value: float) -> bytes:
    """Encode a temperature as sp78"""
    return int(round(value * 256)).to_bytes(2, "big", signed=True)


def flt(value: float) -> bytes:
    """Encode a speed as a native-order float"""
    return struct.pack("=f", value)


def fpe2(value: float) -> bytes:
    """Encode a speed as fpe2"""
    return int(value * 4).to_bytes(2, "big")


class FakeSMCDriver:
    """Stands in for IOKitDriver, answering from a key table.

    Attributes:
        keys: Key name -> (type tag, payload)
        calls: (key name, command, requested size) per call
    """

    def __init__(self, keys: Dict[str, Tuple[str, bytes]] = None, service: int = 7,
                 open_result: int = KERN_SUCCESS, failing: Iterable[str] = ()):
        self.keys = dict(keys or {})
        self.service = service
        self.open_result = open_result
        self.failing = set(failing)
        self.calls = []
        self.opened = 0
        self.closed = 0

    def find_service(self, name: str) -> int:
        self.service_name = name
        return self.service

    def open_service(self, device: int) -> Tuple[int, int]:
        self.opened += 1
        return self.open_result, 42

    def call(self, conn: int, selector: int, request: SMCKeyData) -> Tuple[int, SMCKeyData]:
        name = unpack_fourcc(request.key)
        command = SMCCommand(request.data8)
        self.calls.append((name, command, request.keyInfo.dataSize))

        response = SMCKeyData()
        if name not in self.keys or name in self.failing:
            return KERN_NOT_FOUND, response

        data_type, payload = self.keys[name]
        if command == SMCCommand.READ_KEYINFO:
            response.keyInfo.dataSize = len(payload)
            response.keyInfo.dataType = pack_fourcc(data_type)
        elif command == SMCCommand.READ_BYTES:
            for i, byte in enumerate(payload[:request.keyInfo.dataSize]):
                response.bytes[i] = byte
        return KERN_SUCCESS, response

    def close_service(self, conn: int) -> int:
        self.closed += 1
        return KERN_SUCCESS


# A two-fan laptop: CPU and GPU populated, SSD reads 0, no WiFi sensor,
# fan 1 stopped
MACHINE_KEYS = {
    "TC0P": ("sp78", bytes([0x24, 0x00])),
    "TG0P": ("sp78", sp78(41.5)),
    "TH0X": ("sp78", sp78(0.0)),
    "Tm0P": ("sp78", sp78(30.25)),
    "FNum": ("ui8 ", bytes([2])),
    "F0ID": ("{fds", b"\x00\x00\x00\x00Left"),
    "F0Ac": ("flt ", flt(2000.0)),
    "F0Mn": ("flt ", flt(1800.0)),
    "F0Mx": ("flt ", flt(2200.0)),
    "F1ID": ("{fds", b"\x00\x00\x00\x00Right"),
    "F1Ac": ("flt ", flt(0.0)),
    "F1Mn": ("flt ", flt(1800.0)),
    "F1Mx": ("flt ", flt(2200.0)),
}


@pytest.fixture
def machine_driver():
    """Simulated driver for the two-fan laptop"""
    return FakeSMCDriver(MACHINE_KEYS)
