"""
SMC Communication Package for smc-influxdb

This package provides the interface to the Apple System Management Controller,
reading its typed key/value registers and decoding them into physical values.

Key Components:
- SMCConnection: Session with the AppleSMC IOKit service and two-call key reads
- SensorKey: Validated four-character register identifier
- decode / decode_rpm / decode_temperature: Pure payload decoders

Supported encodings:
- "flt ": IEEE float (fan RPM)
- "fpe2": Fixed point with 2 fractional bits (legacy fan RPM)
- "sp78": Signed 8.8 fixed point (temperatures)

Example Usage:
    >>> from smcinflux.smc import SMCConnection, SensorKey, decode_temperature
    >>>
    >>> with SMCConnection() as smc:
    ...     value = smc.read_key(SensorKey("TC0P"))
    ...     print(decode_temperature(value))
    36.0

Note:
    Reading the SMC requires macOS; on other systems opening the
    connection raises SMCServiceNotFoundError.
"""

from .keys import SensorKey, fan_key, pack_fourcc, unpack_fourcc
from .decoder import (
    TypedValue,
    decode,
    decode_flt,
    decode_fpe2,
    decode_rpm,
    decode_sp78,
    decode_temperature,
    decode_uint,
)
from .connection import (
    SMCConnection,
    SMCCommand,
    SMCError,
    SMCServiceNotFoundError,
    SMCConnectionError,
    SMCCallError,
    IOKitDriver,
)

__all__ = [
    'SensorKey',
    'fan_key',
    'pack_fourcc',
    'unpack_fourcc',
    'TypedValue',
    'decode',
    'decode_flt',
    'decode_fpe2',
    'decode_rpm',
    'decode_sp78',
    'decode_temperature',
    'decode_uint',
    'SMCConnection',
    'SMCCommand',
    'SMCError',
    'SMCServiceNotFoundError',
    'SMCConnectionError',
    'SMCCallError',
    'IOKitDriver',
]
