"""
SMC Connection Module

This module provides access to the Apple System Management Controller (SMC)
through the AppleSMC IOKit user client, and the two-call protocol used to
read a key: first the key info (size and type), then the key bytes.
"""

import ctypes
import ctypes.util
import logging
from enum import IntEnum
from typing import Optional, Tuple

from .decoder import SMC_BYTES_SIZE, TypedValue
from .keys import SensorKey, unpack_fourcc

logger = logging.getLogger(__name__)

KERN_SUCCESS = 0
KERNEL_INDEX_SMC = 2


class SMCCommand(IntEnum):
    """Sub-commands understood by the SMC user client"""
    READ_BYTES = 5
    WRITE_BYTES = 6
    READ_INDEX = 8
    READ_KEYINFO = 9
    READ_PLIMIT = 11
    READ_VERS = 12


class SMCVersion(ctypes.Structure):
    _fields_ = [
        ("major", ctypes.c_ubyte),
        ("minor", ctypes.c_ubyte),
        ("build", ctypes.c_ubyte),
        ("reserved", ctypes.c_ubyte * 1),
        ("release", ctypes.c_uint16),
    ]


class SMCPLimitData(ctypes.Structure):
    _fields_ = [
        ("version", ctypes.c_uint16),
        ("length", ctypes.c_uint16),
        ("cpuPLimit", ctypes.c_uint32),
        ("gpuPLimit", ctypes.c_uint32),
        ("memPLimit", ctypes.c_uint32),
    ]


class SMCKeyInfo(ctypes.Structure):
    _fields_ = [
        ("dataSize", ctypes.c_uint32),
        ("dataType", ctypes.c_uint32),
        ("dataAttributes", ctypes.c_ubyte),
    ]


class SMCKeyData(ctypes.Structure):
    """Request/response structure exchanged with the AppleSMC user client.

    The field layout mirrors the driver's C structure, so ctypes' native
    alignment produces the same 80 byte block the kernel expects.
    """
    _fields_ = [
        ("key", ctypes.c_uint32),
        ("vers", SMCVersion),
        ("pLimitData", SMCPLimitData),
        ("keyInfo", SMCKeyInfo),
        ("result", ctypes.c_ubyte),
        ("status", ctypes.c_ubyte),
        ("data8", ctypes.c_ubyte),
        ("data32", ctypes.c_uint32),
        ("bytes", ctypes.c_ubyte * SMC_BYTES_SIZE),
    ]


class SMCError(Exception):
    """Base exception for SMC-related errors"""
    pass


class SMCServiceNotFoundError(SMCError):
    """Raised when no AppleSMC service exists on this system"""
    pass


class SMCConnectionError(SMCError):
    """Raised when the SMC session cannot be opened"""
    pass


class SMCCallError(SMCError):
    """Raised when a single SMC call returns a non-success status"""

    def __init__(self, key: SensorKey, command: SMCCommand, code: int):
        self.key = key
        self.command = command
        self.code = code
        super().__init__(f"{command.name} for {key} failed: {code & 0xFFFFFFFF:08x}")


class IOKitDriver:
    """ctypes binding to the IOKit calls needed to talk to a user client.

    The frameworks are loaded on first use so that importing this module
    works on any platform.
    """

    def __init__(self):
        self._iokit = None
        self._task = None

    def _load(self):
        if self._iokit is not None:
            return self._iokit
        path = ctypes.util.find_library("IOKit")
        system = ctypes.util.find_library("System")
        if not path or not system:
            raise SMCServiceNotFoundError("IOKit is not available on this system")

        iokit = ctypes.CDLL(path)
        iokit.IOServiceMatching.argtypes = [ctypes.c_char_p]
        iokit.IOServiceMatching.restype = ctypes.c_void_p
        iokit.IOServiceGetMatchingServices.argtypes = [
            ctypes.c_uint32, ctypes.c_void_p, ctypes.POINTER(ctypes.c_uint32)
        ]
        iokit.IOServiceGetMatchingServices.restype = ctypes.c_int
        iokit.IOIteratorNext.argtypes = [ctypes.c_uint32]
        iokit.IOIteratorNext.restype = ctypes.c_uint32
        iokit.IOObjectRelease.argtypes = [ctypes.c_uint32]
        iokit.IOObjectRelease.restype = ctypes.c_int
        iokit.IOServiceOpen.argtypes = [
            ctypes.c_uint32, ctypes.c_uint32, ctypes.c_uint32, ctypes.POINTER(ctypes.c_uint32)
        ]
        iokit.IOServiceOpen.restype = ctypes.c_int
        iokit.IOServiceClose.argtypes = [ctypes.c_uint32]
        iokit.IOServiceClose.restype = ctypes.c_int
        iokit.IOConnectCallStructMethod.argtypes = [
            ctypes.c_uint32, ctypes.c_uint32,
            ctypes.c_void_p, ctypes.c_size_t,
            ctypes.c_void_p, ctypes.POINTER(ctypes.c_size_t)
        ]
        iokit.IOConnectCallStructMethod.restype = ctypes.c_int

        # mach_task_self() is a macro over this global
        self._task = ctypes.c_uint32.in_dll(ctypes.CDLL(system), "mach_task_self_").value
        self._iokit = iokit
        return iokit

    def find_service(self, name: str) -> int:
        """Return the first service matching name, or 0 if there is none.

        Raises:
            SMCConnectionError: If the service lookup itself fails
        """
        iokit = self._load()
        matching = iokit.IOServiceMatching(name.encode("ascii"))
        iterator = ctypes.c_uint32(0)
        # kIOMainPortDefault is MACH_PORT_NULL
        result = iokit.IOServiceGetMatchingServices(0, matching, ctypes.byref(iterator))
        if result != KERN_SUCCESS:
            raise SMCConnectionError(f"IOServiceGetMatchingServices() = {result & 0xFFFFFFFF:08x}")
        device = iokit.IOIteratorNext(iterator)
        iokit.IOObjectRelease(iterator)
        return device

    def open_service(self, device: int) -> Tuple[int, int]:
        """Open a user client session on device and release the device.

        Returns:
            Tuple[int, int]: (kern_return, connection handle)
        """
        iokit = self._load()
        conn = ctypes.c_uint32(0)
        result = iokit.IOServiceOpen(device, self._task, 0, ctypes.byref(conn))
        iokit.IOObjectRelease(device)
        return result, conn.value

    def call(self, conn: int, selector: int, request: SMCKeyData) -> Tuple[int, SMCKeyData]:
        """Issue one structure-in/structure-out call.

        Returns:
            Tuple[int, SMCKeyData]: (kern_return, response structure)
        """
        iokit = self._load()
        response = SMCKeyData()
        size = ctypes.c_size_t(ctypes.sizeof(SMCKeyData))
        result = iokit.IOConnectCallStructMethod(
            conn, selector,
            ctypes.byref(request), ctypes.sizeof(SMCKeyData),
            ctypes.byref(response), ctypes.byref(size)
        )
        return result, response

    def close_service(self, conn: int) -> int:
        return self._load().IOServiceClose(conn)


class SMCConnection:
    """Owns the session with the SMC and reads keys through it.

    Example:
        >>> with SMCConnection() as smc:
        ...     value = smc.read_key(SensorKey("TC0P"))
        ...     print(value.data_type, value.payload)
        sp78 b'$\\x00'
    """

    SERVICE_NAME = "AppleSMC"

    def __init__(self, driver: Optional[IOKitDriver] = None):
        """Initialize an unopened connection

        Args:
            driver: Object implementing the IOKit calls, IOKitDriver by default
        """
        self.driver = driver if driver is not None else IOKitDriver()
        self._conn: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> None:
        """Locate the SMC service and open a session on it.

        Raises:
            SMCServiceNotFoundError: If no AppleSMC service exists
            SMCConnectionError: If the lookup or the session open fails
        """
        if self.is_open:
            raise SMCConnectionError("SMC connection already open")

        device = self.driver.find_service(self.SERVICE_NAME)
        if not device:
            raise SMCServiceNotFoundError("no SMC found")

        result, conn = self.driver.open_service(device)
        if result != KERN_SUCCESS:
            raise SMCConnectionError(f"IOServiceOpen() = {result & 0xFFFFFFFF:08x}")

        self._conn = conn
        logger.debug(f"Opened {self.SERVICE_NAME} connection {conn}")

    def close(self) -> None:
        """Close the session. Does nothing if it is not open."""
        if not self.is_open:
            return
        conn, self._conn = self._conn, None
        result = self.driver.close_service(conn)
        if result != KERN_SUCCESS:
            logger.warning(f"IOServiceClose() = {result & 0xFFFFFFFF:08x}")
        else:
            logger.debug(f"Closed {self.SERVICE_NAME} connection {conn}")

    def __enter__(self) -> "SMCConnection":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _call(self, key: SensorKey, request: SMCKeyData) -> SMCKeyData:
        if not self.is_open:
            raise SMCConnectionError("SMC connection is not open")
        command = SMCCommand(request.data8)
        result, response = self.driver.call(self._conn, KERNEL_INDEX_SMC, request)
        if result != KERN_SUCCESS:
            raise SMCCallError(key, command, result)
        return response

    def read_key(self, key: SensorKey) -> TypedValue:
        """Read one key from the SMC.

        The controller reports a different payload size for each key, so the
        key info is requested first and its size is passed on to the byte read.

        Args:
            key: Key to read

        Returns:
            TypedValue: Size, type tag and raw bytes of the key

        Raises:
            SMCCallError: If either call fails; callers should treat the
                sensor as absent
            SMCConnectionError: If the connection is not open
        """
        request = SMCKeyData()
        request.key = key.to_int()
        request.data8 = int(SMCCommand.READ_KEYINFO)
        info = self._call(key, request)

        data_size = info.keyInfo.dataSize
        data_type = unpack_fourcc(info.keyInfo.dataType)

        request.keyInfo.dataSize = data_size
        request.data8 = int(SMCCommand.READ_BYTES)
        response = self._call(key, request)

        value = TypedValue(
            key=key,
            data_size=min(data_size, SMC_BYTES_SIZE),
            data_type=data_type,
            data=bytes(response.bytes)
        )
        logger.debug(f"Read {key}: size={value.data_size} type={data_type!r} bytes={value.payload.hex()}")
        return value
