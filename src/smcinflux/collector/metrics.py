"""
Metric Collection Module

This module reads temperature and fan registers from the SMC, applies the
"is this sensor populated" policies and formats the results as InfluxDB
line protocol records.
"""

import logging
import math
import socket
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..smc import (
    SMCCallError,
    SMCConnection,
    SensorKey,
    decode_rpm,
    decode_temperature,
    decode_uint,
    fan_key,
)
from .registry import PRIMARY_SENSORS, REGISTRY

logger = logging.getLogger(__name__)

FAN_COUNT_KEY = SensorKey("FNum")


def short_hostname(hostname: Optional[str] = None) -> str:
    """Get the host name used for the host tag.

    The domain is stripped at the first "." and a lowercase first letter
    is capitalised.

    Args:
        hostname: Name to convert, the local host name by default

    Returns:
        str: e.g. "mylaptop.local" -> "Mylaptop", or "NULL" if the local
            host name cannot be read

    Examples:
        >>> short_hostname("mylaptop.local")
        'Mylaptop'
    """
    if hostname is None:
        try:
            hostname = socket.gethostname()
        except OSError as e:
            logger.warning(f"Failed to get hostname: {e}")
            hostname = "NULL"
    name = hostname.split(".", 1)[0]
    if name and "a" <= name[0] <= "z":
        name = name[0].upper() + name[1:]
    return name


@dataclass(frozen=True)
class RunContext:
    """Values shared by every line of one run.

    Attributes:
        timestamp_ns: Epoch time in nanoseconds, captured once per run
        host: Host tag value, or None for no host tag
    """
    timestamp_ns: int
    host: Optional[str] = None

    @classmethod
    def capture(cls, tag_host: bool = False) -> "RunContext":
        """Capture the run timestamp and, if requested, the host name"""
        return cls(
            timestamp_ns=time.time_ns(),
            host=short_hostname() if tag_host else None
        )


@dataclass(frozen=True)
class MetricLine:
    """One line protocol record.

    Attributes:
        measurement: Measurement name ("temperature" or "fan")
        tags: Ordered (name, value) tag pairs
        fields: Ordered (name, formatted value) field pairs
        timestamp_ns: Epoch time in nanoseconds
    """
    measurement: str
    tags: Tuple[Tuple[str, str], ...]
    fields: Tuple[Tuple[str, str], ...]
    timestamp_ns: int

    def render(self) -> str:
        """Format the record, e.g.
        "temperature,key=TC0P,sensor=CPU temp=00036.00 1700000000000000000"
        """
        tags = ",".join(f"{name}={value}" for name, value in self.tags)
        fields = ",".join(f"{name}={value}" for name, value in self.fields)
        return f"{self.measurement},{tags} {fields} {self.timestamp_ns}"

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class FanReading:
    """Speeds of one fan in RPM.

    Attributes:
        index: Fan index on the controller
        count: Number of fans reported by the controller
        current: Current speed
        minimum: Minimum speed
        maximum: Maximum speed
        percent_ceiling: Upper clamp for percent, None for no clamp
    """
    index: int
    count: int
    current: float
    minimum: float
    maximum: float
    percent_ceiling: Optional[float] = None

    @property
    def percent(self) -> float:
        """Load between minimum and maximum speed, in percent.

        Never below 0. Values above 100 are kept unless a ceiling is set.
        """
        span = self.maximum - self.minimum
        if span == 0:
            return 0.0
        pct = (self.current - self.minimum) / span * 100.0
        if self.percent_ceiling is not None:
            pct = min(pct, self.percent_ceiling)
        return max(0.0, pct)

    @property
    def label(self) -> str:
        """Display name by position: Main/Left, Right, then Other"""
        if self.index == 0:
            return "Main" if self.count == 1 else "Left"
        if self.index == 1:
            return "Right"
        return "Other"

    @property
    def key(self) -> SensorKey:
        return fan_key(self.index, "Ac")


@dataclass
class SensorSelection:
    """Which metrics to collect"""
    cpu: bool = False
    gpu: bool = False
    wifi: bool = False
    ssd: bool = False
    fans: bool = False
    all: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.cpu or self.gpu or self.wifi or self.ssd or self.fans or self.all)

    @classmethod
    def default(cls) -> "SensorSelection":
        return cls(cpu=True, gpu=True, wifi=True, ssd=True, fans=True)


class MetricCollector:
    """Reads SMC sensors and builds line protocol records"""

    def __init__(self, connection: SMCConnection, context: RunContext,
                 percent_ceiling: Optional[float] = None,
                 extra_sensors: Sequence[Tuple[str, str]] = ()):
        """Initialize collector

        Args:
            connection: Open SMC connection
            context: Timestamp and host tag shared by all lines
            percent_ceiling: Upper clamp for fan percent, None for no clamp
            extra_sensors: (key, label) pairs appended to the full registry
        """
        self.connection = connection
        self.context = context
        self.percent_ceiling = percent_ceiling
        self.extra_sensors = tuple(extra_sensors)

    def _tags(self, *tags: Tuple[str, str]) -> Tuple[Tuple[str, str], ...]:
        if self.context.host is not None:
            return (("host", self.context.host),) + tags
        return tags

    def _read(self, key: SensorKey):
        try:
            return self.connection.read_key(key)
        except SMCCallError as e:
            logger.debug(f"Skipping {key}: {e}")
            return None

    def read_temperature(self, key: SensorKey) -> Optional[float]:
        """Read a temperature in °C, or None if it cannot be read or decoded"""
        value = self._read(key)
        if value is None:
            return None
        return decode_temperature(value)

    def read_rpm(self, key: SensorKey) -> Optional[float]:
        """Read a fan speed in RPM, or None if it cannot be read or decoded"""
        value = self._read(key)
        if value is None:
            return None
        return decode_rpm(value)

    def temperature_line(self, key: str, label: str) -> Optional[MetricLine]:
        """Build the line for one temperature sensor.

        Returns:
            MetricLine: If the sensor reads above 0 °C
            None: If the sensor is absent, unreadable or reads 0 °C or less,
                which means it is not populated on this machine
        """
        sensor_key = SensorKey(key)
        temperature = self.read_temperature(sensor_key)
        if temperature is None or temperature <= 0.0:
            logger.debug(f"No temperature for {key} ({label})")
            return None
        return MetricLine(
            measurement="temperature",
            tags=self._tags(("key", key), ("sensor", label)),
            fields=(("temp", f"{temperature:08.2f}"),),
            timestamp_ns=self.context.timestamp_ns
        )

    def temperature_lines(self, sensors: Iterable[Tuple[str, str]]) -> List[MetricLine]:
        lines = []
        for key, label in sensors:
            line = self.temperature_line(key, label)
            if line is not None:
                lines.append(line)
        return lines

    def fan_count(self) -> int:
        """Number of fans reported by the controller, 0 if unreadable"""
        value = self._read(FAN_COUNT_KEY)
        if value is None:
            return 0
        return decode_uint(value.data, value.data_size, base=10)

    def read_fan(self, index: int, count: int) -> Optional[FanReading]:
        """Read the speeds of one fan.

        Returns:
            FanReading: If the fan exists and all three speeds decode
            None: Otherwise
        """
        if self._read(fan_key(index, "ID")) is None:
            return None

        speeds = []
        for suffix in ("Ac", "Mn", "Mx"):
            rpm = self.read_rpm(fan_key(index, suffix))
            if rpm is None or math.isnan(rpm) or rpm < 0.0:
                logger.debug(f"Skipping fan {index}: no F{index}{suffix} reading")
                return None
            speeds.append(rpm)

        current, minimum, maximum = speeds
        return FanReading(
            index=index,
            count=count,
            current=current,
            minimum=minimum,
            maximum=maximum,
            percent_ceiling=self.percent_ceiling
        )

    def fan_line(self, fan: FanReading) -> Optional[MetricLine]:
        """Build the line for one fan, None if it is not spinning"""
        if fan.current <= 0.0:
            return None
        return MetricLine(
            measurement="fan",
            tags=self._tags(("key", str(fan.key)), ("sensor", fan.label)),
            fields=(("rpm", f"{fan.current:08.2f}"), ("percent", f"{fan.percent:06.2f}")),
            timestamp_ns=self.context.timestamp_ns
        )

    def fan_lines(self) -> List[MetricLine]:
        count = self.fan_count()
        logger.debug(f"Controller reports {count} fans")
        lines = []
        for index in range(count):
            try:
                fan = self.read_fan(index, count)
            except ValueError as e:
                logger.warning(f"Stopping fan scan at index {index}: {e}")
                break
            if fan is None:
                continue
            line = self.fan_line(fan)
            if line is not None:
                lines.append(line)
        return lines

    def collect(self, selection: SensorSelection) -> List[MetricLine]:
        """Collect every selected metric.

        Args:
            selection: Metrics to collect; selection.all reads the whole
                registry and the fans

        Returns:
            List[MetricLine]: Lines in output order
        """
        if selection.all:
            return self.temperature_lines(REGISTRY + self.extra_sensors) + self.fan_lines()

        sensors = [
            PRIMARY_SENSORS[name]
            for name in ("cpu", "gpu", "ssd", "wifi")
            if getattr(selection, name)
        ]
        lines = self.temperature_lines(sensors)
        if selection.fans:
            lines.extend(self.fan_lines())
        return lines
