"""
Collector package for smc-influxdb

This package turns SMC readings into line protocol records: the static
sensor registry, the fan load computation and the output formatting.
"""

from .metrics import (
    FanReading,
    MetricCollector,
    MetricLine,
    RunContext,
    SensorSelection,
    short_hostname,
)
from .registry import PRIMARY_SENSORS, REGISTRY

__all__ = [
    'FanReading',
    'MetricCollector',
    'MetricLine',
    'RunContext',
    'SensorSelection',
    'short_hostname',
    'PRIMARY_SENSORS',
    'REGISTRY',
]
