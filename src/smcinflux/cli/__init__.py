"""
Command-line interface package for smc-influxdb

This package provides the one-shot command that prints SMC metrics.
"""

from .interface import main

__all__ = ['main']
