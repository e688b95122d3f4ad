"""
Command Line Interface Module

This module provides the command-line interface that reads the SMC once
and prints temperatures and fan speeds as InfluxDB line protocol.
"""

import argparse
import copy
import logging
import os
import sys
from typing import Any, Dict, List, Optional, Tuple, Union
import yaml

from ..collector import MetricCollector, RunContext, SensorSelection
from ..smc import SMCConnection, SMCError, SensorKey

logger = logging.getLogger(__name__)

LOGGER_NAMES = ['smcinflux.smc.connection', 'smcinflux.smc.decoder', 'smcinflux.collector.metrics',
                'smcinflux.cli.interface']

DEFAULT_CONFIG_PATH = "/etc/smc-influxdb/config.yaml"

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "output": {
        "host_tag": False,
    },
    "fans": {
        "percent_ceiling": None,
    },
    "sensors": {
        "extra": {},
    },
    "logging": {
        "level": "WARNING",
    },
}


class ConfigError(ValueError):
    """Raised when the configuration file cannot be used"""
    pass


class CLI:
    """Command-line interface handler"""

    def __init__(self, connection_factory=SMCConnection):
        """Initialize CLI handler

        Args:
            connection_factory: Callable returning an unopened SMCConnection
        """
        self.parser = self._create_parser()
        self.connection_factory = connection_factory

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            prog="smc-influxdb",
            usage="%(prog)s [-aAcfghwsn]",
            description="Print SMC temperatures and fan speeds as InfluxDB line protocol",
            add_help=False
        )

        parser.add_argument("-c", dest="cpu", action="store_true", help="CPU temperature")
        parser.add_argument("-g", dest="gpu", action="store_true", help="GPU temperature")
        parser.add_argument("-w", dest="wifi", action="store_true", help="WiFi temperature")
        parser.add_argument("-s", dest="ssd", action="store_true", help="SSD temperature")
        parser.add_argument("-f", dest="fans", action="store_true", help="fan speeds")
        parser.add_argument("-a", dest="basic", action="store_true",
                            help="CPU, GPU and fans - same as -cgf")
        parser.add_argument("-A", dest="all", action="store_true",
                            help="all temperature and fan metrics")
        parser.add_argument("-n", dest="hostname", action="store_true", help="tag with hostname")
        parser.add_argument("-h", "-?", dest="help", action="store_true", help="this info")

        parser.add_argument(
            "--config",
            metavar="PATH",
            help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})"
        )

        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging on stderr"
        )

        return parser

    def _load_config(self, config_path: Optional[str]) -> Dict[str, Dict[str, Any]]:
        """Load configuration over the defaults

        Args:
            config_path: Explicit configuration file, or None for the default
                location, which may be absent

        Returns:
            Merged configuration

        Raises:
            ConfigError: If the file is missing (explicit path only),
                unreadable or has an unexpected shape
        """
        config = copy.deepcopy(DEFAULT_CONFIG)
        path = config_path or DEFAULT_CONFIG_PATH

        if not os.path.exists(path):
            if config_path:
                raise ConfigError(f"Configuration file not found: {config_path}")
            logger.debug(f"No configuration at {path}, using defaults")
            return config

        try:
            with open(path) as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read configuration {path}: {e}")

        if not isinstance(loaded, dict):
            raise ConfigError(f"Configuration {path} must be a mapping")

        for section, values in loaded.items():
            if section not in config:
                raise ConfigError(f"Unknown configuration section: {section}")
            if not isinstance(values, dict):
                raise ConfigError(f"Configuration section {section} must be a mapping")
            config[section].update(values)

        ceiling = config["fans"]["percent_ceiling"]
        if ceiling is not None and (isinstance(ceiling, bool) or not isinstance(ceiling, (int, float))):
            raise ConfigError(f"fans.percent_ceiling must be a number or null: {ceiling!r}")
        if ceiling is not None and ceiling < 0:
            raise ConfigError(f"fans.percent_ceiling must not be negative: {ceiling!r}")

        if not isinstance(config["sensors"]["extra"], dict):
            raise ConfigError("sensors.extra must map keys to labels")

        logger.debug(f"Loaded configuration from {path}")
        return config

    def _extra_sensors(self, config: Dict[str, Dict[str, Any]]) -> List[Tuple[str, str]]:
        """Validated (key, label) pairs from sensors.extra"""
        sensors = []
        for key, label in config["sensors"]["extra"].items():
            try:
                sensors.append((SensorKey(str(key)).name, str(label)))
            except ValueError as e:
                raise ConfigError(f"Invalid sensor in sensors.extra: {e}")
        return sensors

    def _configure_logging(self, level: Union[str, int]) -> None:
        """Set the level of all smcinflux loggers, by name or number"""
        if isinstance(level, int) and not isinstance(level, bool):
            numeric = level
        else:
            numeric = logging.getLevelName(str(level).upper())
        if not isinstance(numeric, int) or numeric < 0:
            raise ConfigError(f"Invalid logging level: {level}")
        for name in LOGGER_NAMES:
            logging.getLogger(name).setLevel(numeric)

    def _selection(self, args: argparse.Namespace) -> SensorSelection:
        """Map flags to the metrics to collect, all five primaries by default"""
        selection = SensorSelection(
            cpu=args.cpu or args.basic,
            gpu=args.gpu or args.basic,
            wifi=args.wifi,
            ssd=args.ssd,
            fans=args.fans or args.basic,
            all=args.all
        )
        if selection.is_empty:
            return SensorSelection.default()
        return selection

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI interface

        Args:
            argv: Arguments without the program name, sys.argv[1:] by default

        Returns:
            Process exit status
        """
        args = self.parser.parse_args(argv)

        if args.help:
            print(self.parser.format_help(), end="")
            return 1

        try:
            config = self._load_config(args.config)
            self._configure_logging("DEBUG" if args.debug else config["logging"]["level"])
            extra_sensors = self._extra_sensors(config)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        selection = self._selection(args)
        context = RunContext.capture(tag_host=args.hostname or bool(config["output"]["host_tag"]))
        logger.debug(f"Collecting {selection} at {context.timestamp_ns}")

        try:
            with self.connection_factory() as smc:
                collector = MetricCollector(
                    smc,
                    context,
                    percent_ceiling=config["fans"]["percent_ceiling"],
                    extra_sensors=extra_sensors
                )
                lines = collector.collect(selection)
        except SMCError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        for line in lines:
            print(line.render())
        return 0


def main() -> None:
    """Main entry point"""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
