#!/usr/bin/env python3
"""
floodzone

Flood a Route 53 private hosted zone with resource record sets, or drain it
again, in controlled batches. Useful for load testing DNS resolution and the
Route 53 control plane against zones with thousands of record sets.

Usage:
  python floodzone.py --vpc-id vpc-0123456789abcdef0 --region us-east-1
  python floodzone.py --hosted-zone-id Z0123456789ABC --total-records 5000
  python floodzone.py --hosted-zone-id Z0123456789ABC --delete --total-records 500

Dependencies:
  pip install boto3 dnspython tabulate pyyaml
"""

import argparse
import ipaddress
import json
import logging
import math
import re
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from batch_controller import BatchController
from zone_directory import (
    ROUTE53_LIMITS, RecordTemplate, RecordTemplateError, ZoneDirectory,
    ZoneDirectoryError, build_route53_client,
)

DEFAULTS = {
    'max_batch_size': 100,
    'total_records': 1000,
    'batch_delay': '10s',
    'record_ttl': 300,
    'record_value': '127.0.0.1',
}

_DURATION_UNITS = {'ms': 0.001, 's': 1, 'm': 60, 'h': 3600}
_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h)')


class ConfigurationError(ValueError):
    """Raised for invalid or missing settings, before any Route 53 call"""


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(verbose: bool = False, log_file: str = None) -> logging.Logger:
    """Configure the floodzone logger; it only reaches the console in verbose mode"""
    logger = logging.getLogger('floodzone')
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.handlers.clear()

    handlers = []
    if verbose:
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


class UserOutput:
    """Handle user-facing output separate from logging"""

    def __init__(self, verbose: bool = False, quiet: bool = False):
        self.verbose = verbose
        self.quiet = quiet

    def info(self, message: str):
        if not self.quiet:
            print(message)

    def success(self, message: str):
        if not self.quiet:
            print(f"✅ {message}")

    def warning(self, message: str):
        print(f"WARNING: {message}", file=sys.stderr)

    def error(self, message: str):
        print(f"ERROR: {message}", file=sys.stderr)

    def verbose_info(self, message: str):
        if self.verbose and not self.quiet:
            print(f"[VERBOSE] {message}")


@dataclass
class FloodOptions:
    """Resolved run settings"""
    max_batch_size: int
    total_records: int
    batch_delay: float
    hosted_zone_id: Optional[str] = None
    vpc_id: Optional[str] = None
    delete: bool = False
    endpoint: Optional[str] = None
    region: Optional[str] = None
    record_ttl: int = 300
    record_value: str = '127.0.0.1'
    verbose: bool = False


def parse_duration(value) -> float:
    """
    Parse a delay into seconds.

    Accepts plain numbers (seconds) and duration strings such as
    "500ms", "10s", "1m30s" or "1h".
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = str(value).strip()
        try:
            seconds = float(text)
        except ValueError:
            parts = _DURATION_PART.findall(text)
            if not parts or ''.join(n + u for n, u in parts) != text:
                raise ConfigurationError(f"Invalid duration: {value!r}")
            seconds = sum(float(n) * _DURATION_UNITS[u] for n, u in parts)
    if not math.isfinite(seconds):
        raise ConfigurationError(f"Duration must be finite: {value!r}")
    if seconds < 0:
        raise ConfigurationError(f"Duration must not be negative: {value!r}")
    return seconds


def load_config(config_file: str) -> Dict:
    """Load configuration from a JSON or YAML file"""
    path = Path(config_file)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() in ('.yml', '.yaml'):
                config = yaml.safe_load(f) or {}
            else:
                config = json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config file {config_file}: {e}") from e
    if not isinstance(config, dict):
        raise ConfigurationError(f"Config file {config_file} must contain a mapping")
    return config


def _as_int(name: str, value, low: int, high: int) -> int:
    # bool is an int subclass and floats would truncate; digit strings are fine
    if isinstance(value, (bool, float)):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    if not low <= number <= high:
        raise ConfigurationError(f"{name} must be between {low} and {high}, got {number}")
    return number


def _as_bool(name: str, value) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{name} must be true or false, got {value!r}")
    return value


def resolve_options(args: argparse.Namespace, config: Dict) -> FloodOptions:
    """Merge command line arguments over config values over defaults, then validate"""

    def pick(key: str):
        value = getattr(args, key, None)
        if value is not None:
            return value
        return config.get(key, DEFAULTS.get(key))

    options = FloodOptions(
        max_batch_size=_as_int('max_batch_size', pick('max_batch_size'),
                               1, ROUTE53_LIMITS['max_changes_per_batch']),
        total_records=_as_int('total_records', pick('total_records'),
                              0, ROUTE53_LIMITS['max_record_sets']),
        batch_delay=parse_duration(pick('batch_delay')),
        hosted_zone_id=pick('hosted_zone_id') or None,
        vpc_id=pick('vpc_id') or None,
        delete=args.delete or _as_bool('delete', config.get('delete', False)),
        endpoint=pick('endpoint') or None,
        region=pick('region') or None,
        record_ttl=_as_int('record_ttl', pick('record_ttl'), 0, ROUTE53_LIMITS['max_ttl']),
        record_value=str(pick('record_value')),
        verbose=args.verbose or _as_bool('verbose', config.get('verbose', False)),
    )

    try:
        ipaddress.IPv4Address(options.record_value)
    except ValueError:
        raise ConfigurationError(f"record_value must be an IPv4 address, got {options.record_value!r}")

    if not options.hosted_zone_id and not options.vpc_id:
        raise ConfigurationError("--vpc-id is required when --hosted-zone-id is not provided.")
    if not options.hosted_zone_id and options.delete:
        raise ConfigurationError("--delete requires --hosted-zone-id.")

    return options


def run(options: FloodOptions, directory: ZoneDirectory, region: Optional[str],
        user_output: UserOutput, logger: logging.Logger, output_format: str = "text") -> Dict:
    """Execute one flood or drain run and return a result summary"""
    result = {'created_zone': False, 'zone_deleted': False, 'remaining': None}

    zone_id = options.hosted_zone_id
    if not zone_id:
        if not region:
            raise ConfigurationError("A region is required to create a hosted zone; use --region.")
        zone_id = directory.create_zone(options.vpc_id, region)
        result['created_zone'] = True
        user_output.success(f"Successfully Created Hosted Zone \"{zone_id}\" to flood 🌊!")

    zone = directory.describe_zone(zone_id)
    result['zone'] = zone.to_dict()
    if output_format == "text":
        user_output.info(json.dumps(zone.to_dict(), indent=4))

    template = RecordTemplate(ttl=options.record_ttl, value=options.record_value)
    controller = BatchController(directory, options.max_batch_size, options.batch_delay,
                                 logger=logger.getChild("batch_controller"), template=template)

    if not options.delete:
        logger.info(f"Flooding {zone.zone_id} from {zone.record_set_count} to "
                    f"{options.total_records} record sets")
        result['record_set_count'] = controller.create_record_sets(
            zone, zone.record_set_count, options.total_records)
    else:
        logger.info(f"Draining up to {options.total_records} record sets from {zone.zone_id}")
        remaining = controller.delete_record_sets(zone, options.total_records)
        result['remaining'] = remaining
        if remaining == 0:
            directory.delete_zone(zone.zone_id)
            result['zone_deleted'] = True
            user_output.success(f"Successfully deleted the private hosted zone {zone.zone_id} "
                                f"since all record sets were deleted.")
        else:
            user_output.verbose_info(f"{remaining} record sets remain in {zone.zone_id}")

    result['batches'] = [
        {**asdict(b), 'action': b.action.value, 'submitted_at': b.submitted_at.isoformat()}
        for b in controller.history
    ]
    if output_format == "text":
        table = controller.summary_table()
        if table:
            user_output.info("\n" + table)
    return result


def build_directory(options: FloodOptions, logger: logging.Logger):
    """Build the Route 53 zone directory and return it with the resolved region"""
    try:
        client, region = build_route53_client(options.region, options.endpoint)
    except ValueError as e:
        raise ConfigurationError(f"Invalid --endpoint {options.endpoint!r}: {e}") from e
    return ZoneDirectory(client, logger.getChild('zone_directory')), region


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create or delete Route 53 private hosted zone record sets in controlled batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a new private hosted zone and flood it with 1000 record sets
  python floodzone.py --vpc-id vpc-0123456789abcdef0 --region us-east-1

  # Grow an existing zone to 5000 record sets, 500 per batch, 30s apart
  python floodzone.py --hosted-zone-id Z0123456789ABC --total-records 5000 \\
      --max-batch-size 500 --batch-delay-duration 30s

  # Delete 500 record sets (the zone is removed once it is empty)
  python floodzone.py --hosted-zone-id Z0123456789ABC --delete --total-records 500

Configuration file format (JSON or YAML):
{
    "max_batch_size": 100,
    "total_records": 1000,
    "batch_delay": "10s",
    "region": "us-east-1",
    "record_ttl": 300,
    "record_value": "127.0.0.1"
}
        """
    )

    parser.add_argument("--max-batch-size", type=int,
                        help="Max record set changes in one API call, max 1000 (default: 100)")
    parser.add_argument("--total-records", type=int,
                        help="Total record sets in the hosted zone, or record sets to delete "
                             "with --delete, max 10000 (default: 1000)")
    parser.add_argument("--hosted-zone-id", help="Hosted zone ID")
    parser.add_argument("--batch-delay-duration", dest="batch_delay",
                        help="Delay between batches, e.g. 500ms, 10s, 1m (default: 10s)")
    parser.add_argument("--vpc-id",
                        help="VPC ID to associate a new private hosted zone with")
    parser.add_argument("--delete", action="store_true", help="Delete record sets")
    parser.add_argument("--endpoint", help="Route 53 API endpoint to use")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("-c", "--config", help="Configuration file (JSON or YAML)")
    parser.add_argument("-f", "--format", choices=["text", "json"], default="text",
                        help="Output format (default: text)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--log-file", help="Save detailed logs to file")
    return parser


def main(argv: Optional[List[str]] = None):
    """Main function"""
    args = build_parser().parse_args(argv)
    user_output = UserOutput(args.verbose, quiet=args.format == "json")

    try:
        config = load_config(args.config) if args.config else {}
        options = resolve_options(args, config)
    except ConfigurationError as e:
        user_output.error(str(e))
        sys.exit(1)

    logger = setup_logging(options.verbose, args.log_file)
    user_output.verbose = options.verbose
    logger.info("floodzone started")

    try:
        directory, region = build_directory(options, logger)
        result = run(options, directory, region, user_output, logger, args.format)
    except (ConfigurationError, RecordTemplateError) as e:
        logger.error(str(e))
        user_output.error(str(e))
        sys.exit(1)
    except ZoneDirectoryError as e:
        logger.error(str(e))
        user_output.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        user_output.info("\nInterrupted, batches already submitted remain applied")
        sys.exit(1)

    if args.format == "json":
        print(json.dumps(result, indent=2, default=str))
    user_output.success("DONE")
    logger.info("floodzone completed")
    sys.exit(0)


if __name__ == "__main__":
    main()
