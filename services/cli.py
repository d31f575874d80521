"""
Command line entry point for the census pipeline.

Usage examples:

    kafka-scale --kafka=localhost:9092 --years=2015 --months=jan,feb --chunks=10 read
    kafka-scale --kafka=localhost:9092 --from-file=dec20pub.dat.gz --years=2020 --partitions=10 read
    kafka-scale --kafka=localhost:9092 --stdout compute
    kafka-scale --kafka=localhost:9092 results
    kafka-scale --kafka=localhost:9092 topiclist
    kafka-scale --kafka=localhost:9092 --topic=compute offsets
    kafka-scale --kafka=localhost:9092 --topic=compute,results rmtopics
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional, Sequence, TextIO

import structlog

from shared.framework.config import OutputMode, ServiceConfig
from shared.framework.consumer import StageState
from shared.framework.log_client import LogClient
from shared.utils.errors import ConfigurationError, LogIOError
from shared.utils.logging import setup_logging

from services.compute.app.config import ComputeConfig
from services.compute.app.main import ComputeService
from services.reader.app.config import ReaderConfig, parse_batch_ceiling, parse_months, parse_years
from services.reader.app.main import run_reader
from services.results.app.config import ResultsConfig
from services.results.app.main import ResultsService


logger = structlog.get_logger(__name__)

READ = "read"
COMPUTE = "compute"
RESULTS = "results"
TOPICLIST = "topiclist"
OFFSETS = "offsets"
RMTOPICS = "rmtopics"

COMMANDS = (READ, COMPUTE, RESULTS, TOPICLIST, OFFSETS, RMTOPICS)
ADMIN_COMMANDS = (TOPICLIST, OFFSETS, RMTOPICS)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kafka-scale",
        description="Chunk census archives through Kafka and aggregate housing unit types",
    )
    parser.add_argument("command", nargs="*", help=f"One of: {', '.join(COMMANDS)}")
    parser.add_argument("--kafka", help="Kafka broker URLs. E.g. host1:9092,host2:9092")
    parser.add_argument("--years", help="Years. E.g. --years=2015,2016. Only used by 'read'")
    parser.add_argument("--months", help="Months. E.g. --months=jan,feb, or '*' for all. Only used by 'read'")
    parser.add_argument("--from-file", help="Census file to load instead of downloading from the census site")
    parser.add_argument("--chunks", type=int, help="Number of chunks to read. Omitted or negative means all")
    parser.add_argument("--write-to", choices=[m.value for m in OutputMode], help="Where 'read' and 'compute' write their output")
    parser.add_argument("--stdout", action="store_true", help="Write to stdout instead of Kafka. Overrides --write-to")
    parser.add_argument("--partitions", type=int, help="Partitions for topics this command creates")
    parser.add_argument("--replication-factor", type=int, help="Replication factor for topics this command creates")
    parser.add_argument("--topic", help="Topic for 'offsets', or a comma-separated list of topics for 'rmtopics'")
    parser.add_argument("--port", type=int, help="REST endpoint port for 'results'")
    parser.add_argument("--delay", type=int, help="Milliseconds to sleep after each chunk or message")
    parser.add_argument("--with-metrics", action="store_true", help="Enable Prometheus metrics exposition")
    parser.add_argument("--metrics-port", type=int, help="Port for the metrics endpoint of 'read'")
    parser.add_argument("--stop-at-end", action="store_true", help="Stop consuming at the end of the log")
    parser.add_argument("--verbose", action="store_true", help="Log debug diagnostics")
    parser.add_argument("--log-format", choices=["json", "console"], help="Log output format")
    parser.add_argument("--dry-run", action="store_true", help="Display how the command would run without running it")
    return parser


def resolve_output_mode(args: argparse.Namespace) -> OutputMode:
    if args.stdout:
        return OutputMode.STDOUT
    if args.write_to:
        return OutputMode(args.write_to)
    value = os.getenv("KAFKA_SCALE_WRITE_TO", OutputMode.KAFKA.value)
    try:
        return OutputMode(value)
    except ValueError:
        raise ConfigurationError(f"Invalid output: {value}", config_key="write_to", config_value=value) from None


def resolve_brokers(args: argparse.Namespace) -> Optional[str]:
    return args.kafka or os.getenv("KAFKA_SCALE_KAFKA_BOOTSTRAP") or None


def validate(args: argparse.Namespace) -> str:
    """Check the command line and return the command to run. Raises ConfigurationError."""
    if len(args.command) != 1 or args.command[0] not in COMMANDS:
        raise ConfigurationError(f"Invalid command: {args.command}", config_key="command", config_value=args.command)
    command = args.command[0]

    needs_kafka = command != READ or resolve_output_mode(args) == OutputMode.KAFKA
    if needs_kafka and not resolve_brokers(args):
        raise ConfigurationError("Need Kafka cluster broker URL(s)", config_key="kafka")

    if command == READ:
        if args.from_file and not args.years:
            raise ConfigurationError(
                "When reading from a file '--years' is required with one value - the year of the file",
                config_key="years",
            )
        if not args.from_file and not (args.years and args.months):
            raise ConfigurationError("Both '--years' and '--months' are required for 'read'", config_key="years")

    if command in (OFFSETS, RMTOPICS) and not args.topic:
        raise ConfigurationError(f"'--topic' is required for '{command}'", config_key="topic")

    if args.months:
        parse_months(args.months)
    if args.years:
        years = parse_years(args.years)
        if command == READ and args.from_file and len(years) != 1:
            raise ConfigurationError("Exactly one year is required when reading from a file", config_key="years")

    return command


def build_config(command: str, args: argparse.Namespace) -> ServiceConfig:
    """Command configuration: environment defaults overridden by the command line."""
    if command == READ:
        config = ReaderConfig()
        if args.years:
            config.years = parse_years(args.years)
        if args.months:
            config.months = parse_months(args.months)
        if args.from_file:
            config.from_file = args.from_file
        if args.chunks is not None:
            config.max_batches = parse_batch_ceiling(args.chunks)
    elif command == COMPUTE:
        config = ComputeConfig()
    elif command == RESULTS:
        config = ResultsConfig()
        if args.port is not None:
            config.port = args.port
    else:
        config = ServiceConfig(service_name=command)

    brokers = resolve_brokers(args)
    if brokers:
        config.kafka.bootstrap_servers = brokers
    if args.partitions is not None:
        config.kafka.partitions = args.partitions
    if args.replication_factor is not None:
        config.kafka.replication_factor = args.replication_factor

    config.output_mode = resolve_output_mode(args)
    if args.delay is not None:
        if args.delay < 0:
            raise ConfigurationError("delay must not be negative", config_key="delay", config_value=args.delay)
        config.delay_ms = args.delay
    if args.stop_at_end:
        config.stop_at_end = True

    observability = config.observability
    if args.verbose:
        observability.log_level = "debug"
    if args.log_format:
        observability.log_format = args.log_format
    if args.with_metrics:
        observability.metrics_enabled = True
    if args.metrics_port is not None:
        observability.metrics_port = args.metrics_port

    return config


def describe(command: str, config: ServiceConfig, args: argparse.Namespace) -> List[str]:
    """How the command line is interpreted, one line per setting."""
    lines = [f"Command: {command}"]
    if command == READ:
        lines.append(f"Years: {config.years}")
        lines.append(f"Months: {config.months}")
        lines.append(f"From file: {config.from_file or ''}")
        lines.append(f"Chunk count: {'all' if config.max_batches is None else config.max_batches}")
    if command in (READ, COMPUTE):
        if config.output_mode == OutputMode.KAFKA:
            lines.append(f"Kafka bootstrap URL: {config.kafka.bootstrap_servers}")
            lines.append(f"Partitions: {config.kafka.partitions}")
            lines.append(f"Replication Factor: {config.kafka.replication_factor}")
        elif config.output_mode == OutputMode.STDOUT:
            lines.append("Write to stdout rather than writing to Kafka")
        else:
            lines.append("Don't write to Kafka or stdout (silently discard the outputs)")
        lines.append(f"Delay ms: {config.delay_ms}")
    if command == RESULTS:
        lines.append(f"Kafka bootstrap URL: {config.kafka.bootstrap_servers}")
        lines.append(f"Results port: {config.port}")
    if command in (COMPUTE, RESULTS):
        lines.append(f"Stop at end of log: {config.stop_at_end}")
    if command in ADMIN_COMMANDS:
        lines.append(f"Topic: {args.topic or ''}")
    if command in (READ, COMPUTE, RESULTS):
        lines.append(f"With metrics exposition: {config.observability.metrics_enabled}")
    return lines


def run_admin(command: str, config: ServiceConfig, args: argparse.Namespace, log_client: LogClient, out: TextIO) -> int:
    admin = log_client.admin

    if command == TOPICLIST:
        for info in admin.list_topics():
            out.write(f"topic: {info.topic}, partition: {info.partition}, leader: {info.leader}\n")
        return EXIT_OK

    if command == OFFSETS:
        try:
            group_id = config.topics.group_for(args.topic)
        except ConfigurationError:
            group_id = None
        for offsets in admin.list_offsets(args.topic, group_id=group_id):
            committed = "none" if offsets.committed is None else offsets.committed
            out.write(
                f"topic: {args.topic}, partition: {offsets.partition}, first: {offsets.first}, "
                f"last: {offsets.last}, committed: {committed}\n"
            )
        return EXIT_OK

    topics = [t.strip() for t in args.topic.split(",") if t.strip()]
    failures = {topic: error for topic, error in admin.delete_topics(topics).items() if error}
    for topic, error in failures.items():
        out.write(f"error deleting topic {topic}: {error}\n")
    return EXIT_FAILED if failures else EXIT_OK


def run_command(
    command: str,
    config: ServiceConfig,
    args: argparse.Namespace,
    log_client: Optional[LogClient] = None,
    out: Optional[TextIO] = None,
) -> int:
    out = out or sys.stdout

    if command == READ:
        result = asyncio.run(run_reader(config, log_client=log_client))
        if result.aborted:
            logger.error("Error processing census data", batches=result.batches)
            return EXIT_FAILED
        logger.info("No errors were encountered processing census data", batches=result.batches)
        return EXIT_OK

    if command == COMPUTE:
        service = ComputeService(config, log_client=log_client)
        asyncio.run(service.run())
        return EXIT_FAILED if service.stage_state == StageState.TERMINATED_ERROR else EXIT_OK

    if command == RESULTS:
        asyncio.run(ResultsService(config, log_client=log_client).run())
        return EXIT_OK

    log_client = log_client or LogClient(config.kafka)
    try:
        return run_admin(command, config, args, log_client, out)
    except LogIOError as e:
        logger.error("Admin command failed", command=command, error=e.message, details=e.details)
        return EXIT_FAILED


def main(argv: Optional[Sequence[str]] = None, log_client: Optional[LogClient] = None, out: Optional[TextIO] = None) -> int:
    """Parse, validate and run one command. Returns the process exit status."""
    args = build_parser().parse_intermixed_args(argv)
    out = out or sys.stdout

    setup_logging(
        "kafka-scale",
        "debug" if args.verbose else os.getenv("KAFKA_SCALE_LOG_LEVEL", "info"),
        args.log_format or os.getenv("KAFKA_SCALE_LOG_FORMAT", "console"),
    )

    try:
        command = validate(args)
        config = build_config(command, args)
        if command == READ:
            config.validate()
    except ConfigurationError as e:
        logger.error("Invalid command line", error=e.message, details=e.details)
        return EXIT_USAGE
    except ValueError as e:
        logger.error("Invalid environment configuration", error=str(e))
        return EXIT_USAGE

    if args.dry_run:
        for line in describe(command, config, args):
            out.write(line + "\n")
        return EXIT_OK

    structlog.contextvars.bind_contextvars(service=config.service_name)
    return run_command(command, config, args, log_client=log_client, out=out)


if __name__ == "__main__":
    sys.exit(main())
