"""Command line entry point for the model migrator."""

import argparse
import asyncio
import os
import signal
import sys
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .constants import ENV_LOG_DIR
from .core.api_client import ProviderClient
from .core.config_loader import MigratorConfig, load_config
from .core.credentials import CredentialResolver
from .core.domain_context import DomainContextSwitcher, StaticTokenProvider
from .core.exceptions import (
    AuthResolutionError,
    ConfigurationError,
    ContextSwitchError,
    ModelMigratorError,
    NoCapableVersionError,
)
from .core.prober import CapabilityProber
from .core.settings import MigrationSettings
from .models.enums import ConflictPolicy
from .models.report import BatchProgress, BatchReport, ProbeReport
from .services.orchestrator import BatchOrchestrator
from .services.transfer import ConfirmCallback

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


def console_confirm(message: str) -> bool:
    """Ask the operator a yes/no question on the terminal."""
    print(f"\n{message}", file=sys.stderr)
    while True:
        try:
            answer = input("Delete and retry? [y/N]: ").strip().lower()
        except EOFError:
            return False
        if answer in ("y", "yes"):
            return True
        if answer in ("", "n", "no"):
            return False


def build_confirm(policy: ConflictPolicy) -> ConfirmCallback:
    """Conflict recovery callback for the chosen policy."""
    if policy == "yes":
        return lambda message: True
    if policy == "no":
        return lambda message: False
    return console_confirm


def print_progress(progress: BatchProgress) -> None:
    phase = progress.phase.value if progress.phase else "pending"
    percent = f" {progress.percent_completed}%" if progress.percent_completed is not None else ""
    print(
        f"\r[{progress.processed}/{progress.total}] {progress.model_id or ''}: {phase}{percent}"
        + " " * 10,
        end="",
        file=sys.stderr,
        flush=True,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="model-migrator",
        description="Copy custom document models between service instances, across tenants",
    )
    parser.add_argument("--config", default=None, help="Configuration file path")
    parser.add_argument("--source", help="Source instance id from the configuration")
    parser.add_argument("--destination", help="Destination instance id from the configuration")
    parser.add_argument(
        "-m",
        "--model",
        dest="models",
        action="append",
        help="Model id to migrate (repeatable; default: all custom models)",
    )
    policy = parser.add_mutually_exclusive_group()
    policy.add_argument(
        "--yes",
        dest="conflict_policy",
        action="store_const",
        const="yes",
        help="On a destination conflict, delete the existing model and retry without asking",
    )
    policy.add_argument(
        "--no",
        dest="conflict_policy",
        action="store_const",
        const="no",
        help="On a destination conflict, fail the model without asking",
    )
    parser.set_defaults(conflict_policy="ask")
    parser.add_argument(
        "--probe",
        metavar="INSTANCE",
        help="Only probe an instance's supported API versions and print the diagnostics",
    )
    parser.add_argument("--poll-interval", type=float, help="Seconds between status checks")
    parser.add_argument("--poll-timeout", type=float, help="Max seconds to wait per model copy")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: LOG_LEVEL env or config)",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    args = parser.parse_args(argv)

    if not args.validate_config and not args.probe and not (args.source and args.destination):
        parser.error("--source and --destination are required (or use --probe/--validate-config)")
    return args


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except (ConfigurationError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    log_dir = _setup_log_directory()
    logger = _setup_logging_system(args.log_level or config.log_level, log_dir)
    try:
        _apply_cli_overrides(config, args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    if args.validate_config:
        logger.info("Configuration validation successful", instances=sorted(config.instances))
        print(f"Configuration is valid ({len(config.instances)} instances)")
        return

    try:
        exit_code = asyncio.run(_run(config, args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except (ContextSwitchError, AuthResolutionError, NoCapableVersionError) as e:
        logger.error("Migration aborted", error=str(e), error_type=type(e).__name__)
        report = getattr(e, "report", None)
        if isinstance(report, ProbeReport):
            _print_lines(report.format_table())
        print(f"Aborted: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except ModelMigratorError as e:
        logger.error("Migration error", error=str(e), error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    sys.exit(exit_code)


async def _run(config: MigratorConfig, args: argparse.Namespace) -> int:
    cancel_event = asyncio.Event()
    _install_cancel_handler(cancel_event)

    async with ProviderClient(config.migration, management_url=config.management.url) as client:
        switcher = DomainContextSwitcher(
            client,
            StaticTokenProvider(config.tokens, config.default_token),
            verify_remote=config.management.verify_access,
        )
        resolver = CredentialResolver(client)
        prober = CapabilityProber(client)

        if args.probe:
            return await _probe_only(config, args.probe, switcher, resolver, prober)

        orchestrator = BatchOrchestrator(
            client,
            switcher,
            resolver,
            build_confirm(args.conflict_policy),
            settings=config.migration,
            prober=prober,
            on_progress=print_progress if sys.stderr.isatty() else None,
        )
        report = await orchestrator.migrate(
            config.get_instance(args.source),
            config.get_instance(args.destination),
            model_ids=args.models,
            cancel_event=cancel_event,
        )

    print(file=sys.stderr)
    _print_report(report)
    return EXIT_OK if report.all_completed else EXIT_PARTIAL


async def _probe_only(
    config: MigratorConfig,
    instance_id: str,
    switcher: DomainContextSwitcher,
    resolver: CredentialResolver,
    prober: CapabilityProber,
) -> int:
    instance = config.get_instance(instance_id)
    await switcher.verify_access([instance.context_key])
    context = await switcher.activate(instance.domain, instance.subaccount)
    credential = await resolver.resolve(instance, context)
    report = await prober.probe_best(instance, context, credential)
    _print_lines(report.format_table())
    print(f"Best supported API version: {report.best_version}")
    return EXIT_OK


def _print_report(report: BatchReport) -> None:
    _print_lines(report.summary_lines())


def _print_lines(lines: list[str]) -> None:
    for line in lines:
        print(line)


def _install_cancel_handler(cancel_event: asyncio.Event) -> None:
    """First Ctrl-C cancels the batch gracefully; a second one interrupts."""
    loop = asyncio.get_running_loop()

    def cancel() -> None:
        if cancel_event.is_set():
            loop.remove_signal_handler(signal.SIGINT)
            raise KeyboardInterrupt
        print(
            "\nCancelling: the current model stops before its next step, "
            "remaining models are skipped",
            file=sys.stderr,
        )
        cancel_event.set()

    try:
        loop.add_signal_handler(signal.SIGINT, cancel)
    except (NotImplementedError, RuntimeError):
        pass  # Windows event loops have no signal handler support


def _apply_cli_overrides(config: MigratorConfig, args: argparse.Namespace) -> None:
    updates = {}
    if args.poll_interval is not None:
        updates["poll_interval"] = args.poll_interval
    if args.poll_timeout is not None:
        updates["poll_timeout"] = args.poll_timeout
    if updates:
        try:
            config.migration = MigrationSettings(**{**config.migration.model_dump(), **updates})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid command line settings: {e}") from e


def _setup_log_directory() -> str | None:
    """Setup log directory with fallback options."""
    log_dir_candidates = [
        os.getenv(ENV_LOG_DIR),
        str(Path.home() / ".local" / "share" / "model-migrator" / "logs"),
        str(Path(tempfile.gettempdir()) / "model-migrator-logs"),
    ]

    for candidate in log_dir_candidates:
        if candidate:
            try:
                candidate_path = Path(candidate)
                candidate_path.mkdir(parents=True, exist_ok=True)
                if candidate_path.is_dir() and os.access(candidate_path, os.W_OK):
                    return str(candidate_path)
            except OSError:
                continue

    print("Warning: Unable to create log directory, using console-only logging", file=sys.stderr)
    return None


def _setup_logging_system(log_level: str, log_dir: str | None):
    """Setup logging system with error handling."""
    from .core.logging_config import get_migrator_logger, setup_basic_logging, setup_logging

    try:
        max_file_size_mb = int(os.getenv("LOG_FILE_SIZE_MB", "10"))
        if max_file_size_mb < 1 or max_file_size_mb > 100:
            max_file_size_mb = 10
    except ValueError:
        max_file_size_mb = 10

    try:
        setup_logging(log_dir=log_dir, log_level=log_level, max_file_size_mb=max_file_size_mb)
        return get_migrator_logger()
    except OSError as e:
        print(f"Logging setup failed ({e}), using basic console logging", file=sys.stderr)
        setup_basic_logging(log_level)
        return get_migrator_logger()


if __name__ == "__main__":
    main()
