"""Launcher: resolve the principal type from bundle metadata and run it.

Usage:
    background-service [--bundle bundle.yaml] [--log-level DEBUG] [--no-banner] [service args...]
    python -m background_service ...

The service is constructed with the full, unmodified process argument list.
"""

import argparse
import logging
import sys
from collections.abc import Callable
from typing import Any

from background_service.management.configuration import (
    determine_bundle_file,
    load_bundle_metadata,
    parse_log_level,
    principal_class_name,
)
from background_service.management.environment import load_dotenv_if_available
from background_service.management.lifecycle import BackgroundService
from background_service.management.service_registry import (
    FatalConfigurationError,
    ServiceRegistry,
    check_constructible,
)


EXIT_FAILURE = 1

_log = logging.getLogger("launch")


def resolve_principal_type(metadata: dict[str, Any], registry: ServiceRegistry | None = None) -> type:
    """Resolve and validate the principal type declared in bundle metadata.

    Raises:
        FatalConfigurationError: If the declaration is missing, unresolvable,
            or names a type that cannot be constructed
    """
    name = principal_class_name(metadata)
    registry = registry or ServiceRegistry(metadata)
    service_type = registry.get_service_class(name)
    check_constructible(service_type)
    _log.debug(f"Principal class '{name}' -> {service_type.__module__}.{service_type.__qualname__}")
    return service_type


def launch(
    service_type: type,
    arguments: list[str],
    *,
    driver: Any = None,
    exit: Callable[[int], Any] = sys.exit,
):
    """Validate ``service_type`` and run it under a new BackgroundService."""
    check_constructible(service_type)
    manager = BackgroundService(driver=driver, exit=exit)
    return manager.run(service_type, arguments)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a bundle-packaged background service.",
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument("--bundle", type=str, default=None,
                        help="Path to bundle metadata (defaults to $BACKGROUND_SERVICE_BUNDLE or ./bundle.yaml)")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (overrides bundle)")
    parser.add_argument("--no-banner", action="store_true", help="Suppress startup banner")
    return parser


def _print_banner(service_name: str, bundle_file: str | None, env_file) -> None:
    if env_file:
        _log.info(f"Loaded environment from {env_file}")
    _log.info("=" * 60)
    _log.info("Background Service")
    _log.info(f"Principal class: {service_name}")
    _log.info(f"Bundle: {bundle_file}" if bundle_file else "Bundle: none (class given directly)")
    _log.info("=" * 60)


def main(argv: list[str] | None = None, service_type: type | None = None):
    """Entry point for the background-service launcher.

    Args:
        argv: Full process argument list, program name first (defaults to sys.argv)
        service_type: Principal type to run directly, skipping bundle metadata
    """
    argv = list(sys.argv if argv is None else argv)
    args, _ = build_parser().parse_known_args(argv[1:])

    env_loaded, env_file_path = load_dotenv_if_available()

    logging.basicConfig(
        level=logging.INFO,
        format='[%(levelname)-5s] %(name)-12s: %(message)s'
    )

    try:
        if args.log_level:
            logging.getLogger().setLevel(parse_log_level(args.log_level))
        bundle_file = None
        if service_type is None:
            bundle_file = determine_bundle_file(args.bundle)
            metadata = load_bundle_metadata(bundle_file, overrides={"log_level": args.log_level})
            if metadata.get("log_level"):
                logging.getLogger().setLevel(parse_log_level(metadata["log_level"]))
            service_type = resolve_principal_type(metadata)
            service_name = principal_class_name(metadata)
        else:
            check_constructible(service_type)
            service_name = getattr(service_type, "_service_type", None) or service_type.__qualname__
    except FatalConfigurationError as e:
        _log.critical(f"Fatal configuration error: {e}")
        sys.exit(EXIT_FAILURE)

    if not args.no_banner:
        _print_banner(service_name, str(bundle_file) if bundle_file else None,
                      env_file_path if env_loaded else None)

    try:
        return launch(service_type, argv)
    except FatalConfigurationError as e:
        _log.critical(f"Fatal configuration error: {e}")
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
