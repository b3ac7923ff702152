"""Agent Notifier server process: wiring, signals and entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass

from .config import Settings
from .errors import BindError, ValidationError
from .listener import ListenerManager, RequestListener
from .models.bindings import HttpBindings
from .payloads.validator import validate_bindings
from .registry.permission_registry import PermissionRegistry
from .sinks.base import NotificationSink
from .sinks.desktop import DesktopSink
from .sinks.logging_sink import LogSink
from .storage.settings_store import SettingsStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class Notifier:
    """All long-lived components of one notifier process."""

    settings: Settings
    registry: PermissionRegistry
    settings_store: SettingsStore
    listener: RequestListener
    manager: ListenerManager


def create_sink(settings: Settings) -> NotificationSink:
    """Build the configured notification sink."""
    if settings.sink == "log":
        return LogSink()
    return DesktopSink(
        play_sound=not settings.disable_sound,
        respond_hint="Respond: POST /agent/permissions/{request_id}/respond",
    )


def create_notifier(
    settings: Settings | None = None,
    sink: NotificationSink | None = None,
    override: HttpBindings | None = None,
) -> Notifier:
    """Wire registry, settings store, listener and listener manager together.

    Args:
        settings: Application settings (read from the environment if omitted)
        sink: Notification sink (built from settings if omitted)
        override: Bindings for this run that take precedence over the store file

    Returns:
        Notifier with every component connected; nothing is bound yet
    """
    settings = settings or Settings()
    registry = PermissionRegistry(retention_seconds=settings.resolved_retention_seconds)
    settings_store = SettingsStore(
        settings.get_settings_path(),
        defaults=settings.default_bindings(),
        override=override,
    )
    listener = RequestListener(
        registry=registry,
        sink=sink or create_sink(settings),
        settings_store=settings_store,
        settings=settings,
    )
    manager = ListenerManager(listener.asgi_app, settings)
    settings_store.subscribe(manager.rebind)
    return Notifier(
        settings=settings,
        registry=registry,
        settings_store=settings_store,
        listener=listener,
        manager=manager,
    )


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set stop_event on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            logger.debug(f"Registered signal handler for {sig.name}")
        except (NotImplementedError, ValueError, OSError) as e:
            # Windows or other platform issues
            logger.debug(f"Signal handler for {sig.name} not supported: {e}")


async def serve(notifier: Notifier) -> int:
    """Run the notifier until SIGINT/SIGTERM.

    Returns:
        Process exit code
    """
    bindings = notifier.settings_store.get_bindings()
    try:
        await notifier.manager.start(bindings)
    except BindError as e:
        logger.error(
            f"{e}. Another notifier may be running; pick a different port with "
            f"--port or AGENT_NOTIFIER_PORT."
        )
        return 1

    stop_event = asyncio.Event()
    _setup_signal_handlers(stop_event)
    await stop_event.wait()

    logger.info("Shutting down...")
    await notifier.manager.stop()
    await notifier.listener.flush_deliveries()
    notifier.registry.close()
    logger.info("Graceful shutdown complete")
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Loopback notification relay for local agents",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--bind-address", help="Address to bind for this run")
    parser.add_argument("--port", type=int, help="Port to bind for this run")
    parser.add_argument("--settings-file", help="Settings store JSON file")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the notifier server."""
    args = parse_args(argv)

    overrides = {}
    if args.settings_file:
        overrides["settings_path"] = args.settings_file
    if args.log_level:
        overrides["log_level"] = args.log_level
    settings = Settings(**overrides)

    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT, stream=sys.stderr)

    override = None
    if args.bind_address is not None or args.port is not None:
        result = validate_bindings({
            "bindAddress": settings.bind_address if args.bind_address is None else args.bind_address,
            "port": settings.port if args.port is None else args.port,
        })
        if isinstance(result, ValidationError):
            logger.error(f"Invalid bindings: {result}")
            sys.exit(2)
        override = result

    logger.info("Starting Agent Notifier...")
    logger.info(f"Settings: sink={settings.sink}, settings_path={settings.get_settings_path()}")

    notifier = create_notifier(settings, override=override)
    try:
        exit_code = asyncio.run(serve(notifier))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
