"""Background daemon that listens for monitor hotplug events and applies setups."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

import pyudev

from .backend import BackendUnavailable
from .orchestrator import Orchestrator
from .report import LogReporter, Reporter
from .setup_manager import SetupManager
from .utils import config_dir, load_app_settings, setups_dir
from .x11 import X11Backend

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [amcd] %(levelname)s %(message)s"


class MonitorDaemon:
    """Watches RandR and udev events and re-runs the orchestrator on each."""

    def __init__(
        self,
        config: Path | None = None,
        *,
        display_name: str | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self._config = config or config_dir()
        self._display_name = display_name
        self._reporter = reporter if reporter is not None else LogReporter()
        self._settings = load_app_settings(self._config)
        self._setup_mgr = SetupManager(setups_dir(self._config))

    async def run(self) -> None:
        log.info("Starting amc daemon")
        retry_delay = float(self._settings.get("retry_delay", 5))
        while True:
            try:
                with X11Backend(self._display_name) as backend:
                    log.info("Connected to X server")
                    await self._listen(backend)
            except (BackendUnavailable, ConnectionError) as e:
                log.warning("Cannot talk to X server: %s. Retrying in %gs...", e, retry_delay)
            except Exception as e:
                log.error("Unexpected error: %s. Retrying in %gs...", e, retry_delay)
            await asyncio.sleep(retry_delay)

    async def _listen(self, backend: X11Backend) -> None:
        repository = self._setup_mgr.repository()
        log.info("Loaded %d setup(s): %s", len(repository), ", ".join(repository.names) or "(none)")

        orchestrator = Orchestrator(
            backend, repository, self._reporter,
            debounce_ms=int(self._settings.get("debounce_ms", 500)),
        )
        orchestrator.report_rejected_setups()

        critical = [
            asyncio.create_task(orchestrator.serve(), name="reconcile"),
            asyncio.create_task(self._listen_randr(backend, orchestrator), name="randr"),
        ]
        tasks = list(critical)
        if self._settings.get("use_udev", True):
            tasks.append(asyncio.create_task(self._listen_udev(orchestrator), name="udev"))
        poll_interval = float(self._settings.get("poll_interval", 0))
        if poll_interval > 0:
            tasks.append(asyncio.create_task(self._poll(orchestrator, poll_interval), name="poll"))

        try:
            done, _ = await asyncio.wait(critical, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()  # re-raise whatever ended the listener
            raise BackendUnavailable("event source stopped")
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _listen_randr(self, backend: X11Backend, orchestrator: Orchestrator) -> None:
        log.info("Listening for RandR output events")
        async for event in backend.subscribe_hotplug():
            orchestrator.notify_hotplug(event)

    async def _listen_udev(self, orchestrator: Orchestrator) -> None:
        """Listen for udev DRM events; some drivers skip RandR notifications."""
        try:
            context = pyudev.Context()
            monitor = pyudev.Monitor.from_netlink(context)
            monitor.filter_by(subsystem="drm")
            monitor.start()
        except OSError as e:
            log.warning("udev not available, DRM event monitoring disabled: %s", e)
            return

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_readable():
            device = monitor.poll(timeout=0)
            if device and device.action in ("change", "add", "remove"):
                queue.put_nowait(device)

        loop.add_reader(monitor.fileno(), on_readable)
        log.info("Listening for udev DRM events")
        try:
            while True:
                device = await queue.get()
                orchestrator.notify_hotplug(f"udev {device.action} {device.device_path}")
        finally:
            loop.remove_reader(monitor.fileno())

    async def _poll(self, orchestrator: Orchestrator, interval: float) -> None:
        log.info("Polling outputs every %gs", interval)
        while True:
            await asyncio.sleep(interval)
            orchestrator.notify_hotplug()


def run_daemon(
    config: Path | None = None,
    *,
    display_name: str | None = None,
) -> None:
    """Run the daemon until SIGTERM or SIGINT."""
    daemon = MonitorDaemon(config, display_name=display_name)
    try:
        asyncio.run(_serve_until_signal(daemon))
    except KeyboardInterrupt:
        pass
    finally:
        log.info("Daemon stopped")


async def _serve_until_signal(daemon: MonitorDaemon) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    # Handle signals for clean shutdown
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    runner = asyncio.create_task(daemon.run())
    await stop.wait()
    runner.cancel()
    await asyncio.gather(runner, return_exceptions=True)


def main() -> None:
    parser = argparse.ArgumentParser(prog="amcd", description="Auto Monitor Configurator daemon")
    parser.add_argument("-c", "--config-dir", help="config directory (default $XDG_CONFIG_HOME/amc)")
    parser.add_argument("--display", help="X display to use (default $DISPLAY)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug messages")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)
    run_daemon(config_dir(args.config_dir), display_name=args.display)
