"""Command line entry point: apply once, print monitors, snapshot, or run the daemon."""

from __future__ import annotations

import argparse
import logging
import sys

from .backend import BackendUnavailable
from .edid import MalformedEdid, parse_edid
from .models import ConnectedOutput, MonitorSpec, Setup
from .orchestrator import Orchestrator, identify
from .report import CollectingReporter, LogReporter
from .setup_manager import SetupManager
from .utils import config_dir, setups_dir

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [amc] %(levelname)s %(message)s"

EPILOG = """\
Setups are matched integrally: either the monitors plugged in are exactly the
monitors of one setup and that setup is applied, or no setup matches and every
monitor gets its preferred mode, placed left to right. Monitors are recognised
by their EDID, not by the port they are plugged into.

Setups are JSON files in <config-dir>/setups/. Run with --print-monitors to get
the identity of each connected monitor, or arrange your monitors and run
--save NAME to capture the current layout.
"""


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="amc",
        description="(Connector name independent) Auto Monitor Configurator for X11",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config-dir", help="config directory (default $XDG_CONFIG_HOME/amc)")
    parser.add_argument("--display", help="X display to use (default $DISPLAY)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-p", "--print-monitors", action="store_true",
                      help="print information on all connected monitors")
    mode.add_argument("-s", "--save", metavar="NAME",
                      help="save the current monitor layout as setup NAME")
    mode.add_argument("-d", "--daemon", action="store_true",
                      help="keep running and reconfigure on every hot-plug")
    parser.add_argument("-n", "--dry-run", action="store_true",
                        help="print the operations instead of applying them")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug messages")
    return parser


def _describe(output: ConnectedOutput) -> str:
    try:
        label = str(parse_edid(output.edid))
    except MalformedEdid as e:
        label = f"unusable EDID: {e}"
    lines = [f"  {output.connector} ({output.identity or '-'}) {label}"]
    if output.enabled:
        lines.append(
            f"    current: {output.mode} +{output.x}+{output.y} {output.rotation.label}"
            + (" primary" if output.primary else "")
        )
    else:
        lines.append("    current: disabled")
    modes = ", ".join(f"{m}{'*' if m.preferred else ''}" for m in output.modes)
    lines.append(f"    modes: {modes or '(none)'}")
    return "\n".join(lines)


def print_monitors(backend) -> int:
    outputs = backend.query_outputs()
    if not outputs:
        print("No connected monitors")
        return 0
    identified = {o.connector: o for o in identify(outputs, LogReporter())}
    print("Connected monitors:")
    for output in outputs:
        print(_describe(identified.get(output.connector, output)))
    return 0


def save_current(backend, manager: SetupManager, name: str) -> int:
    """Capture the enabled, identifiable outputs as a new setup."""
    connected = identify(backend.query_outputs(), LogReporter())
    setup = Setup(
        name=name,
        monitors=[MonitorSpec.from_output(o) for o in connected if o.enabled],
    )
    if not setup.monitors:
        log.error("No enabled monitor with a usable EDID, nothing saved")
        return 1
    path = manager.save(setup)
    print(f"Saved setup {name!r} with {len(setup.monitors)} monitor(s) to {path}")
    return 0


def apply_once(backend, manager: SetupManager, *, dry_run: bool = False) -> int:
    collected = CollectingReporter()
    log_reporter = LogReporter()

    def reporter(event) -> None:
        collected(event)
        log_reporter(event)

    orchestrator = Orchestrator(backend, manager.repository(), reporter, dry_run=dry_run)
    orchestrator.report_rejected_setups()
    cycle = orchestrator.run_cycle()
    if dry_run:
        for op in cycle.operations:
            print(f"xrandr {op.to_xrandr_args()}")
    return 1 if collected.failed else 0


def main(argv: list[str] | None = None) -> int:
    args = _parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    base = config_dir(args.config_dir)

    if args.daemon:
        from .daemon import run_daemon
        run_daemon(base, display_name=args.display)
        return 0

    from .x11 import X11Backend

    manager = SetupManager(setups_dir(base))
    try:
        with X11Backend(args.display) as backend:
            if args.print_monitors:
                return print_monitors(backend)
            if args.save:
                return save_current(backend, manager, args.save)
            return apply_once(backend, manager, dry_run=args.dry_run)
    except BackendUnavailable as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
