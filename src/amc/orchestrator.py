"""Drive reconciliation cycles: query, identify, match, plan, submit, report."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from . import report
from .backend import Backend, BackendError, BackendUnavailable
from .applier import is_current, plan
from .edid import MalformedEdid, fingerprint
from .matcher import AmbiguousMatch, MatchedButUnsupported, match
from .models import ConfigOperation, ConnectedOutput, DEFAULT, Matched, MatchResult
from .setup_manager import SetupRepository

log = logging.getLogger(__name__)

DEBOUNCE_MS = 500


class State(Enum):
    IDLE = "idle"
    RECONCILING = "reconciling"


@dataclass
class CycleResult:
    """What one cycle decided and did."""
    result: MatchResult | None = None
    operations: list[ConfigOperation] = field(default_factory=list)
    outcome: report.ReportEvent | None = None
    submitted: bool = False


def identify(
    outputs: Sequence[ConnectedOutput],
    reporter: report.Reporter,
) -> list[ConnectedOutput]:
    """Fingerprint every output, dropping those whose EDID is unusable."""
    identified: list[ConnectedOutput] = []
    for output in outputs:
        try:
            identity = fingerprint(output.edid)
        except MalformedEdid as e:
            reporter(report.OutputExcluded(connector=output.connector, reason=str(e)))
            continue
        identified.append(dataclasses.replace(output, identity=identity))
    return identified


class Orchestrator:
    """Runs one reconciliation cycle at a time against a display backend.

    Hot-plug notifications arriving while a cycle runs collapse into a single
    pending re-run.
    """

    def __init__(
        self,
        backend: Backend,
        repository: SetupRepository,
        reporter: report.Reporter | None = None,
        *,
        debounce_ms: int = DEBOUNCE_MS,
        dry_run: bool = False,
    ) -> None:
        self._backend = backend
        self._repository = repository
        self._report = reporter if reporter is not None else report.LogReporter()
        self._debounce_ms = debounce_ms
        self._dry_run = dry_run
        self._state = State.IDLE
        self._pending: asyncio.Event | None = None
        self._rerun = False

    @property
    def state(self) -> State:
        return self._state

    @property
    def rerun_pending(self) -> bool:
        return self._rerun

    def report_rejected_setups(self) -> None:
        for err in self._repository.rejected:
            self._report(report.InvalidSetup(setup_name=err.setup_name, reason=err.reason))

    # ── Single cycle ────────────────────────────────────────────────

    def run_cycle(self) -> CycleResult:
        """Query the backend, pick a configuration and submit it.

        Every outcome, good or bad, is reported exactly once; nothing is
        raised for matching or backend failures.
        """
        self._state = State.RECONCILING
        try:
            return self._cycle()
        finally:
            self._state = State.IDLE

    def _cycle(self) -> CycleResult:
        cycle = CycleResult()
        try:
            outputs = self._backend.query_outputs()
            screen = self._backend.query_screen()
        except BackendUnavailable as e:
            return self._finish(cycle, report.BackendFailure(detail=str(e)))

        connected = identify(outputs, self._report)
        identified = {o.connector for o in connected}
        excluded = [o for o in outputs if o.connector not in identified]
        log.debug("Connected: %s", ", ".join(o.describe() for o in connected) or "(none)")

        try:
            cycle.result = match(connected, self._repository.setups)
        except AmbiguousMatch as e:
            return self._finish(cycle, report.AmbiguousMatch(setup_names=tuple(e.setup_names)))
        except MatchedButUnsupported as e:
            return self._finish(
                cycle,
                report.MatchedButUnsupported(setup_name=e.setup.name, spec=str(e.spec)),
            )

        if isinstance(cycle.result, Matched):
            target = cycle.result
        else:
            self._report(report.NoMatch(identities=tuple(o.identity for o in connected)))
            target = DEFAULT
            for output in connected:
                if output.preferred_mode is None:
                    self._report(report.OutputExcluded(
                        connector=output.connector, reason="no modes advertised",
                    ))
        cycle.operations = plan(target, connected, excluded)

        changed = not is_current(cycle.operations, outputs, screen)
        if changed and not self._dry_run:
            try:
                self._backend.submit(cycle.operations)
            except (BackendError, BackendUnavailable) as e:
                return self._finish(cycle, report.BackendFailure(detail=str(e)))
            cycle.submitted = True

        if isinstance(target, Matched):
            outcome = report.Applied(setup_name=target.setup.name, changed=changed)
        else:
            outcome = report.AppliedDefault(changed=changed)
        return self._finish(cycle, outcome)

    def _finish(self, cycle: CycleResult, outcome: report.ReportEvent) -> CycleResult:
        cycle.outcome = outcome
        self._report(outcome)
        return cycle

    # ── Event loop ──────────────────────────────────────────────────

    def notify_hotplug(self, event: object = None) -> None:
        """Request a cycle; repeated requests before it starts collapse into one."""
        if event is not None:
            log.debug("Hot-plug event: %s", event)
        if self._state is State.RECONCILING:
            self._rerun = True
        if self._pending is not None:
            self._pending.set()

    async def serve(self) -> None:
        """Run a cycle at startup and after every batch of notifications."""
        self._pending = asyncio.Event()
        self._pending.set()
        immediate = True
        while True:
            await self._pending.wait()
            if not immediate and self._debounce_ms:
                # Let a burst of hot-plug events settle before querying
                await asyncio.sleep(self._debounce_ms / 1000.0)
            self._pending.clear()
            self._rerun = False
            self.run_cycle()
            immediate = self._rerun
