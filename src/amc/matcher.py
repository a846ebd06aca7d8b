"""Setup matching: decide which setup, if any, fits the connected outputs."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Sequence

from .models import ConnectedOutput, Matched, MatchResult, Mode, MonitorSpec, NO_MATCH, Setup

log = logging.getLogger(__name__)


class InvalidSetup(Exception):
    """Raised when a setup violates a structural invariant."""

    def __init__(self, setup_name: str, reason: str) -> None:
        super().__init__(f"Setup {setup_name!r}: {reason}")
        self.setup_name = setup_name
        self.reason = reason


class AmbiguousMatch(Exception):
    """Raised when more than one setup fits the connected outputs."""

    def __init__(self, setups: Sequence[Setup]) -> None:
        self.setups = list(setups)
        names = ", ".join(s.name for s in self.setups)
        super().__init__(f"Setups {names} all match the connected monitors")

    @property
    def setup_names(self) -> list[str]:
        return [s.name for s in self.setups]


class MatchedButUnsupported(Exception):
    """Raised when the single matching setup asks for a mode the output lacks."""

    def __init__(self, setup: Setup, spec: MonitorSpec, output: ConnectedOutput) -> None:
        self.setup = setup
        self.spec = spec
        self.output = output
        super().__init__(
            f"Setup {setup.name!r} matched but {output.connector} "
            f"does not support {spec}"
        )


def validate_setup(setup: Setup) -> None:
    """Check the invariants every setup must satisfy before matching."""
    if not setup.monitors:
        raise InvalidSetup(setup.name, "no monitors")

    counts = Counter(m.identity for m in setup.monitors)
    dupes = sorted(i for i, n in counts.items() if n > 1)
    if dupes:
        raise InvalidSetup(setup.name, f"duplicate identity {', '.join(dupes)}")

    if sum(1 for m in setup.monitors if m.primary) > 1:
        raise InvalidSetup(setup.name, "more than one primary monitor")

    for m in setup.monitors:
        if not m.identity:
            raise InvalidSetup(setup.name, "monitor without identity")
        if m.x < 0 or m.y < 0:
            raise InvalidSetup(setup.name, f"negative position for {m.identity}")
        if (m.width is None) != (m.height is None):
            raise InvalidSetup(setup.name, f"incomplete resolution for {m.identity}")
        if m.width is None and m.refresh_rate is not None:
            raise InvalidSetup(setup.name, f"refresh rate without resolution for {m.identity}")


def resolve_mode(spec: MonitorSpec, output: ConnectedOutput) -> Mode | None:
    """Pick the output mode a monitor spec asks for, or None if unsupported."""
    if spec.width is None or spec.height is None:
        return output.preferred_mode
    return output.find_mode(spec.width, spec.height, spec.refresh_rate)


def _bijection(setup: Setup, connected: Sequence[ConnectedOutput]) -> dict[str, ConnectedOutput] | None:
    """Map each spec identity to its output if the two sets are identical."""
    if len(setup.monitors) != len(connected):
        return None
    if Counter(o.identity for o in connected) != Counter(m.identity for m in setup.monitors):
        return None
    return {o.identity: o for o in connected}


def match(connected: Iterable[ConnectedOutput], setups: Sequence[Setup]) -> MatchResult:
    """Find the one setup whose monitors are exactly the connected outputs.

    Setups are expected to have passed :func:`validate_setup`. Raises
    :class:`AmbiguousMatch` when several setups fit and
    :class:`MatchedButUnsupported` when the fitting setup requests a mode an
    output does not advertise.
    """
    connected = list(connected)
    if not connected:
        return NO_MATCH

    hits: list[tuple[Setup, dict[str, ConnectedOutput]]] = []
    for setup in setups:
        mapping = _bijection(setup, connected)
        if mapping is not None:
            hits.append((setup, mapping))

    if len(hits) > 1:
        raise AmbiguousMatch([s for s, _ in hits])
    if not hits:
        log.debug("No setup matches %s", sorted(o.identity for o in connected))
        return NO_MATCH

    setup, mapping = hits[0]
    for spec in setup.monitors:
        output = mapping[spec.identity]
        if resolve_mode(spec, output) is None:
            raise MatchedButUnsupported(setup, spec, output)
    return Matched(setup=setup, outputs=mapping)
