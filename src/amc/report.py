"""Structured cycle outcome events and the logging sink that records them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Union

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Applied:
    setup_name: str
    changed: bool = True


@dataclass(frozen=True)
class AppliedDefault:
    changed: bool = True


@dataclass(frozen=True)
class NoMatch:
    identities: tuple[str, ...] = ()


@dataclass(frozen=True)
class AmbiguousMatch:
    setup_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchedButUnsupported:
    setup_name: str
    spec: str


@dataclass(frozen=True)
class BackendFailure:
    detail: str


@dataclass(frozen=True)
class OutputExcluded:
    connector: str
    reason: str


@dataclass(frozen=True)
class InvalidSetup:
    setup_name: str
    reason: str


ReportEvent = Union[
    Applied, AppliedDefault, NoMatch, AmbiguousMatch,
    MatchedButUnsupported, BackendFailure, OutputExcluded, InvalidSetup,
]

Reporter = Callable[[ReportEvent], None]


def is_failure(event: ReportEvent) -> bool:
    return isinstance(event, (AmbiguousMatch, MatchedButUnsupported, BackendFailure))


@dataclass
class LogReporter:
    """Write each event to the log at a level matching its severity."""
    logger: logging.Logger = field(default_factory=lambda: log)

    def __call__(self, event: ReportEvent) -> None:
        if isinstance(event, Applied):
            if event.changed:
                self.logger.info("Applied setup: %s", event.setup_name)
            else:
                self.logger.debug("Setup %s already active", event.setup_name)
        elif isinstance(event, AppliedDefault):
            if event.changed:
                self.logger.info("Applied default configuration")
            else:
                self.logger.debug("Default configuration already active")
        elif isinstance(event, NoMatch):
            self.logger.info("No matching setup for: %s", ", ".join(event.identities) or "(none)")
        elif isinstance(event, AmbiguousMatch):
            self.logger.error(
                "Ambiguous match, setups %s all fit; leaving displays unchanged",
                ", ".join(event.setup_names),
            )
        elif isinstance(event, MatchedButUnsupported):
            self.logger.error(
                "Setup %s matched but %s is not supported; leaving displays unchanged",
                event.setup_name, event.spec,
            )
        elif isinstance(event, BackendFailure):
            self.logger.error("Display backend failure: %s", event.detail)
        elif isinstance(event, OutputExcluded):
            self.logger.warning("Ignoring output %s: %s", event.connector, event.reason)
        elif isinstance(event, InvalidSetup):
            self.logger.error("Invalid setup %s: %s", event.setup_name, event.reason)
        else:
            self.logger.warning("Unknown report event: %r", event)


class CollectingReporter(list):
    """Keep every event in order; used by one-shot runs to pick an exit status."""

    def __call__(self, event: ReportEvent) -> None:
        self.append(event)

    @property
    def failed(self) -> bool:
        return any(is_failure(e) for e in self)
