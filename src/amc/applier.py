"""Translate a match result into an ordered list of output operations."""

from __future__ import annotations

import logging
from typing import Sequence

from .matcher import resolve_mode
from .models import (
    ConfigOperation,
    ConfigureOutput,
    ConnectedOutput,
    DEFAULT,
    DisableOutput,
    Matched,
    Rotation,
    ScreenState,
)

log = logging.getLogger(__name__)


def _plan_disables(excluded: Sequence[ConnectedOutput]) -> list[ConfigOperation]:
    """Switch off outputs left out of matching that still drive a CRTC."""
    ops: list[ConfigOperation] = []
    for output in excluded:
        if output.enabled:
            log.debug("Output %s is excluded, disabling", output.connector)
            ops.append(DisableOutput(identity=output.identity, connector=output.connector))
    return ops


def _plan_setup(target: Matched, connected: Sequence[ConnectedOutput]) -> list[ConfigOperation]:
    setup = target.setup
    primary = setup.primary
    by_identity = {o.identity: o for o in connected}

    ops: list[ConfigOperation] = []
    for spec in setup.monitors:
        output = by_identity[spec.identity]
        mode = resolve_mode(spec, output)
        if mode is None:
            raise ValueError(f"{output.connector} cannot run {spec}")
        ops.append(ConfigureOutput(
            identity=output.identity,
            connector=output.connector,
            mode=mode,
            x=spec.x,
            y=spec.y,
            rotation=spec.rotation,
            primary=spec is primary,
        ))
    return ops


def _plan_default(connected: Sequence[ConnectedOutput]) -> list[ConfigOperation]:
    """Preferred mode for every output, left to right, first one primary."""
    ops: list[ConfigOperation] = []
    x = 0
    for output in connected:
        mode = output.preferred_mode
        if mode is None:
            # Reported by the caller; nothing to place
            continue
        ops.append(ConfigureOutput(
            identity=output.identity,
            connector=output.connector,
            mode=mode,
            x=x,
            y=0,
            rotation=Rotation.NORMAL,
            primary=not ops,
        ))
        x += mode.width
    return ops


def plan(
    target: Matched | object,
    connected: Sequence[ConnectedOutput],
    excluded: Sequence[ConnectedOutput] = (),
) -> list[ConfigOperation]:
    """Build the operations for *target*, either a :class:`Matched` or ``DEFAULT``.

    *excluded* are connected outputs that take no part in matching (no usable
    identity); any of them still lit is disabled. All disables come before
    any enable so the virtual screen never holds an invalid intermediate
    layout. No backend I/O happens here.
    """
    if isinstance(target, Matched):
        configures = _plan_setup(target, connected)
    elif target is DEFAULT:
        configures = _plan_default(connected)
    else:
        raise TypeError(f"Cannot plan for {target!r}")
    return _plan_disables(excluded) + configures


def framebuffer_size(operations: Sequence[ConfigOperation]) -> tuple[int, int]:
    """Bounding box of every configured output in the virtual screen."""
    width = height = 0
    for op in operations:
        if isinstance(op, ConfigureOutput):
            w, h = op.size
            width = max(width, op.x + w)
            height = max(height, op.y + h)
    return width, height


def is_current(
    operations: Sequence[ConfigOperation],
    outputs: Sequence[ConnectedOutput],
    screen: ScreenState | None = None,
) -> bool:
    """True if the display already matches every operation.

    With *screen*, the virtual screen must also have the size the operations
    need and no unplugged output may still hold a CRTC.
    """
    if screen is not None:
        if screen.dangling:
            return False
        width, height = framebuffer_size(operations)
        if width and height:
            wanted = (max(width, screen.min_width), max(height, screen.min_height))
            if (screen.width, screen.height) != wanted:
                return False
    by_connector = {o.connector: o for o in outputs}
    for op in operations:
        output = by_connector.get(op.connector)
        if output is None or not op.is_satisfied_by(output):
            return False
    return True
