"""X11 display backend over the RandR extension (python-xlib)."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Sequence

from Xlib import X, display
from Xlib import error as xerror
from Xlib.ext import randr

from .applier import framebuffer_size
from .backend import BackendError, BackendUnavailable
from .models import (
    ConfigOperation,
    ConfigureOutput,
    ConnectedOutput,
    DisableOutput,
    Mode,
    Rotation,
    ScreenState,
)

log = logging.getLogger(__name__)

# RandR mode flags
_RR_INTERLACE = 0x00000010
_RR_DOUBLESCAN = 0x00000020

_EDID_LONG_LENGTH = 128  # 32-bit units, enough for 4 EDID blocks
_DEFAULT_DPI = 96.0
_MM_PER_INCH = 25.4

_HOTPLUG_MASK = randr.RRScreenChangeNotifyMask | randr.RROutputChangeNotifyMask


def _refresh_rate(info) -> float:
    """Vertical refresh of a RandR ModeInfo, as xrandr computes it."""
    v_total = info.v_total
    if info.flags & _RR_DOUBLESCAN:
        v_total *= 2
    if info.flags & _RR_INTERLACE:
        v_total /= 2
    if not info.h_total or not v_total:
        return 0.0
    return round(info.dot_clock / (info.h_total * v_total), 2)


def _mode_names(resources) -> dict[int, str]:
    """Split the concatenated mode name string of a screen resources reply."""
    names: dict[int, str] = {}
    raw = resources.mode_names
    if isinstance(raw, bytes):
        raw = raw.decode("latin-1")
    offset = 0
    for info in resources.modes:
        names[info.id] = raw[offset:offset + info.name_length]
        offset += info.name_length
    return names


class X11Backend:
    """Query and configure outputs through the X RandR extension."""

    def __init__(self, display_name: str | None = None) -> None:
        self._display_name = display_name
        self._dpy: display.Display | None = None

    # ── Connection lifecycle ────────────────────────────────────────

    def _connect(self) -> display.Display:
        try:
            dpy = display.Display(self._display_name)
        except xerror.DisplayError as e:
            raise BackendUnavailable(f"Cannot connect to X server: {e}") from e
        if not dpy.has_extension("RANDR"):
            dpy.close()
            raise BackendUnavailable("X server has no RandR extension")
        return dpy

    def open(self) -> X11Backend:
        if self._dpy is None:
            self._dpy = self._connect()
            log.debug("Connected to X display %s", self._dpy.get_display_name())
        return self

    def close(self) -> None:
        if self._dpy is not None:
            try:
                self._dpy.close()
            except xerror.ConnectionClosedError:
                pass
            self._dpy = None

    def __enter__(self) -> X11Backend:
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def _display(self) -> display.Display:
        if self._dpy is None:
            raise BackendUnavailable("X11 backend is not open")
        return self._dpy

    @property
    def _root(self):
        return self._display.screen().root

    # ── Queries ─────────────────────────────────────────────────────

    def _read_edid(self, output: int) -> bytes:
        dpy = self._display
        atom = dpy.intern_atom("EDID", only_if_exists=True)
        if not atom or atom not in dpy.xrandr_list_output_properties(output).atoms:
            return b""
        reply = dpy.xrandr_get_output_property(
            output, atom, X.AnyPropertyType, 0, _EDID_LONG_LENGTH,
        )
        if reply.format != 8:
            return b""
        return bytes(reply.value)

    def _build_output(self, output: int, info, resources, modes: dict[int, Mode], primary: int) -> ConnectedOutput:
        own_modes = [
            Mode(
                width=modes[mid].width,
                height=modes[mid].height,
                refresh_rate=modes[mid].refresh_rate,
                id=mid,
                preferred=i < info.num_preferred,
                name=modes[mid].name,
            )
            for i, mid in enumerate(info.modes)
            if mid in modes
        ]
        result = ConnectedOutput(
            connector=info.name,
            edid=self._read_edid(output),
            modes=own_modes,
            mm_width=info.mm_width,
            mm_height=info.mm_height,
            primary=output == primary,
            handle=output,
        )
        if info.crtc:
            crtc = self._display.xrandr_get_crtc_info(info.crtc, resources.config_timestamp)
            if crtc.mode:
                result.mode = next((m for m in own_modes if m.id == crtc.mode), None)
                result.x = crtc.x
                result.y = crtc.y
                result.rotation = Rotation.from_randr(crtc.rotation)
        return result

    def query_outputs(self) -> list[ConnectedOutput]:
        """List connected outputs in server order."""
        try:
            root = self._root
            resources = root.xrandr_get_screen_resources()
            names = _mode_names(resources)
            modes = {
                info.id: Mode(
                    width=info.width,
                    height=info.height,
                    refresh_rate=_refresh_rate(info),
                    id=info.id,
                    name=names.get(info.id, ""),
                )
                for info in resources.modes
            }
            primary = root.xrandr_get_output_primary().output

            connected: list[ConnectedOutput] = []
            for output in resources.outputs:
                info = self._display.xrandr_get_output_info(output, resources.config_timestamp)
                if info.connection != randr.Connected:
                    continue
                connected.append(self._build_output(output, info, resources, modes, primary))
            return connected
        except xerror.ConnectionClosedError as e:
            self._dpy = None
            raise BackendUnavailable(f"X connection closed: {e}") from e
        except xerror.XError as e:
            raise BackendUnavailable(f"Cannot query outputs: {e}") from e

    def query_screen(self) -> ScreenState:
        """Current root window size, its lower limit and leftover CRTCs."""
        try:
            root = self._root
            geometry = root.get_geometry()
            limits = root.xrandr_get_screen_size_range()
            resources = root.xrandr_get_screen_resources()
            dangling = []
            for output in resources.outputs:
                info = self._display.xrandr_get_output_info(output, resources.config_timestamp)
                if info.connection != randr.Connected and info.crtc:
                    dangling.append(info.name)
        except xerror.ConnectionClosedError as e:
            self._dpy = None
            raise BackendUnavailable(f"X connection closed: {e}") from e
        except xerror.XError as e:
            raise BackendUnavailable(f"Cannot query screen: {e}") from e
        return ScreenState(
            width=geometry.width,
            height=geometry.height,
            min_width=limits.min_width,
            min_height=limits.min_height,
            dangling=tuple(dangling),
        )

    # ── Configuration ───────────────────────────────────────────────

    def _physical_size(self, width: int, height: int) -> tuple[int, int]:
        """Screen size in mm, keeping the current DPI."""
        screen = self._display.screen()
        if screen.width_in_mms and screen.height_in_mms:
            dpi_x = _MM_PER_INCH * screen.width_in_pixels / screen.width_in_mms
            dpi_y = _MM_PER_INCH * screen.height_in_pixels / screen.height_in_mms
        else:
            dpi_x = dpi_y = _DEFAULT_DPI
        return (
            int(_MM_PER_INCH * width / dpi_x + 0.5),
            int(_MM_PER_INCH * height / dpi_y + 0.5),
        )

    def _disable_crtc(self, crtc: int, timestamp: int) -> int:
        reply = self._display.xrandr_set_crtc_config(
            crtc, timestamp, 0, 0, 0, randr.Rotate_0, [],
        )
        return reply.status

    def submit(self, operations: Sequence[ConfigOperation]) -> None:
        """Apply *operations* in order, holding a server grab.

        There is no rollback: a failure leaves whatever the server already
        accepted in place and raises :class:`BackendError`.
        """
        operations = list(operations)
        errors: list[xerror.XError] = []
        dpy = self._display
        dpy.set_error_handler(lambda err, request=None: errors.append(err))
        try:
            dpy.grab_server()
            try:
                self._apply(operations, errors)
            finally:
                dpy.ungrab_server()
                dpy.sync()
        except xerror.ConnectionClosedError as e:
            self._dpy = None
            raise BackendUnavailable(f"X connection closed: {e}") from e
        except xerror.XError as e:
            raise BackendError(str(e)) from e
        finally:
            if self._dpy is not None:
                self._dpy.set_error_handler(None)
        if errors:
            raise BackendError(f"X server rejected the configuration: {errors[0]}")

    def _apply(self, operations: list[ConfigOperation], errors: list) -> None:
        dpy = self._display
        root = self._root
        resources = root.xrandr_get_screen_resources()
        timestamp = resources.config_timestamp

        infos = {o: dpy.xrandr_get_output_info(o, timestamp) for o in resources.outputs}
        by_name = {info.name: o for o, info in infos.items()}
        crtcs = {c: dpy.xrandr_get_crtc_info(c, timestamp) for c in resources.crtcs}
        busy = {c for c, info in crtcs.items() if info.mode}

        # Release CRTCs still held by outputs that were unplugged
        for output, info in infos.items():
            if info.connection != randr.Connected and info.crtc:
                log.debug("Releasing CRTC of disconnected output %s", info.name)
                self._disable_crtc(info.crtc, timestamp)
                busy.discard(info.crtc)

        def lookup(index: int, op: ConfigOperation) -> int:
            output = by_name.get(op.connector)
            if output is None or infos[output].connection != randr.Connected:
                raise BackendError("output is not connected", index, op)
            return output

        for index, op in enumerate(operations):
            if isinstance(op, DisableOutput):
                info = infos[lookup(index, op)]
                if info.crtc:
                    status = self._disable_crtc(info.crtc, timestamp)
                    if status != randr.SetConfigSuccess:
                        raise BackendError(f"disable failed with status {status}", index, op)
                    busy.discard(info.crtc)

        width, height = framebuffer_size(operations)
        if width and height:
            limits = root.xrandr_get_screen_size_range()
            if width > limits.max_width or height > limits.max_height:
                raise BackendError(
                    f"screen {width}x{height} exceeds maximum "
                    f"{limits.max_width}x{limits.max_height}"
                )
            width = max(width, limits.min_width)
            height = max(height, limits.min_height)

            # CRTCs that would hang off the resized screen must go first
            for c in list(busy):
                info = crtcs[c]
                if info.x + info.width > width or info.y + info.height > height:
                    self._disable_crtc(c, timestamp)
                    busy.discard(c)

            mm_width, mm_height = self._physical_size(width, height)
            root.xrandr_set_screen_size(width, height, mm_width, mm_height)
            dpy.sync()
            if errors:
                raise BackendError(f"cannot resize screen to {width}x{height}: {errors[0]}")

        primary = None
        for index, op in enumerate(operations):
            if not isinstance(op, ConfigureOutput):
                continue
            output = lookup(index, op)
            info = infos[output]
            crtc = info.crtc or next((c for c in info.crtcs if c not in busy), None)
            if not crtc:
                raise BackendError("no free CRTC", index, op)
            status = dpy.xrandr_set_crtc_config(
                crtc, timestamp, op.x, op.y, op.mode.id,
                op.rotation.randr_bits, [output],
            ).status
            if status != randr.SetConfigSuccess:
                raise BackendError(f"CRTC configuration failed with status {status}", index, op)
            busy.add(crtc)
            if op.primary:
                primary = output

        if primary is not None:
            root.xrandr_set_output_primary(primary)

    # ── Hot-plug notifications ──────────────────────────────────────

    async def subscribe_hotplug(self) -> AsyncIterator[str]:
        """Yield one line per RandR screen or output change.

        Uses a dedicated connection so replies to queries on the main one
        never swallow events.
        """
        events = self._connect()
        events.screen().root.xrandr_select_input(_HOTPLUG_MASK)
        events.flush()

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_readable() -> None:
            try:
                while events.pending_events():
                    queue.put_nowait(events.next_event())
            except xerror.ConnectionClosedError as e:
                loop.remove_reader(events.fileno())
                queue.put_nowait(e)

        loop.add_reader(events.fileno(), on_readable)
        try:
            while True:
                event = await queue.get()
                if isinstance(event, Exception):
                    raise BackendUnavailable(f"X connection closed: {event}") from event
                if isinstance(event, randr.ScreenChangeNotify):
                    yield f"screen-change {event.width_in_pixels}x{event.height_in_pixels}"
                elif isinstance(event, randr.OutputChangeNotify):
                    yield f"output-change output={event.output} connection={event.connection}"
        finally:
            try:
                loop.remove_reader(events.fileno())
            except (OSError, ValueError):
                pass
            events.close()
