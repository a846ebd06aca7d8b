"""Data models: Mode, ConnectedOutput, MonitorSpec, Setup, operations, match results."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Union

REFRESH_TOLERANCE = 0.05  # Hz; xrandr rounds rates differently per driver

# RandR Rotate_0, Rotate_90, Rotate_180, Rotate_270 (counter-clockwise)
_RANDR_BITS: dict[int, int] = {0: 1, 90: 2, 180: 4, 270: 8}

# xrandr --rotate values
_XRANDR_NAMES: dict[int, str] = {0: "normal", 90: "left", 180: "inverted", 270: "right"}


# ── Enums ────────────────────────────────────────────────────────────────

class Rotation(Enum):
    NORMAL = 0
    LEFT = 90
    INVERTED = 180
    RIGHT = 270

    @property
    def label(self) -> str:
        return f"{self.value}°"

    @property
    def is_rotated(self) -> bool:
        """True if width/height are swapped (90° or 270°)."""
        return self.value in (90, 270)

    @property
    def randr_bits(self) -> int:
        """RandR Rotate_* bit for this rotation."""
        return _RANDR_BITS[self.value]

    @classmethod
    def from_randr(cls, bits: int) -> Rotation:
        """Map RandR rotation bits back to a Rotation (reflection bits are ignored)."""
        for degrees, bit in _RANDR_BITS.items():
            if bits & bit:
                return cls(degrees)
        return cls.NORMAL

    @property
    def xrandr_name(self) -> str:
        return _XRANDR_NAMES[self.value]


# ── Mode ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Mode:
    width: int
    height: int
    refresh_rate: float
    id: int = 0                 # backend handle (RandR mode XID)
    preferred: bool = False
    name: str = ""

    def __str__(self) -> str:
        return f"{self.width}x{self.height}@{self.refresh_rate:.2f}Hz"

    @property
    def area(self) -> int:
        return self.width * self.height

    def matches(self, width: int, height: int, refresh_rate: float | None = None) -> bool:
        """True if this mode has the given resolution (and refresh, when given)."""
        if (self.width, self.height) != (width, height):
            return False
        if refresh_rate is None:
            return True
        return abs(self.refresh_rate - refresh_rate) < REFRESH_TOLERANCE


# ── ConnectedOutput ──────────────────────────────────────────────────────

@dataclass
class ConnectedOutput:
    # Identity
    connector: str = ""         # e.g. "DP-1", informational only
    identity: str = ""          # EDID fingerprint, empty until identified
    edid: bytes = b""

    # Capabilities
    modes: list[Mode] = field(default_factory=list)
    mm_width: int = 0
    mm_height: int = 0

    # Current state (mode is None when the output has no CRTC)
    mode: Mode | None = None
    x: int = 0
    y: int = 0
    rotation: Rotation = Rotation.NORMAL
    primary: bool = False

    # Backend handle (RandR output XID)
    handle: int = 0

    @property
    def enabled(self) -> bool:
        return self.mode is not None

    @property
    def preferred_mode(self) -> Mode | None:
        """First preferred mode, else the largest then fastest one."""
        for m in self.modes:
            if m.preferred:
                return m
        if not self.modes:
            return None
        return max(self.modes, key=lambda m: (m.area, m.refresh_rate))

    def find_mode(self, width: int, height: int, refresh_rate: float | None = None) -> Mode | None:
        """Return the best advertised mode for a resolution, or None.

        Without *refresh_rate* the fastest mode at that resolution wins.
        """
        candidates = [m for m in self.modes if m.matches(width, height, refresh_rate)]
        if not candidates:
            return None
        return max(candidates, key=lambda m: (m.refresh_rate, m.preferred))

    def describe(self) -> str:
        state = str(self.mode) if self.mode else "disabled"
        return f"{self.connector} ({self.identity or 'unidentified'}) {state}"


# ── MonitorSpec ──────────────────────────────────────────────────────────

@dataclass
class MonitorSpec:
    identity: str = ""

    # Resolution; None means the output's preferred mode
    width: int | None = None
    height: int | None = None
    refresh_rate: float | None = None

    # Position in the virtual screen
    x: int = 0
    y: int = 0

    rotation: Rotation = Rotation.NORMAL
    primary: bool = False

    # Informational, never used for matching
    connector: str = ""

    def __str__(self) -> str:
        if self.width is None:
            res = "preferred"
        else:
            res = f"{self.width}x{self.height}"
            if self.refresh_rate is not None:
                res += f"@{self.refresh_rate:g}Hz"
        return f"{self.identity}@{res}+{self.x}+{self.y}"

    def to_dict(self) -> dict:
        """Serialize to a JSON-friendly dict, omitting unset optional fields."""
        d = asdict(self)
        d["rotation"] = self.rotation.value
        return {k: v for k, v in d.items() if v is not None and v != ""}

    @classmethod
    def from_dict(cls, d: dict) -> MonitorSpec:
        """Deserialize from a dict.

        Numeric fields are coerced; values that cannot be coerced raise ValueError
        or TypeError.
        """
        d = {k: v for k, v in d.items() if k in cls.__dataclass_fields__}
        d["identity"] = str(d.get("identity") or "").lower()
        d["rotation"] = Rotation(int(d.get("rotation", 0)))
        d["x"] = int(d.get("x", 0))
        d["y"] = int(d.get("y", 0))
        for key in ("width", "height"):
            if d.get(key) is not None:
                d[key] = int(d[key])
        if d.get("refresh_rate") is not None:
            d["refresh_rate"] = float(d["refresh_rate"])
        if not isinstance(d.get("primary", False), bool):
            raise TypeError(f"primary must be true or false, not {d['primary']!r}")
        d["connector"] = str(d.get("connector") or "")
        return cls(**d)

    @classmethod
    def from_output(cls, output: ConnectedOutput) -> MonitorSpec:
        """Capture the live configuration of an identified, enabled output."""
        mode = output.mode
        return cls(
            identity=output.identity,
            width=mode.width if mode else None,
            height=mode.height if mode else None,
            refresh_rate=mode.refresh_rate if mode else None,
            x=output.x,
            y=output.y,
            rotation=output.rotation,
            primary=output.primary,
            connector=output.connector,
        )


# ── Setup ────────────────────────────────────────────────────────────────

@dataclass
class Setup:
    name: str = ""
    monitors: list[MonitorSpec] = field(default_factory=list)

    @property
    def fingerprint(self) -> list[str]:
        """Sorted list of monitor identities for matching."""
        return sorted(m.identity for m in self.monitors)

    @property
    def primary(self) -> MonitorSpec | None:
        """The primary entry; the first entry when none is flagged."""
        for m in self.monitors:
            if m.primary:
                return m
        return self.monitors[0] if self.monitors else None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "monitors": [m.to_dict() for m in self.monitors],
        }

    @classmethod
    def from_dict(cls, d: dict) -> Setup:
        monitors = d.get("monitors", [])
        if not isinstance(monitors, list) or not all(isinstance(m, dict) for m in monitors):
            raise TypeError("monitors must be a list of objects")
        return cls(
            name=str(d.get("name") or ""),
            monitors=[MonitorSpec.from_dict(m) for m in monitors],
        )


# ── Operations ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DisableOutput:
    identity: str
    connector: str = ""

    def is_satisfied_by(self, output: ConnectedOutput) -> bool:
        return not output.enabled

    def to_xrandr_args(self) -> str:
        return f"--output {self.connector} --off"


@dataclass(frozen=True)
class ConfigureOutput:
    identity: str
    connector: str
    mode: Mode
    x: int = 0
    y: int = 0
    rotation: Rotation = Rotation.NORMAL
    primary: bool = False

    @property
    def size(self) -> tuple[int, int]:
        """Size in the virtual screen, accounting for rotation."""
        w, h = self.mode.width, self.mode.height
        if self.rotation.is_rotated:
            w, h = h, w
        return w, h

    def is_satisfied_by(self, output: ConnectedOutput) -> bool:
        """True if *output* already runs exactly this configuration."""
        return (
            output.mode is not None
            and output.mode.id == self.mode.id
            and (output.x, output.y) == (self.x, self.y)
            and output.rotation == self.rotation
            and output.primary == self.primary
        )

    def to_xrandr_args(self) -> str:
        """Render as xrandr arguments (without the ``xrandr`` prefix)."""
        parts = [f"--output {self.connector}"]
        parts.append(f"--mode {self.mode.width}x{self.mode.height}")
        parts.append(f"--rate {self.mode.refresh_rate:.2f}")
        parts.append(f"--pos {self.x}x{self.y}")
        parts.append(f"--rotate {self.rotation.xrandr_name}")
        if self.primary:
            parts.append("--primary")
        return " ".join(parts)


ConfigOperation = Union[DisableOutput, ConfigureOutput]


# ── Screen ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScreenState:
    """Virtual screen as the display server currently has it."""
    width: int = 0
    height: int = 0
    min_width: int = 0
    min_height: int = 0
    # Connectors of unplugged outputs still holding a CRTC
    dangling: tuple[str, ...] = ()


# ── Match results ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Matched:
    setup: Setup
    # identity -> live output, one entry per MonitorSpec
    outputs: dict[str, ConnectedOutput] = field(default_factory=dict, compare=False)

    def __str__(self) -> str:
        return f"Matched({self.setup.name})"


class _NoMatch:
    def __repr__(self) -> str:
        return "NoMatch"


class _Default:
    def __repr__(self) -> str:
        return "Default"


NO_MATCH = _NoMatch()
DEFAULT = _Default()

MatchResult = Union[Matched, _NoMatch]
