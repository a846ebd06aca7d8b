"""Setup management: load, save, delete and list setups, build the repository."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from .matcher import InvalidSetup, validate_setup
from .models import MonitorSpec, Rotation, Setup
from .utils import read_json, setups_dir, write_json

log = logging.getLogger(__name__)

# <identity> = <x>x<y>, <rotation>
_CONF_LINE = re.compile(r"^(?P<id>[0-9a-fA-F]+)=(?P<x>\d+)x(?P<y>\d+),(?P<rot>\d+)$")


def parse_conf(name: str, text: str) -> Setup:
    """Parse the line-based ``.conf`` setup format.

    Whitespace is ignored and ``#`` starts a comment line. Every monitor is
    placed at its preferred mode.
    """
    setup = Setup(name=name)
    for line_n, raw in enumerate(text.splitlines(), 1):
        line = "".join(raw.split())
        if not line or line.startswith("#"):
            continue
        m = _CONF_LINE.match(line)
        if m is None:
            raise InvalidSetup(name, f"invalid config at line {line_n}")
        try:
            rotation = Rotation(int(m["rot"]))
        except ValueError:
            raise InvalidSetup(
                name,
                f"invalid rotation at line {line_n} (must be 0, 90, 180 or 270)",
            ) from None
        setup.monitors.append(MonitorSpec(
            identity=m["id"].lower(),
            x=int(m["x"]),
            y=int(m["y"]),
            rotation=rotation,
        ))
    return setup


@dataclass(frozen=True)
class SetupRepository:
    """Read-only, ordered collection of valid setups.

    *rejected* keeps the setups excluded from matching, with the reason.
    """
    setups: tuple[Setup, ...] = ()
    rejected: tuple[InvalidSetup, ...] = field(default=(), compare=False)

    def __iter__(self):
        return iter(self.setups)

    def __len__(self) -> int:
        return len(self.setups)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.setups]

    @classmethod
    def build(cls, setups: list[Setup], rejected: list[InvalidSetup] | None = None) -> SetupRepository:
        """Validate *setups*, keeping declaration order and excluding bad ones."""
        valid: list[Setup] = []
        bad = list(rejected or [])
        for setup in setups:
            try:
                validate_setup(setup)
            except InvalidSetup as e:
                bad.append(e)
                continue
            except (TypeError, ValueError) as e:
                bad.append(InvalidSetup(setup.name, f"malformed monitor entry: {e}"))
                continue
            valid.append(setup)
        return cls(setups=tuple(valid), rejected=tuple(bad))


class SetupManager:
    """Manages monitor setups stored as JSON (or legacy .conf) files."""

    def __init__(self, directory: Path | None = None) -> None:
        self._dir = directory or setups_dir()

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, name: str) -> Path:
        safe = name.replace("/", "_").replace("\\", "_")
        return self._dir / f"{safe}.json"

    def _files(self) -> list[Path]:
        return sorted(
            p for p in self._dir.iterdir()
            if p.is_file() and p.suffix in (".json", ".conf")
        )

    def _read(self, path: Path) -> Setup:
        if path.suffix == ".conf":
            return parse_conf(path.stem, path.read_text(encoding="utf-8"))
        data = read_json(path)
        if not isinstance(data, dict):
            raise InvalidSetup(path.stem, "not a JSON object")
        setup = Setup.from_dict(data)
        if not setup.name:
            setup.name = path.stem
        return setup

    def save(self, setup: Setup) -> Path:
        """Save a setup to disk. Returns the file path."""
        path = self._path_for(setup.name)
        write_json(path, setup.to_dict())
        return path

    def load(self, name: str) -> Setup | None:
        """Load a setup by name."""
        path = self._path_for(name)
        if not path.exists():
            return None
        return self._read(path)

    def delete(self, name: str) -> bool:
        """Delete a setup. Returns True if it existed."""
        path = self._path_for(name)
        if path.exists():
            path.unlink()
            return True
        return False

    def load_all(self) -> tuple[list[Setup], list[InvalidSetup]]:
        """Load every setup file in name order.

        Files that cannot be read or parsed are returned as errors instead
        of aborting the whole load.
        """
        setups: list[Setup] = []
        errors: list[InvalidSetup] = []
        for path in self._files():
            try:
                setups.append(self._read(path))
            except InvalidSetup as e:
                errors.append(e)
            except (OSError, json.JSONDecodeError, TypeError, ValueError) as e:
                errors.append(InvalidSetup(path.stem, f"cannot read {path.name}: {e}"))
        log.debug("Loaded %d setup(s) from %s", len(setups), self._dir)
        return setups, errors

    def list_setups(self) -> list[str]:
        """Return the names of all loadable setups."""
        return [s.name for s in self.load_all()[0]]

    def repository(self) -> SetupRepository:
        """Load and validate every setup."""
        setups, errors = self.load_all()
        return SetupRepository.build(setups, errors)
