"""Application configuration.

AppConfig is loaded once from an ini file and read-only afterwards.
It is constructed explicitly by the composition root and passed down
to whatever needs it, rather than living in process-wide state.

Sections map to first-level keys::

    [datetime]
    timezone = Europe/London

    [factory_settings]
    template = kida

    config.get("datetime", "timezone", "GMT")
    config.get_section("factory_settings")
"""

from __future__ import annotations

import configparser
import logging
import os
import time
from pathlib import Path
from typing import Any

from perch.errors import ConfigAlreadyLoaded, ConfigParseError, ConfigSectionNotFound

logger = logging.getLogger("perch.config")

# Values treated as "on" by get_bool()
TRUTHY: frozenset[str] = frozenset({"on", "1", "yes", "true"})

DEFAULT_TIMEZONE = "GMT"


class AppConfig:
    """Section/key configuration loaded from an ini file. Read-only after load.

    Usage::

        config = AppConfig.from_file("app.ini")
        tz = config.get("datetime", "timezone", "GMT")
    """

    __slots__ = ("_path", "_sections")

    def __init__(self) -> None:
        self._sections: dict[str, dict[str, str]] | None = None
        self._path: Path | None = None

    @classmethod
    def from_file(cls, path: str | os.PathLike[str]) -> AppConfig:
        """Create a config object and load *path* into it."""
        config = cls()
        config.load(path)
        return config

    # -- Loading --

    def load(self, path: str | os.PathLike[str]) -> None:
        """Parse an ini file into section -> key -> value.

        Raises ``ConfigAlreadyLoaded`` if this object was loaded before.
        Raises ``ConfigParseError`` if the file is missing, malformed or empty.
        """
        if self._sections is not None:
            msg = f"Config has already been loaded from {self._path}"
            raise ConfigAlreadyLoaded(msg)

        ini_path = Path(path)
        parser = configparser.ConfigParser(interpolation=None)
        # Keep key case as written (configparser lower-cases by default)
        parser.optionxform = str  # type: ignore[assignment,method-assign]

        try:
            with ini_path.open(encoding="utf-8") as fh:
                parser.read_file(fh)
        except OSError as exc:
            msg = f"Unable to read config file {ini_path}: {exc.strerror or exc}"
            raise ConfigParseError(msg) from exc
        except configparser.Error as exc:
            msg = f"Unable to parse config file {ini_path}: {exc}"
            raise ConfigParseError(msg) from exc

        if not parser.sections():
            msg = f"Unable to parse config file {ini_path}: no sections found"
            raise ConfigParseError(msg)

        self._sections = {
            name: dict(parser.items(name, raw=True)) for name in parser.sections()
        }
        self._path = ini_path
        logger.info("Loaded config %s (%d sections)", ini_path, len(self._sections))

    @property
    def loaded(self) -> bool:
        """True once ``load()`` has succeeded."""
        return self._sections is not None

    @property
    def path(self) -> Path | None:
        """The file this config was loaded from."""
        return self._path

    # -- Lookups --

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Return the value for *section*/*key*, or *default* if either is absent."""
        values = (self._sections or {}).get(section)
        if values is None or key not in values:
            return default
        return values[key]

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        """Return a boolean-like value (``on``/``1``/``yes``/``true`` → True)."""
        value = self.get(section, key)
        if value is None:
            return default
        return str(value).strip().lower() in TRUTHY

    def get_int(self, section: str, key: str, default: int) -> int:
        """Return a value as int, or *default* if missing or not numeric."""
        value = self.get(section, key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def get_section(self, section: str) -> dict[str, str]:
        """Return a copy of a whole section.

        Raises ``ConfigSectionNotFound`` if the section is absent.
        """
        values = (self._sections or {}).get(section)
        if values is None:
            msg = f"Config section not found: [{section}]"
            raise ConfigSectionNotFound(msg)
        return dict(values)

    def has_section(self, section: str) -> bool:
        return section in (self._sections or {})

    def __repr__(self) -> str:
        return f"AppConfig(path={self._path!r}, loaded={self.loaded})"


def apply_timezone(config: AppConfig) -> str:
    """Set the process default timezone from ``[datetime] timezone``.

    Defaults to ``GMT``. ``time.tzset()`` only exists on Unix; elsewhere
    the ``TZ`` variable is still set for child processes.
    """
    name = config.get("datetime", "timezone", DEFAULT_TIMEZONE)
    os.environ["TZ"] = name
    if hasattr(time, "tzset"):
        time.tzset()
    logger.debug("Process timezone set to %s", name)
    return name
