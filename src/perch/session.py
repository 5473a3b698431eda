"""Signed cookie sessions, started lazily.

Session data is serialized as JSON and signed with ``itsdangerous``.
Nothing is read from the cookie until the session is first used, and a
Set-Cookie is only emitted when the session was changed during the
request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadData, URLSafeTimedSerializer

from perch.errors import ConfigurationError
from perch.http.cookies import SetCookie

logger = logging.getLogger("perch.session")


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session cookie settings. Sessions are signed, not encrypted."""

    secret_key: str = ""
    cookie_name: str = "perch_session"
    max_age: int = 86400  # 24 hours
    path: str = "/"
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"


class Session(MutableMapping[str, Any]):
    """The session for one request.

    ``start()`` verifies and loads the cookie; it is called implicitly by
    any read or write. Reads of a request without a session cookie never
    start anything.
    """

    __slots__ = ("_config", "_cookie", "_data", "_modified")

    def __init__(self, config: SessionConfig | None, cookies: Mapping[str, str]) -> None:
        self._config = config
        self._cookie = cookies.get(config.cookie_name) if config is not None else None
        self._data: dict[str, Any] | None = None
        self._modified = False

    @property
    def started(self) -> bool:
        return self._data is not None

    @property
    def modified(self) -> bool:
        return self._modified

    def _serializer(self) -> URLSafeTimedSerializer:
        if self._config is None or not self._config.secret_key:
            msg = "Sessions need a secret key: set [session] secret_key in the config."
            raise ConfigurationError(msg)
        return URLSafeTimedSerializer(self._config.secret_key)

    def start(self) -> dict[str, Any]:
        """Load the session from its cookie (once) and return the data dict."""
        if self._data is not None:
            return self._data

        serializer = self._serializer()
        data: Any = {}
        if self._cookie:
            try:
                data = serializer.loads(self._cookie, max_age=self._config.max_age)
            except BadData:
                logger.debug("Discarding session cookie with a bad or expired signature")
                data = {}
        self._data = data if isinstance(data, dict) else {}
        return self._data

    def _readable(self) -> dict[str, Any]:
        # No cookie and not started: nothing to read, nothing to start
        if self._data is None and not self._cookie:
            return {}
        return self.start()

    # -- Mapping --

    def __getitem__(self, key: str) -> Any:
        return self._readable()[key]

    def __iter__(self) -> Iterator[str]:
        return iter(dict(self._readable()))

    def __len__(self) -> int:
        return len(self._readable())

    def __contains__(self, key: object) -> bool:
        return key in self._readable()

    def __setitem__(self, key: str, value: Any) -> None:
        self.start()[key] = value
        self._modified = True

    def __delitem__(self, key: str) -> None:
        del self.start()[key]
        self._modified = True

    def discard(self, key: str) -> None:
        """Remove *key* if present. Starts the session either way."""
        data = self.start()
        if key in data:
            del data[key]
            self._modified = True

    # -- Cookie --

    def to_cookie(self) -> SetCookie | None:
        """The Set-Cookie for this session, or ``None`` if nothing changed."""
        if not self._modified or self._data is None:
            return None
        cfg = self._config
        assert cfg is not None
        return SetCookie(
            name=cfg.cookie_name,
            value=self._serializer().dumps(self._data),
            max_age=cfg.max_age,
            path=cfg.path,
            secure=cfg.secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )

    def __repr__(self) -> str:
        return f"<Session started={self.started} modified={self._modified}>"
