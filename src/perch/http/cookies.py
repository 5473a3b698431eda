"""Request cookie parsing and the outgoing ``Set-Cookie`` value."""

from dataclasses import dataclass


def parse_cookies(header: str) -> dict[str, str]:
    """Turn ``"a=1; b=2"`` into ``{"a": "1", "b": "2"}``; pairs without ``=`` are dropped."""
    pairs = (item.partition("=") for item in header.split(";"))
    return {name.strip(): value.strip() for name, sep, value in pairs if sep}


@dataclass(frozen=True, slots=True)
class SetCookie:
    """One cookie the response asks the client to store (or drop, with ``max_age=0``)."""

    name: str
    value: str
    max_age: int | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    def to_header_value(self) -> str:
        attributes: list[tuple[str, object]] = [
            ("Max-Age", self.max_age),
            ("Path", self.path or None),
            ("Domain", self.domain),
            ("Secure", self.secure),
            ("HttpOnly", self.httponly),
            ("SameSite", self.samesite or None),
        ]
        parts = [f"{self.name}={self.value}"]
        for label, setting in attributes:
            if setting is None or setting is False:
                continue
            parts.append(label if setting is True else f"{label}={setting}")
        return "; ".join(parts)
