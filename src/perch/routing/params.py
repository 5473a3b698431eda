"""Path parameter constraints.

A placeholder is ``{name}``, ``{name:converter}`` or ``{name:regex}``.
Named converters map to a regex; anything else after the colon is used
as the regex itself. Captured values are always passed on as strings.
"""

import re

from perch.errors import ConfigurationError

# converter name -> segment regex
CONVERTERS: dict[str, str] = {
    "str": r"[^/]+",
    "int": r"\d+",
    "float": r"\d+(?:\.\d+)?",
    "path": r".+",
}


def constraint_pattern(constraint: str) -> str:
    """Return the regex source for a converter name or raw regex."""
    return CONVERTERS.get(constraint, constraint)


def compile_constraint(constraint: str, *, pattern: str = "") -> re.Pattern[str]:
    """Compile a segment constraint into an anchored regex.

    Raises ``ConfigurationError`` if a raw regex does not compile.
    """
    source = constraint_pattern(constraint)
    try:
        return re.compile(f"^(?:{source})$")
    except re.error as exc:
        msg = f"Invalid constraint {constraint!r} in route {pattern!r}: {exc}"
        raise ConfigurationError(msg) from exc
