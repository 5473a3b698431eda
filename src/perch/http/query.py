"""Read-only parameters parsed from a query string or urlencoded body."""

from collections.abc import Iterator, Mapping
from urllib.parse import parse_qsl


class QueryParams(Mapping[str, str]):
    """``application/x-www-form-urlencoded`` fields, in the order they were sent.

    Backs both ``request.query`` and ``request.post``. Indexing returns the
    first value of a field; ``get_list`` returns every value. Blank values
    are kept, so ``?debug`` gives ``{"debug": ""}``.
    """

    __slots__ = ("_pairs", "_raw")

    def __init__(self, encoded: bytes = b"") -> None:
        self._raw = encoded
        self._pairs: tuple[tuple[str, str], ...] = tuple(
            parse_qsl(encoded.decode("latin-1"), keep_blank_values=True)
        )

    def __getitem__(self, key: str) -> str:
        for name, value in self._pairs:
            if name == key:
                return value
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return iter(dict.fromkeys(name for name, _ in self._pairs))

    def __len__(self) -> int:
        return len({name for name, _ in self._pairs})

    def __repr__(self) -> str:
        return f"QueryParams({self._pairs!r})"

    def get_list(self, key: str) -> list[str]:
        """Every value sent for *key*, possibly empty."""
        return [value for name, value in self._pairs if name == key]

    @property
    def raw(self) -> bytes:
        return self._raw
