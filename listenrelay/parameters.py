"""
Ordered request parameters for the Last.fm web service.

- Insertion order is kept for the wire; signing sorts by name.
- A repeated name replaces the earlier value (last write wins) but keeps its position.
- Signature: md5(name1 + value1 + name2 + value2 + ... + secret), hex.
"""

from __future__ import annotations
import hashlib
from typing import Iterable, Iterator, Mapping

# Never part of the signature
UNSIGNED_PARAMETERS = frozenset({"api_sig", "format", "callback"})


class RequestParameterMap:
    def __init__(self, initial: Mapping[str, object] | Iterable[tuple[str, object]] | None = None):
        self._values: dict[str, str] = {}
        if initial is not None:
            self.extend(initial)

    @staticmethod
    def _coerce(name: str, value: object) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return str(value)
        raise TypeError(f"parameter {name!r} must be str, int or float, got {type(value).__name__}")

    def add(self, name: str, value: object) -> None:
        self._values[name] = self._coerce(name, value)

    __setitem__ = add

    def extend(self, values: Mapping[str, object] | Iterable[tuple[str, object]]) -> None:
        pairs = values.items() if isinstance(values, Mapping) else values
        for name, value in pairs:
            self.add(name, value)

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def items(self):
        return self._values.items()

    def signature(self, secret: str) -> str:
        payload = "".join(
            name + self._values[name]
            for name in sorted(self._values)
            if name not in UNSIGNED_PARAMETERS
        )
        return hashlib.md5((payload + secret).encode("utf-8")).hexdigest()

    def sign(self, secret: str) -> str:
        sig = self.signature(secret)
        self._values["api_sig"] = sig
        return sig

    def to_form(self) -> list[tuple[str, str]]:
        return list(self._values.items())

    def __repr__(self) -> str:
        shown = {k: ("***" if k in ("sk", "api_sig", "token") else v) for k, v in self._values.items()}
        return f"RequestParameterMap({shown!r})"
