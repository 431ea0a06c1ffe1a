"""``<type>://<value>`` addresses.

Parsing happens once, at the boundary: everything downstream receives a
typed ``Uri`` and never splits strings on ``://`` again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, get_args

from glf.core.result import Err, Ok, Result
from glf.flow.errors import FlowError

__all__ = ["UriType", "ElementType", "Uri", "parse_uri"]

ElementType = Literal["branch", "repo", "feature", "release", "hotfix", "support"]
UriType = Literal["branch", "repo", "feature", "release", "hotfix", "support", "tag"]

_ELEMENT_TYPES: frozenset[str] = frozenset(get_args(ElementType))
_FILTER_TYPES: frozenset[str] = frozenset(get_args(UriType))

_SEPARATOR = "://"


@dataclass(frozen=True, slots=True)
class Uri:
    type: UriType
    value: str

    def __str__(self) -> str:
        return f"{self.type}{_SEPARATOR}{self.value}"

    @property
    def segments(self) -> list[str]:
        return self.value.split("/")


def _invalid(text: str, message: str) -> FlowError:
    expected = ", ".join(sorted(_ELEMENT_TYPES))
    return FlowError(
        kind="invalid_uri",
        message=f"invalid address '{text}': {message}",
        hint=f"Use <type>://<value> with type one of: {expected}",
    )


def parse_uri(text: str, *, allow_tag: bool = False) -> Result[Uri, FlowError]:
    """Parse ``text`` into a ``Uri``.

    ``tag://`` is only meaningful in filters and is rejected unless
    ``allow_tag`` is set.
    """
    raw = text.strip()
    type_name, sep, value = raw.partition(_SEPARATOR)
    if not sep:
        return Err(_invalid(text, f"missing '{_SEPARATOR}'"))

    allowed = _FILTER_TYPES if allow_tag else _ELEMENT_TYPES
    if type_name not in allowed:
        return Err(_invalid(text, f"unknown type '{type_name}'"))

    value = value.strip("/")
    if not value:
        return Err(_invalid(text, "empty value"))

    return Ok(Uri(type=type_name, value=value))  # type: ignore[arg-type]
