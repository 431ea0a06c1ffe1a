"""Slash-aware glob matching.

Filters and state-key sweeps match names that contain ``/`` (pathspecs such
as ``root/apiService``, branch names such as ``feature/checkout``,
state keys such as ``feature://x/closing``). ``fnmatch`` lets ``*`` run
across slashes, so patterns are translated here with the usual shell
semantics instead:

- ``*`` and ``?`` never match ``/``
- ``**`` as a whole segment matches any number of segments (including none)
- ``[abc]`` / ``[!abc]`` character classes
- ``{a,b}`` alternatives (not nested)
- ``\\x`` matches ``x`` literally
"""

from __future__ import annotations

import re
from functools import lru_cache

__all__ = ["escape", "globmatch", "translate"]

_SPECIAL = frozenset("*?[]{}\\")


def translate(pattern: str) -> str:
    """Translate a glob pattern into an (unanchored) regular expression."""
    out: list[str] = []
    i = 0
    n = len(pattern)

    while i < n:
        c = pattern[i]

        if c == "\\" and i + 1 < n:
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue

        if c == "*":
            j = i
            while j < n and pattern[j] == "*":
                j += 1
            at_start = i == 0 or pattern[i - 1] == "/"
            at_end = j == n or pattern[j] == "/"

            if j - i >= 2 and at_start and at_end:
                if j < n:
                    # "**/" spans zero or more whole segments
                    out.append("(?:.*/)?")
                    j += 1
                elif out and out[-1] == "/":
                    # trailing "/**" also matches the parent itself
                    out[-1] = "(?:/.*)?"
                else:
                    out.append(".*")
            else:
                out.append("[^/]*")
            i = j
            continue

        if c == "?":
            out.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 2 if pattern.startswith("[!", i) else i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : j].replace("\\", "\\\\")
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = j
        elif c == "{":
            j = pattern.find("}", i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                alternatives = pattern[i + 1 : j].split(",")
                out.append("(?:" + "|".join(translate(alt) for alt in alternatives) + ")")
                i = j
        else:
            out.append(re.escape(c))
        i += 1

    return "".join(out)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(translate(pattern), re.DOTALL)


def globmatch(text: str, pattern: str) -> bool:
    """Return True if the whole of ``text`` matches ``pattern``."""
    return _compile(pattern).fullmatch(text) is not None


def escape(text: str) -> str:
    """Escape glob metacharacters so ``text`` only matches itself."""
    return "".join(f"\\{c}" if c in _SPECIAL else c for c in text)
