"""Per-node workflow state (``<node>/.glf/state.json``).

A nested JSON map of progress markers, kept apart from the configuration
document. Every call re-reads the file and every write replaces it
atomically; nothing is cached between calls.

Keys are tuples of path segments. A plain string is a single top-level key,
so ``"feature://x/closing"`` is one key even though it contains slashes:

    state = WorkflowState(node.path)
    state.set(("feature://x/closing", "develop"), True)
    state.get_bool(("feature://x/closing", "develop"))   # Ok(True)
    state.set_matching("feature://x/closing*", None)     # clears them
"""

from __future__ import annotations

import json
from pathlib import Path

from glf.core.globs import globmatch
from glf.core.result import Err, Ok, Result
from glf.core.structured import StrDict, as_str_dict
from glf.flow.errors import FlowError
from glf.flow.model import META_DIRNAME, STATE_FILENAME
from glf.platform.files import atomic_write_text, read_text_if_exists

__all__ = ["StateKey", "StateValue", "WorkflowState"]

type StateValue = str | int | float | bool | dict[str, StateValue]
type StateKey = str | tuple[str, ...]


def _segments(key: StateKey) -> tuple[str, ...]:
    segments = (key,) if isinstance(key, str) else key
    if not segments:
        raise ValueError("state key must have at least one segment")
    return segments


def _display(key: StateKey) -> str:
    return " > ".join(_segments(key))


def _type_name(value: object) -> str:
    if isinstance(value, dict):
        return "map"
    return type(value).__name__


class WorkflowState:
    """Read-modify-write access to one node's state document.

    Attributes:
        path: Location of the JSON document
        dry_run: When True, writes are skipped (reads still happen)
    """

    def __init__(self, node_path: Path, *, dry_run: bool = False) -> None:
        self.path = node_path / META_DIRNAME / STATE_FILENAME
        self.dry_run = dry_run

    # -------------------------------------------------------------------------
    # Document
    # -------------------------------------------------------------------------

    def load(self) -> Result[StrDict, FlowError]:
        try:
            text = read_text_if_exists(self.path)
        except OSError as e:
            return Err(FlowError(kind="io_failed", message=f"cannot read {self.path}: {e}"))
        if text is None or not text.strip():
            return Ok({})

        try:
            raw: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(self._corrupt(f"invalid JSON: {e}"))

        data = as_str_dict(raw)
        if data is None:
            return Err(self._corrupt("root must be an object"))
        return Ok(data)

    def _save(self, data: StrDict) -> Result[None, FlowError]:
        if self.dry_run:
            return Ok(None)
        try:
            atomic_write_text(self.path, json.dumps(data, indent=2, sort_keys=True) + "\n")
        except OSError as e:
            return Err(FlowError(kind="io_failed", message=f"cannot write {self.path}: {e}"))
        return Ok(None)

    def _corrupt(self, detail: str) -> FlowError:
        return FlowError(
            kind="validation",
            message=f"corrupt workflow state {self.path}: {detail}",
            hint="Inspect or delete the file (progress markers will be lost)",
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, key: StateKey) -> Result[object | None, FlowError]:
        """Raw value at ``key`` (None when absent at any level)."""
        loaded = self.load()
        if isinstance(loaded, Err):
            return loaded

        current: object = loaded.value
        for segment in _segments(key):
            table = as_str_dict(current)
            if table is None or segment not in table:
                return Ok(None)
            current = table[segment]
        return Ok(current)

    def _get_typed[T](
        self, key: StateKey, expected: type[T] | tuple[type, ...], label: str
    ) -> Result[T | None, FlowError]:
        result = self.get(key)
        if isinstance(result, Err):
            return result
        value = result.value
        if value is None:
            return Ok(None)
        # bool is an int subclass; never accept one for the other
        mismatched = not isinstance(value, expected) or (
            isinstance(value, bool) and label != "bool"
        )
        if mismatched:
            return Err(
                FlowError(
                    kind="type_mismatch",
                    message=(
                        f"state value {_display(key)} in {self.path} is a "
                        f"{_type_name(value)}, expected {label}"
                    ),
                )
            )
        return Ok(value)  # type: ignore[arg-type]

    def get_str(self, key: StateKey) -> Result[str | None, FlowError]:
        return self._get_typed(key, str, "str")

    def get_bool(self, key: StateKey) -> Result[bool | None, FlowError]:
        return self._get_typed(key, bool, "bool")

    def get_int(self, key: StateKey) -> Result[int | None, FlowError]:
        return self._get_typed(key, int, "int")

    def get_nested(self, key: StateKey) -> Result[StrDict | None, FlowError]:
        return self._get_typed(key, dict, "map")

    def keys(self) -> Result[list[str], FlowError]:
        """Top-level keys, in document order."""
        return self.load().map(lambda data: list(data))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def set(self, key: StateKey, value: StateValue | None) -> Result[None, FlowError]:
        """Set ``key``, creating intermediate maps. A falsy value deletes it."""
        loaded = self.load()
        if isinstance(loaded, Err):
            return loaded
        data = loaded.value

        applied = self._apply(data, _segments(key), value)
        if isinstance(applied, Err):
            return applied
        if not applied.value:
            return Ok(None)
        return self._save(data)

    def delete(self, key: StateKey) -> Result[None, FlowError]:
        return self.set(key, None)

    def clear(self) -> Result[bool, FlowError]:
        """Replace the document with an empty map; Ok(False) if already empty.

        The current content is not parsed, so a corrupt document is cleared too.
        """
        try:
            text = read_text_if_exists(self.path)
        except OSError as e:
            return Err(FlowError(kind="io_failed", message=f"cannot read {self.path}: {e}"))
        if text is None or text.strip() in ("", "{}"):
            return Ok(False)
        return self._save({}).map(lambda _: True)

    def set_matching(self, pattern: str, value: StateValue | None) -> Result[list[str], FlowError]:
        """Apply ``set`` to every top-level key matching the glob ``pattern``.

        Returns the keys that matched.
        """
        loaded = self.load()
        if isinstance(loaded, Err):
            return loaded
        data = loaded.value

        matched = [k for k in data if globmatch(k, pattern)]
        changed = False
        for key in matched:
            applied = self._apply(data, (key,), value)
            if isinstance(applied, Err):
                return applied
            changed = changed or applied.value

        if changed:
            saved = self._save(data)
            if isinstance(saved, Err):
                return saved
        return Ok(matched)

    def _apply(
        self, data: StrDict, segments: tuple[str, ...], value: StateValue | None
    ) -> Result[bool, FlowError]:
        """Mutate ``data`` in place; Ok(True) when something changed.

        Deleting a leaf also drops the maps it leaves empty on the way up.
        """
        *parents, leaf = segments
        chain: list[tuple[StrDict, str]] = []
        current = data

        for depth, segment in enumerate(parents):
            child: object = current.get(segment)
            if child is None:
                if not value:
                    return Ok(False)
                child = {}
                current[segment] = child
            table = as_str_dict(child)
            if table is None:
                return Err(
                    FlowError(
                        kind="type_mismatch",
                        message=(
                            f"state value {_display(segments[: depth + 1])} in {self.path} "
                            f"is a {_type_name(child)}, expected map"
                        ),
                    )
                )
            chain.append((current, segment))
            current = table

        if value:
            if current.get(leaf) == value and type(current.get(leaf)) is type(value):
                return Ok(False)
            current[leaf] = value
            return Ok(True)

        if leaf not in current:
            return Ok(False)
        del current[leaf]
        for parent, segment in reversed(chain):
            if as_str_dict(parent[segment]) == {}:
                del parent[segment]
            else:
                break
        return Ok(True)
