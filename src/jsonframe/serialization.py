"""JSON encoding and decoding of document payloads."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from typing import Any, Mapping

_SCALAR_TARGETS = (str, int, float, bool)


@dataclass(frozen=True)
class JsonCodec:
    """Settings for turning Python values into payloads and back.

    A codec is immutable and passed to each JsonStream explicitly, so two
    streams with different settings never affect each other.

    Attributes:
        omit_none: Drop mapping keys whose value is None when encoding.
            Such keys read back as the target's default, not as null.
        ensure_ascii: Escape non-ASCII characters when encoding
        sort_keys: Sort mapping keys when encoding
    """

    omit_none: bool = True
    ensure_ascii: bool = False
    sort_keys: bool = False

    def encode(self, value: Any) -> str:
        """Serialize a value to compact JSON text.

        Dataclass instances are converted with ``dataclasses.asdict``.

        Raises:
            TypeError: If the value is not JSON serializable
        """
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            value = dataclasses.asdict(value)
        if self.omit_none:
            value = _drop_none(value)
        return json.dumps(
            value,
            ensure_ascii=self.ensure_ascii,
            sort_keys=self.sort_keys,
            separators=(",", ":"),
        )

    def decode(self, text: str | bytes, target: Any = None) -> Any:
        """Parse JSON text, optionally shaping it into ``target``.

        Args:
            text: JSON text (bytes are decoded as UTF-8)
            target: None for plain JSON values; dict, list, str, int, float
                or bool to require that JSON kind; a dataclass type to
                build an instance from a JSON object; any other callable
                is applied to the parsed value

        Raises:
            json.JSONDecodeError: If the text is not valid JSON
            TypeError: If the parsed value does not fit ``target``
        """
        if isinstance(text, (bytes, bytearray)):
            text = text.decode("utf-8")
        value = json.loads(text)
        if target is None:
            return value

        if target in (dict, list) or target in _SCALAR_TARGETS:
            if target is float and type(value) is int:
                return float(value)
            # bool is an int subclass, but a JSON true is not a number
            if not isinstance(value, target) or (target is not bool and isinstance(value, bool)):
                raise TypeError(
                    f"Expected a JSON {_json_kind(target)}, got {_json_kind(type(value))}"
                )
            return value

        if dataclasses.is_dataclass(target) and isinstance(target, type):
            if not isinstance(value, Mapping):
                raise TypeError(
                    f"Expected a JSON object for {target.__name__}, got {_json_kind(type(value))}"
                )
            kwargs: dict[str, Any] = {}
            for f in dataclasses.fields(target):
                if not f.init:
                    continue
                if f.name in value:
                    kwargs[f.name] = value[f.name]
                elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                    # omitted nulls
                    kwargs[f.name] = None
            return target(**kwargs)

        if callable(target):
            return target(value)

        raise TypeError(f"Unsupported decode target: {target!r}")

    def validate(self, data: bytes) -> None:
        """Check that ``data`` is syntactically valid UTF-8 JSON.

        The bytes are decoded strictly, so a byte order mark or another
        Unicode encoding is refused the same way a reader would refuse it.

        Raises:
            UnicodeDecodeError: If ``data`` is not UTF-8
            json.JSONDecodeError: If it is not JSON
        """
        json.loads(data.decode("utf-8"))

    @staticmethod
    def default_for(target: Any) -> Any:
        """Value returned by typed reads at end of stream."""
        if target in (dict, list):
            return target()
        return None


DEFAULT_CODEC = JsonCodec()


def _drop_none(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(v) for v in value]
    return value


def _json_kind(tp: type) -> str:
    if issubclass(tp, Mapping):
        return "object"
    if issubclass(tp, (list, tuple)):
        return "array"
    if issubclass(tp, str):
        return "string"
    if issubclass(tp, bool):
        return "boolean"
    if issubclass(tp, (int, float)):
        return "number"
    if tp is type(None):
        return "null"
    return tp.__name__
