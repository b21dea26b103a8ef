"""Contractless MessagePack codec.

Values are serialized from their runtime shape and materialized from a
target type, without any per-type contract or registry:

- dataclasses are written as maps keyed by field name and read back either
  from such a map (by name) or from an array (by field position);
- generic dataclasses such as ``Envelope[FortDetail]`` have their type
  parameters substituted from the alias arguments;
- pydantic models go through ``model_dump`` / ``model_validate``;
- enums are written as their value, sets and tuples as arrays, timezone-aware
  datetimes as MessagePack timestamps.

Decoding never fills in data that is not on the wire: empty, malformed or
mismatched input raises :class:`EnvelopeDecodeError`.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import Enum
from functools import lru_cache
from typing import Any, Final, Literal, TypeVar, Union, get_args, get_origin

import msgpack
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

MEDIA_TYPE: Final[str] = "application/x-msgpack"
ACCEPTED_MEDIA_TYPES: Final[frozenset[str]] = frozenset(
    {MEDIA_TYPE, "application/msgpack", "application/vnd.msgpack"},
)

_NONE_TYPE = type(None)

# Arrays are unpacked as tuples so they can also serve as map keys.
_ARRAY_TYPES = (list, tuple)


class EnvelopeDecodeError(ValueError):
    """Raised when bytes cannot be materialized into the requested shape."""

    def __init__(self, message: str, path: str = "$") -> None:
        self.path = path
        super().__init__(f"{path}: {message}")


class EnvelopeEncodeError(TypeError):
    """Raised when a value contains something the codec cannot serialize."""


# Encoding


def _default(obj: object) -> object:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    message = f"cannot serialize object of type {type(obj).__name__}"
    raise EnvelopeEncodeError(message)


def pack(value: object) -> bytes:
    """Serialize any supported value to MessagePack bytes."""
    try:
        return msgpack.packb(
            value,
            default=_default,
            use_bin_type=True,
            datetime=True,
        )
    except EnvelopeEncodeError:
        raise
    except (TypeError, ValueError, OverflowError) as e:
        raise EnvelopeEncodeError(str(e)) from e


# Decoding


@lru_cache(maxsize=256)
def _dataclass_layout(cls: type) -> tuple[tuple[dataclasses.Field, Any], ...]:
    hints = typing.get_type_hints(cls)
    return tuple(
        (f, hints.get(f.name, Any)) for f in dataclasses.fields(cls) if f.init
    )


def _substitute(hint: Any, bindings: Mapping[Any, Any]) -> Any:
    if isinstance(hint, TypeVar):
        return bindings.get(hint, Any)
    parameters = getattr(hint, "__parameters__", ())
    if parameters and get_origin(hint) is not None:
        return hint[tuple(bindings.get(p, Any) for p in parameters)]
    return hint


def _has_default(field: dataclasses.Field) -> bool:
    return (
        field.default is not dataclasses.MISSING
        or field.default_factory is not dataclasses.MISSING
    )


def _fail(expected: str, raw: object, path: str) -> typing.NoReturn:
    message = f"expected {expected}, got {type(raw).__name__}"
    raise EnvelopeDecodeError(message, path)


def _materialize_dataclass(
    cls: type,
    arguments: tuple[Any, ...],
    raw: object,
    path: str,
) -> object:
    layout = _dataclass_layout(cls)
    bindings = dict(zip(getattr(cls, "__parameters__", ()), arguments, strict=False))

    if isinstance(raw, Mapping):
        present = {f.name: raw[f.name] for f, _ in layout if f.name in raw}
    elif isinstance(raw, _ARRAY_TYPES):
        if len(raw) > len(layout):
            message = f"{len(raw)} positional members for {len(layout)} fields"
            raise EnvelopeDecodeError(message, path)
        present = {f.name: value for (f, _), value in zip(layout, raw, strict=False)}
    else:
        _fail(f"map or array for {cls.__name__}", raw, path)

    kwargs: dict[str, object] = {}
    for field, hint in layout:
        if field.name not in present:
            if _has_default(field):
                continue
            message = f"missing required member {field.name!r}"
            raise EnvelopeDecodeError(message, path)
        kwargs[field.name] = materialize(
            _substitute(hint, bindings),
            present[field.name],
            f"{path}.{field.name}",
        )

    try:
        return cls(**kwargs)
    except (TypeError, ValueError) as e:
        raise EnvelopeDecodeError(str(e), path) from e


def _materialize_union(arguments: tuple[Any, ...], raw: object, path: str) -> object:
    if raw is None and _NONE_TYPE in arguments:
        return None
    errors = []
    for option in arguments:
        if option is _NONE_TYPE:
            continue
        try:
            return materialize(option, raw, path)
        except EnvelopeDecodeError as e:
            errors.append(str(e))
    message = "no union member matched (" + "; ".join(errors) + ")"
    raise EnvelopeDecodeError(message, path)


def _materialize_tuple(arguments: tuple[Any, ...], raw: Sequence, path: str) -> tuple:
    if not arguments:
        return tuple(raw)
    if len(arguments) == 2 and arguments[1] is Ellipsis:
        return tuple(
            materialize(arguments[0], item, f"{path}[{i}]") for i, item in enumerate(raw)
        )
    if len(arguments) != len(raw):
        message = f"expected {len(arguments)} items, got {len(raw)}"
        raise EnvelopeDecodeError(message, path)
    return tuple(
        materialize(hint, item, f"{path}[{i}]")
        for i, (hint, item) in enumerate(zip(arguments, raw, strict=True))
    )


def _plain(raw: object) -> object:
    """Untyped view of unpacked data: arrays as lists, map keys left hashable."""
    if isinstance(raw, tuple):
        return [_plain(item) for item in raw]
    if isinstance(raw, dict):
        return {key: _plain(value) for key, value in raw.items()}
    return raw


def _materialize_scalar(shape: type, raw: object, path: str) -> object:
    if shape is bool:
        if not isinstance(raw, bool):
            _fail("bool", raw, path)
        return raw
    if shape is int:
        if isinstance(raw, bool) or not isinstance(raw, int):
            _fail("int", raw, path)
        return raw
    if shape is float:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            _fail("float", raw, path)
        return float(raw)
    if shape is str:
        if not isinstance(raw, str):
            _fail("str", raw, path)
        return raw
    if shape is bytes:
        if not isinstance(raw, bytes):
            _fail("bytes", raw, path)
        return raw
    if shape is datetime:
        if not isinstance(raw, datetime):
            _fail("timestamp", raw, path)
        return raw
    if issubclass(shape, Enum):
        if isinstance(raw, bool):
            _fail(shape.__name__, raw, path)
        try:
            return shape(raw)
        except ValueError as e:
            raise EnvelopeDecodeError(str(e), path) from e
    if issubclass(shape, BaseModel):
        try:
            return shape.model_validate(_plain(raw))
        except PydanticValidationError as e:
            raise EnvelopeDecodeError(str(e), path) from e
    if dataclasses.is_dataclass(shape):
        return _materialize_dataclass(shape, (), raw, path)
    if isinstance(raw, shape):
        return raw
    _fail(shape.__name__, raw, path)


def _materialize_key(shape: Any, raw: object, path: str) -> object:
    if shape is Any or shape is object:
        # Untyped array keys stay tuples; lists are not hashable.
        return raw
    return materialize(shape, raw, f"{path}<key>")


def materialize(shape: Any, raw: object, path: str = "$") -> object:
    """Convert plain unpacked MessagePack data into an instance of ``shape``."""
    if shape is Any or shape is object:
        return _plain(raw)
    if shape is None or shape is _NONE_TYPE:
        if raw is not None:
            _fail("nil", raw, path)
        return None

    origin = get_origin(shape)
    arguments = get_args(shape)
    if origin is None and shape in (list, set, frozenset, tuple, dict):
        origin = shape

    if origin is None:
        if isinstance(shape, type):
            return _materialize_scalar(shape, raw, path)
        message = f"unsupported shape {shape!r}"
        raise EnvelopeDecodeError(message, path)

    if origin is Union or origin is types.UnionType:
        return _materialize_union(arguments, raw, path)
    if origin is Literal:
        if raw not in arguments:
            message = f"expected one of {arguments!r}, got {raw!r}"
            raise EnvelopeDecodeError(message, path)
        return raw
    if dataclasses.is_dataclass(origin):
        return _materialize_dataclass(origin, arguments, raw, path)

    if origin in (list, set, frozenset, tuple) or origin is Sequence:
        if not isinstance(raw, _ARRAY_TYPES):
            _fail("array", raw, path)
        if origin is tuple:
            return _materialize_tuple(arguments, raw, path)
        item_shape = arguments[0] if arguments else Any
        items = [
            materialize(item_shape, item, f"{path}[{i}]") for i, item in enumerate(raw)
        ]
        if origin is list or origin is Sequence:
            return items
        try:
            return origin(items)
        except TypeError as e:
            raise EnvelopeDecodeError(str(e), path) from e

    if origin is dict or origin is Mapping:
        if not isinstance(raw, dict):
            _fail("map", raw, path)
        key_shape, value_shape = arguments or (Any, Any)
        return {
            _materialize_key(key_shape, key, path): materialize(
                value_shape,
                value,
                f"{path}[{key!r}]",
            )
            for key, value in raw.items()
        }

    message = f"unsupported shape {shape!r}"
    raise EnvelopeDecodeError(message, path)


def unpack(data: bytes, shape: Any = Any) -> Any:
    """Decode MessagePack ``data`` into an instance of ``shape``."""
    if not data:
        message = "empty body"
        raise EnvelopeDecodeError(message)
    try:
        raw = msgpack.unpackb(
            data,
            raw=False,
            use_list=False,
            strict_map_key=False,
            timestamp=3,
        )
    except (ValueError, TypeError, msgpack.UnpackException) as e:
        message = f"malformed MessagePack: {e}"
        raise EnvelopeDecodeError(message) from e
    return materialize(shape, raw)
