"""
Codecs - request body encoding and response body decoding.

The interceptor only talks to the ``Codec`` protocol. ``JsonCodec`` is the
default: JSON or urlencoded form bodies out, JSON in, with conversion of
decoded JSON into the declared return type (dataclasses, lists, dicts,
``Optional``, enums, primitives).
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import json
import logging
from typing import (
    Any,
    Dict,
    Protocol,
    Union,
    get_args,
    get_origin,
    get_type_hints,
    runtime_checkable,
)
from urllib.parse import urlencode

from .faults import DeserializationError, SerializationError

logger = logging.getLogger("talon.codecs")


@runtime_checkable
class Codec(Protocol):
    """Body codec consumed by the interceptor."""

    def serialize(self, value: Any, target_format: str) -> bytes:
        ...

    def deserialize(self, data: bytes, target_type: Any) -> Any:
        ...

    def content_type(self, target_format: str) -> str:
        ...


class JsonCodec:
    """
    JSON codec - safe, human-readable, cross-language.

    Supported body formats: ``json`` and ``form``.
    """

    CONTENT_TYPES = {
        "json": "application/json",
        "form": "application/x-www-form-urlencoded",
    }

    def __init__(self, *, ensure_ascii: bool = False):
        self.ensure_ascii = ensure_ascii

    def content_type(self, target_format: str) -> str:
        try:
            return self.CONTENT_TYPES[target_format]
        except KeyError:
            raise SerializationError(f"Unsupported body format '{target_format}'")

    def serialize(self, value: Any, target_format: str) -> bytes:
        """Serialize value to bytes in ``target_format``."""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)

        try:
            primitive = to_primitive(value)
            if target_format == "json":
                return json.dumps(primitive, ensure_ascii=self.ensure_ascii).encode("utf-8")
            if target_format == "form":
                if not isinstance(primitive, dict):
                    raise TypeError(f"form bodies need a mapping, got {type(value).__name__}")
                fields = {k: v for k, v in primitive.items() if v is not None}
                return urlencode(fields, doseq=True).encode("utf-8")
        except (TypeError, ValueError, OverflowError) as e:
            logger.warning(f"{target_format} serialization failed: {e}")
            raise SerializationError(
                f"Could not encode {type(value).__name__} as {target_format}: {e}"
            ) from e

        raise SerializationError(f"Unsupported body format '{target_format}'")

    def deserialize(self, data: bytes, target_type: Any) -> Any:
        """Deserialize JSON bytes into ``target_type``."""
        if target_type is bytes:
            return data
        if target_type is str:
            return data.decode("utf-8")

        if not data or not data.strip():
            if _accepts_none(target_type):
                return None
            raise DeserializationError("Response body is empty", target=target_type)

        try:
            value = json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"JSON deserialization failed: {e}")
            raise DeserializationError(f"Response body is not valid JSON: {e}", target=target_type) from e

        return convert(value, target_type)


# ============================================================================
# Value conversion
# ============================================================================

def to_primitive(value: Any) -> Any:
    """Reduce dataclasses, enums and dates to JSON-compatible values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_primitive(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): to_primitive(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_primitive(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise TypeError(f"Object of type {type(value).__name__} is not serializable")


def convert(value: Any, target_type: Any) -> Any:
    """
    Convert decoded JSON into ``target_type``.

    Raises:
        DeserializationError: If the value does not fit the type
    """
    if target_type is Any or target_type is object:
        return value
    if target_type is None or target_type is type(None):
        if value is not None:
            raise DeserializationError(f"Expected null, got {type(value).__name__}", target=target_type)
        return None

    origin = get_origin(target_type)

    if origin is Union or type(target_type).__name__ == "UnionType":
        args = get_args(target_type)
        if value is None and type(None) in args:
            return None
        errors = []
        for arg in args:
            if arg is type(None):
                continue
            try:
                return convert(value, arg)
            except DeserializationError as e:
                errors.append(str(e))
        raise DeserializationError(
            f"Value matches no member of {target_type}: {'; '.join(errors)}",
            target=target_type,
        )

    if origin in (list, set, frozenset, tuple):
        if not isinstance(value, list):
            raise DeserializationError(f"Expected array, got {type(value).__name__}", target=target_type)
        args = get_args(target_type)
        if origin is tuple and args and args[-1] is not Ellipsis:
            if len(args) != len(value):
                raise DeserializationError(
                    f"Expected {len(args)} items, got {len(value)}", target=target_type
                )
            return tuple(convert(v, a) for v, a in zip(value, args))
        item_type = args[0] if args else Any
        return origin(convert(v, item_type) for v in value)

    if origin is dict:
        if not isinstance(value, dict):
            raise DeserializationError(f"Expected object, got {type(value).__name__}", target=target_type)
        args = get_args(target_type)
        value_type = args[1] if len(args) == 2 else Any
        return {k: convert(v, value_type) for k, v in value.items()}

    if not isinstance(target_type, type):
        # Literal, NewType and friends: accept as decoded
        return value

    if dataclasses.is_dataclass(target_type):
        return _convert_dataclass(value, target_type)
    if issubclass(target_type, enum.Enum):
        try:
            return target_type(value)
        except ValueError as e:
            raise DeserializationError(str(e), target=target_type) from e
    if target_type is datetime.datetime or target_type is datetime.date:
        if not isinstance(value, str):
            raise DeserializationError(f"Expected ISO date string, got {type(value).__name__}", target=target_type)
        try:
            return target_type.fromisoformat(value)
        except ValueError as e:
            raise DeserializationError(str(e), target=target_type) from e
    if target_type is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if target_type is bool or target_type is int:
        if isinstance(value, bool) != (target_type is bool) or not isinstance(value, int):
            raise DeserializationError(
                f"Expected {target_type.__name__}, got {type(value).__name__}", target=target_type
            )
        return value
    if target_type is dict:
        return convert(value, Dict[str, Any])
    if target_type in (list, tuple, set, frozenset):
        return convert(value, target_type[Any, ...] if target_type is tuple else target_type[Any])
    if isinstance(value, target_type):
        return value

    raise DeserializationError(
        f"Expected {target_type.__name__}, got {type(value).__name__}",
        target=target_type,
    )


def _convert_dataclass(value: Any, target_type: type) -> Any:
    if not isinstance(value, dict):
        raise DeserializationError(
            f"Expected object for {target_type.__name__}, got {type(value).__name__}",
            target=target_type,
        )

    hints = get_type_hints(target_type)
    kwargs = {}
    for f in dataclasses.fields(target_type):
        if not f.init:
            continue
        if f.name in value:
            try:
                kwargs[f.name] = convert(value[f.name], hints.get(f.name, Any))
            except DeserializationError as e:
                raise DeserializationError(
                    f"{target_type.__name__}.{f.name}: {e.message}", target=target_type
                ) from e
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise DeserializationError(
                f"{target_type.__name__} field '{f.name}' missing from response",
                target=target_type,
            )
    return target_type(**kwargs)


def _accepts_none(target_type: Any) -> bool:
    if target_type is Any or target_type is None or target_type is type(None):
        return True
    if get_origin(target_type) is Union or type(target_type).__name__ == "UnionType":
        return type(None) in get_args(target_type)
    return False
