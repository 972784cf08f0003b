"""Bidirectional conversion between native values and script values."""

import collections.abc
import enum
import math
import struct
import threading
from typing import TYPE_CHECKING

from nativebridge.errors import BridgeError
from nativebridge.errors import ConversionError
from nativebridge.policy import ReturnValuePolicy
from nativebridge.policy import class_from_script
from nativebridge.policy import class_to_script
from nativebridge.policy import normalize_policy
from nativebridge.scope import ensure_scope
from nativebridge.traits import ShapeKind
from nativebridge.traits import TypeShape
from nativebridge.traits import ValueCategory
from nativebridge.traits import shape_for_value
from nativebridge.traits import shape_of
from nativebridge.values import BigInt
from nativebridge.values import InstanceProxy
from nativebridge.values import ScriptArray
from nativebridge.values import ScriptFunction
from nativebridge.values import ScriptObject
from nativebridge.values import is_null_or_undefined
from nativebridge.values import script_kind

if TYPE_CHECKING:
    from nativebridge.engine import Engine

MAX_SAFE_INTEGER: int = 2**53 - 1
_STRING_LIKE: tuple[type, ...] = (str, bytes, bytearray, memoryview)


class ConversionResult:
    """Outcome of one conversion attempt, used where failure is expected."""

    __slots__ = ("ok", "value", "error")

    ok: bool
    value: object
    error: BridgeError | None

    def __init__(self, ok: bool, value: object = None, error: BridgeError | None = None) -> None:
        self.ok = ok
        self.value = value
        self.error = error

    @classmethod
    def success(cls, value: object) -> "ConversionResult":
        return cls(True, value, None)

    @classmethod
    def failure(cls, error: BridgeError) -> "ConversionResult":
        return cls(False, None, error)

    def unwrap(self) -> object:
        """Return the converted value or raise the recorded error.

        :returns: Converted value.
        :raises BridgeError: If the attempt failed.
        """
        if self.ok is False:
            raise self.error
        return self.value

    def __repr__(self) -> str:
        if self.ok is True:
            return f"ConversionResult.success({self.value!r})"
        return f"ConversionResult.failure({self.error!r})"


class TypeConverter:
    """Custom converter for one native type.

    Subclasses override both directions. Registered converters take
    precedence over the built-in rules for their type and its subclasses.
    """

    def to_script(
        self,
        engine: "Engine",
        value: object,
        shape: TypeShape,
        policy: ReturnValuePolicy,
        parent: object,
    ) -> object:
        raise NotImplementedError

    def from_script(self, engine: "Engine", value: object, shape: TypeShape) -> object:
        raise NotImplementedError


class ConverterRegistry:
    """Custom converters keyed by native type."""

    _converters: dict[type, TypeConverter]
    _lock: threading.Lock

    def __init__(self) -> None:
        self._converters = {}
        self._lock = threading.Lock()

    def register(self, native_type: type, converter: TypeConverter) -> None:
        """Register ``converter`` for ``native_type`` and its subclasses.

        :param native_type: Native type.
        :param converter: Converter instance.
        :raises TypeError: If ``native_type`` is not a class.
        """
        if isinstance(native_type, type) is False:
            raise TypeError("native_type must be a class")
        with self._lock:
            self._converters[native_type] = converter

    def unregister(self, native_type: type) -> None:
        with self._lock:
            self._converters.pop(native_type, None)

    def find(self, native_type: object) -> TypeConverter | None:
        """Return the converter of the nearest registered type in the MRO."""
        if isinstance(native_type, type) is False:
            return None
        with self._lock:
            if len(self._converters) == 0:
                return None
            for candidate in native_type.__mro__:
                converter: TypeConverter | None = self._converters.get(candidate)
                if converter is not None:
                    return converter
        return None

    def copy(self) -> "ConverterRegistry":
        copied: ConverterRegistry = ConverterRegistry()
        with self._lock:
            copied._converters = dict(self._converters)
        return copied


DEFAULT_CONVERTERS: ConverterRegistry = ConverterRegistry()


def register_converter(native_type: type, converter: TypeConverter) -> None:
    """Register a process-wide custom converter."""
    DEFAULT_CONVERTERS.register(native_type, converter)


def _describe_value(value: object) -> str:
    try:
        return script_kind(value)
    except ConversionError:
        return type(value).__qualname__


def _mismatch(shape: TypeShape, value: object) -> ConversionError:
    return ConversionError(f"Cannot convert {_describe_value(value)} to {shape.describe()}")


def to_script(
    engine: "Engine",
    value: object,
    shape: object = None,
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    parent: object = None,
) -> object:
    """Convert a native value into a script value.

    :param engine: Current engine; must be entered on this thread.
    :param value: Native value.
    :param shape: Annotation or shape of ``value``; inferred when ``None``.
    :param policy: Ownership policy for bridged class instances.
    :param parent: Receiver object for ``REFERENCE_INTERNAL``.
    :returns: Script value.
    :raises AccessError: If ``engine`` is not entered.
    :raises ConversionError: If ``value`` does not match ``shape``.
    """
    ensure_scope(engine)
    resolved_shape: TypeShape = shape_for_value(value) if shape is None else shape_of(shape)
    return _to_script(engine, value, resolved_shape, normalize_policy(policy), parent)


def from_script(engine: "Engine", value: object, shape: object) -> object:
    """Convert a script value into the native value ``shape`` requests.

    :param engine: Current engine; must be entered on this thread.
    :param value: Script value.
    :param shape: Annotation or shape of the requested native value.
    :returns: Native value.
    :raises AccessError: If ``engine`` is not entered, or on const violations.
    :raises ConversionError: If ``value`` does not match ``shape``.
    """
    ensure_scope(engine)
    return _from_script(engine, value, shape_of(shape))


def try_from_script(engine: "Engine", value: object, shape: object) -> ConversionResult:
    """Convert like ``from_script`` but report mismatches as a result object.

    :param engine: Current engine.
    :param value: Script value.
    :param shape: Requested annotation or shape.
    :returns: Success with the native value, or failure with the error.
    """
    try:
        return ConversionResult.success(from_script(engine, value, shape))
    except ConversionError as error:
        return ConversionResult.failure(error)


def _to_script(
    engine: "Engine",
    value: object,
    shape: TypeShape,
    policy: ReturnValuePolicy,
    parent: object,
) -> object:
    custom: TypeConverter | None = engine.converters.find(shape.target)
    if custom is not None and shape.kind in (ShapeKind.CLASS, ShapeKind.ENUM):
        return custom.to_script(engine, value, shape, policy, parent)

    kind: ShapeKind = shape.kind
    if kind is ShapeKind.ANY:
        return _to_script(engine, value, shape_for_value(value), policy, parent)
    if kind is ShapeKind.NONE:
        if value is not None:
            raise _mismatch(shape, value)
        return None
    if kind is ShapeKind.BOOL:
        if isinstance(value, bool) is False:
            raise _mismatch(shape, value)
        return value
    if kind is ShapeKind.INTEGER:
        return _integer_to_script(value, shape)
    if kind is ShapeKind.FLOAT:
        return _float_to_script(value, shape)
    if kind is ShapeKind.STRING:
        return _string_to_script(value, shape)
    if kind is ShapeKind.ENUM:
        return _enum_to_script(value, shape)
    if kind is ShapeKind.OPTIONAL:
        if value is None:
            return None
        return _to_script(engine, value, shape.args[0], policy, parent)
    if kind is ShapeKind.SEQUENCE:
        if isinstance(value, _STRING_LIKE) is True or isinstance(value, collections.abc.Mapping) is True:
            raise _mismatch(shape, value)
        if isinstance(value, collections.abc.Iterable) is False:
            raise _mismatch(shape, value)
        element: TypeShape = shape.args[0]
        return ScriptArray(_to_script(engine, item, element, ReturnValuePolicy.AUTOMATIC, None) for item in value)
    if kind is ShapeKind.MAPPING:
        return _mapping_to_script(engine, value, shape)
    if kind is ShapeKind.TUPLE:
        if isinstance(value, (tuple, list)) is False or len(value) != len(shape.args):
            raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
        return ScriptArray(
            _to_script(engine, item, item_shape, ReturnValuePolicy.AUTOMATIC, None)
            for item, item_shape in zip(value, shape.args)
        )
    if kind is ShapeKind.UNION:
        return _union_to_script(engine, value, shape, policy, parent)
    if kind is ShapeKind.CALLABLE:
        return _callable_to_script(engine, value, shape)
    if kind is ShapeKind.SCRIPT_VALUE:
        if isinstance(value, shape.target) is False:
            raise _mismatch(shape, value)
        return value
    return class_to_script(engine, value, shape, policy, parent)


def _from_script(engine: "Engine", value: object, shape: TypeShape) -> object:
    custom: TypeConverter | None = engine.converters.find(shape.target)
    if custom is not None and shape.kind in (ShapeKind.CLASS, ShapeKind.ENUM):
        return custom.from_script(engine, value, shape)

    kind: ShapeKind = shape.kind
    if kind is ShapeKind.ANY:
        return value
    if kind is ShapeKind.NONE:
        if is_null_or_undefined(value) is False:
            raise _mismatch(shape, value)
        return None
    if kind is ShapeKind.BOOL:
        if isinstance(value, bool) is False:
            raise _mismatch(shape, value)
        return value
    if kind is ShapeKind.INTEGER:
        return _integer_from_script(value, shape)
    if kind is ShapeKind.FLOAT:
        return _float_from_script(value, shape)
    if kind is ShapeKind.STRING:
        if isinstance(value, str) is False:
            raise _mismatch(shape, value)
        if shape.target is bytes:
            return value.encode("utf-8")
        if shape.target is bytearray:
            return bytearray(value.encode("utf-8"))
        return value
    if kind is ShapeKind.ENUM:
        return _enum_from_script(value, shape)
    if kind is ShapeKind.OPTIONAL:
        if is_null_or_undefined(value) is True:
            return None
        return _from_script(engine, value, shape.args[0])
    if kind is ShapeKind.SEQUENCE:
        if isinstance(value, list) is False:
            raise _mismatch(shape, value)
        element: TypeShape = shape.args[0]
        items: list[object] = [_from_script(engine, item, element) for item in value]
        container: type = shape.container if shape.container is not None else list
        if container is list:
            return items
        return container(items)
    if kind is ShapeKind.MAPPING:
        return _mapping_from_script(engine, value, shape)
    if kind is ShapeKind.TUPLE:
        if isinstance(value, list) is False or len(value) != len(shape.args):
            raise ConversionError(f"Cannot convert {_describe_value(value)} to {shape.describe()}: length mismatch")
        return tuple(_from_script(engine, item, item_shape) for item, item_shape in zip(value, shape.args))
    if kind is ShapeKind.UNION:
        for alternative in shape.args:
            try:
                return _from_script(engine, value, alternative)
            except ConversionError:
                continue
        raise ConversionError(f"Cannot convert {_describe_value(value)} to {shape.describe()}: no matching type found")
    if kind is ShapeKind.CALLABLE:
        return _callable_from_script(engine, value, shape)
    if kind is ShapeKind.SCRIPT_VALUE:
        if isinstance(value, shape.target) is False:
            raise _mismatch(shape, value)
        return value
    return class_from_script(engine, value, shape)


def _integer_to_script(value: object, shape: TypeShape) -> object:
    if isinstance(value, int) is False or isinstance(value, bool) is True:
        raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
    if shape.bits is None:
        if abs(value) <= MAX_SAFE_INTEGER:
            return float(value)
        return BigInt(value)
    low, high = _integer_bounds(shape.bits, shape.signed)
    if value < low or value > high:
        raise ConversionError(f"{value} is out of range for {shape.describe()}")
    if shape.bits == 64:
        return BigInt(value)
    return float(value)


def _integer_bounds(bits: int, signed: bool) -> tuple[int, int]:
    if signed is True:
        return -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    return 0, 2**bits - 1


def _wrap_integer(value: int, bits: int, signed: bool) -> int:
    """Reduce ``value`` modulo ``2**bits`` as a two's-complement integer."""
    wrapped: int = value & ((1 << bits) - 1)
    if signed is True and wrapped >= 1 << (bits - 1):
        wrapped -= 1 << bits
    return wrapped


def _integer_from_script(value: object, shape: TypeShape) -> int:
    integral: int
    if isinstance(value, BigInt) is True:
        integral = value.value
    elif isinstance(value, (int, float)) is True and isinstance(value, bool) is False:
        if math.isfinite(value) is False:
            raise ConversionError(f"Cannot convert non-finite number to {shape.describe()}")
        integral = math.trunc(value)
    else:
        raise _mismatch(shape, value)
    if shape.bits is None:
        return integral
    return _wrap_integer(integral, shape.bits, shape.signed)


def _narrow_float32(value: float) -> float:
    try:
        return struct.unpack("f", struct.pack("f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _float_to_script(value: object, shape: TypeShape) -> float:
    if isinstance(value, (int, float)) is False or isinstance(value, bool) is True:
        raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
    converted: float = float(value)
    if shape.bits == 32:
        return _narrow_float32(converted)
    return converted


def _float_from_script(value: object, shape: TypeShape) -> float:
    converted: float
    if isinstance(value, BigInt) is True:
        converted = float(value.value)
    elif isinstance(value, (int, float)) is True and isinstance(value, bool) is False:
        converted = float(value)
    else:
        raise _mismatch(shape, value)
    if shape.bits == 32:
        return _narrow_float32(converted)
    return converted


def _string_to_script(value: object, shape: TypeShape) -> str:
    if isinstance(value, str) is True:
        return value
    if isinstance(value, (bytes, bytearray, memoryview)) is True:
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as error:
            raise ConversionError(f"String value is not valid UTF-8: {error}") from error
    raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")


def _enum_to_script(value: object, shape: TypeShape) -> float:
    if isinstance(value, shape.target) is False:
        raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
    underlying: object = value.value
    if isinstance(underlying, int) is False or isinstance(underlying, bool) is True:
        raise ConversionError(f"Enum {shape.describe()} has a non-integral value for {value.name}")
    return float(underlying)


def _enum_from_script(value: object, shape: TypeShape) -> enum.Enum:
    integral: int = _integer_from_script(value, TypeShape(ShapeKind.INTEGER, target=int))
    try:
        return shape.target(integral)
    except ValueError as error:
        raise ConversionError(f"{integral} is not a valid {shape.describe()}") from error


def _mapping_to_script(engine: "Engine", value: object, shape: TypeShape) -> ScriptObject:
    if isinstance(value, collections.abc.Mapping) is False:
        raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
    key_shape, value_shape = shape.args
    if key_shape.kind is not ShapeKind.STRING:
        raise ConversionError(f"Mapping keys must be string-like, got {key_shape.describe()}")
    created: ScriptObject = ScriptObject()
    for key, item in value.items():
        if isinstance(key, _STRING_LIKE) is False:
            raise ConversionError(f"Mapping keys must be string-like, got {type(key).__qualname__}")
        script_key: str = _string_to_script(key, key_shape)
        created.set(script_key, _to_script(engine, item, value_shape, ReturnValuePolicy.AUTOMATIC, None))
    return created


def _mapping_from_script(engine: "Engine", value: object, shape: TypeShape) -> dict[object, object]:
    if (
        isinstance(value, ScriptObject) is False
        or isinstance(value, (ScriptFunction, InstanceProxy)) is True
    ):
        raise _mismatch(shape, value)
    key_shape, value_shape = shape.args
    if key_shape.kind is not ShapeKind.STRING:
        raise ConversionError(f"Mapping keys must be string-like, got {key_shape.describe()}")
    converted: dict[object, object] = {}
    for key in value.own_keys():
        native_key: object = _from_script(engine, key, key_shape)
        converted[native_key] = _from_script(engine, value.get(key), value_shape)
    return converted


def _matches_native(shape: TypeShape, value: object) -> bool:
    """Report whether ``value`` is the active case for alternative ``shape``."""
    kind: ShapeKind = shape.kind
    if kind is ShapeKind.ANY:
        return True
    if kind is ShapeKind.NONE:
        return value is None
    if kind is ShapeKind.BOOL:
        return isinstance(value, bool)
    if kind is ShapeKind.INTEGER:
        return isinstance(value, int) is True and isinstance(value, bool) is False
    if kind is ShapeKind.FLOAT:
        return isinstance(value, float)
    if kind is ShapeKind.STRING:
        return isinstance(value, _STRING_LIKE)
    if kind is ShapeKind.ENUM or kind is ShapeKind.SCRIPT_VALUE:
        return isinstance(value, shape.target)
    if kind is ShapeKind.OPTIONAL:
        return value is None or _matches_native(shape.args[0], value)
    if kind is ShapeKind.SEQUENCE:
        return isinstance(value, (list, tuple, set, frozenset))
    if kind is ShapeKind.MAPPING:
        return isinstance(value, collections.abc.Mapping)
    if kind is ShapeKind.TUPLE:
        return isinstance(value, tuple) is True and len(value) == len(shape.args)
    if kind is ShapeKind.UNION:
        return any(_matches_native(alternative, value) for alternative in shape.args)
    if kind is ShapeKind.CALLABLE:
        return callable(value) is True and isinstance(value, type) is False
    if value is None:
        return shape.category is ValueCategory.POINTER or shape.category is ValueCategory.SHARED
    return isinstance(value, shape.target)


def _union_to_script(
    engine: "Engine",
    value: object,
    shape: TypeShape,
    policy: ReturnValuePolicy,
    parent: object,
) -> object:
    for alternative in shape.args:
        if _matches_native(alternative, value) is True:
            return _to_script(engine, value, alternative, policy, parent)
    for alternative in shape.args:
        try:
            return _to_script(engine, value, alternative, policy, parent)
        except ConversionError:
            continue
    raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}: no matching type found")


def _callable_to_script(engine: "Engine", value: object, shape: TypeShape) -> ScriptFunction:
    if isinstance(value, ScriptFunction) is True:
        return value
    if callable(value) is False:
        raise ConversionError(f"Cannot convert {type(value).__qualname__} to {shape.describe()}")
    from nativebridge import adapter

    callback = adapter.wrap_callable_for_shape(value, shape)
    name: str = getattr(value, "__name__", "")
    return engine.new_function(callback, name)


def _callable_from_script(engine: "Engine", value: object, shape: TypeShape) -> object:
    if isinstance(value, ScriptFunction) is False:
        raise _mismatch(shape, value)
    from nativebridge import adapter

    parameter_shapes: tuple[TypeShape, ...] | None = None
    if shape.container is tuple:
        parameter_shapes = shape.args[1:]
    return adapter.wrap_script_callback(engine, value, parameter_shapes, shape.args[0])
