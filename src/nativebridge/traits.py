"""Shape annotations and their analysis.

Python has no pointers, references or const qualifiers, so bound callables
declare them with the marker generics below. ``shape_of`` turns any
supported annotation into a ``TypeShape`` that drives conversion and the
automatic ownership policy.
"""

import collections.abc
import enum
import threading
import types
import typing
from typing import Any
from typing import Generic
from typing import NewType
from typing import TypeVar

from nativebridge.values import BigInt
from nativebridge.values import ScriptArray
from nativebridge.values import ScriptObject
from nativebridge.values import _Undefined

T = TypeVar("T")

Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
UInt8 = NewType("UInt8", int)
UInt16 = NewType("UInt16", int)
UInt32 = NewType("UInt32", int)
UInt64 = NewType("UInt64", int)
Float32 = NewType("Float32", float)
Float64 = NewType("Float64", float)

_INTEGER_WIDTHS: dict[object, tuple[int, bool]] = {
    Int8: (8, True),
    Int16: (16, True),
    Int32: (32, True),
    Int64: (64, True),
    UInt8: (8, False),
    UInt16: (16, False),
    UInt32: (32, False),
    UInt64: (64, False),
}


class _ShapeMarker:
    """Base of annotation-only marker generics."""

    __slots__ = ()

    def __new__(cls, *args: object, **kwargs: object) -> "_ShapeMarker":
        raise TypeError(f"{cls.__name__} is an annotation marker and cannot be instantiated")


class Pointer(_ShapeMarker, Generic[T]):
    """Pointer-shaped value; ``None`` stands for a null pointer."""

    __slots__ = ()


class Ref(_ShapeMarker, Generic[T]):
    """Lvalue reference to an existing object."""

    __slots__ = ()


class RvalueRef(_ShapeMarker, Generic[T]):
    """Rvalue reference; the object may be moved from."""

    __slots__ = ()


class Shared(_ShapeMarker, Generic[T]):
    """Shared handle to an existing object."""

    __slots__ = ()


class Const(_ShapeMarker, Generic[T]):
    """Const qualifier for any other shape."""

    __slots__ = ()


class ShapeKind(enum.Enum):
    """Kind of value a shape describes."""

    ANY = "any"
    NONE = "none"
    BOOL = "bool"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    ENUM = "enum"
    OPTIONAL = "optional"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    TUPLE = "tuple"
    UNION = "union"
    CALLABLE = "callable"
    SCRIPT_VALUE = "script_value"
    CLASS = "class"


class ValueCategory(enum.Enum):
    """Value category of a bridged class shape."""

    VALUE = "value"
    POINTER = "pointer"
    LVALUE_REF = "lvalue_ref"
    RVALUE_REF = "rvalue_ref"
    SHARED = "shared"


_CATEGORY_BY_MARKER: dict[object, ValueCategory] = {
    Pointer: ValueCategory.POINTER,
    Ref: ValueCategory.LVALUE_REF,
    RvalueRef: ValueCategory.RVALUE_REF,
    Shared: ValueCategory.SHARED,
}

_SCRIPT_VALUE_TYPES: tuple[type, ...] = (ScriptObject, ScriptArray, BigInt, _Undefined)

_SEQUENCE_ORIGINS: dict[object, type] = {
    list: list,
    set: set,
    frozenset: frozenset,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    collections.abc.Set: frozenset,
    collections.abc.MutableSet: set,
}

_MAPPING_ORIGINS: tuple[object, ...] = (
    dict,
    collections.abc.Mapping,
    collections.abc.MutableMapping,
)


class TypeShape:
    """Analysed form of one annotation."""

    __slots__ = (
        "kind",
        "target",
        "category",
        "is_const",
        "args",
        "bits",
        "signed",
        "container",
        "annotation",
    )

    kind: ShapeKind
    target: object
    category: ValueCategory
    is_const: bool
    args: tuple["TypeShape", ...]
    bits: int | None
    signed: bool
    container: type | None
    annotation: object

    def __init__(
        self,
        kind: ShapeKind,
        target: object = None,
        category: ValueCategory = ValueCategory.VALUE,
        is_const: bool = False,
        args: tuple["TypeShape", ...] = (),
        bits: int | None = None,
        signed: bool = True,
        container: type | None = None,
        annotation: object = None,
    ) -> None:
        self.kind = kind
        self.target = target
        self.category = category
        self.is_const = is_const
        self.args = args
        self.bits = bits
        self.signed = signed
        self.container = container
        self.annotation = annotation

    def replace(self, **changes: object) -> "TypeShape":
        """Return a copy of this shape with some fields changed.

        :param changes: Field values to override.
        :returns: New shape.
        """
        fields: dict[str, object] = {name: getattr(self, name) for name in TypeShape.__slots__}
        fields.update(changes)
        return TypeShape(**fields)

    def as_lvalue(self) -> "TypeShape":
        """Return the shape of an lvalue read of this shape.

        Attribute reads and constants are lvalues: a by-value class shape
        becomes an lvalue reference, every other shape is unchanged.

        :returns: Adjusted shape.
        """
        if self.kind is ShapeKind.CLASS and self.category is ValueCategory.VALUE:
            return self.replace(category=ValueCategory.LVALUE_REF)
        return self

    @property
    def is_pointer(self) -> bool:
        return self.category is ValueCategory.POINTER

    @property
    def is_reference(self) -> bool:
        return self.category in (ValueCategory.LVALUE_REF, ValueCategory.RVALUE_REF)

    def describe(self) -> str:
        """Return a readable name for error messages."""
        if self.kind is ShapeKind.CLASS or self.kind is ShapeKind.ENUM:
            name: str = getattr(self.target, "__qualname__", repr(self.target))
            if self.is_const is True:
                name = f"const {name}"
            if self.category is ValueCategory.POINTER:
                return f"{name}*"
            if self.category is ValueCategory.LVALUE_REF:
                return f"{name}&"
            if self.category is ValueCategory.RVALUE_REF:
                return f"{name}&&"
            if self.category is ValueCategory.SHARED:
                return f"shared<{name}>"
            return name
        if len(self.args) > 0:
            inner: str = ", ".join(arg.describe() for arg in self.args)
            return f"{self.kind.value}[{inner}]"
        if self.bits is not None:
            prefix: str = "int" if self.signed is True else "uint"
            if self.kind is ShapeKind.FLOAT:
                prefix = "float"
            return f"{prefix}{self.bits}"
        return self.kind.value

    def __repr__(self) -> str:
        return f"TypeShape({self.describe()})"


ANY_SHAPE: TypeShape = TypeShape(ShapeKind.ANY, annotation=Any)
NONE_SHAPE: TypeShape = TypeShape(ShapeKind.NONE, annotation=None)

_SHAPE_CACHE: dict[object, TypeShape] = {}
_SHAPE_CACHE_LOCK: threading.Lock = threading.Lock()


def _cache_key(annotation: object) -> object:
    """Return an ordered key for ``annotation``.

    Unions compare equal regardless of member order, so ``int | float`` and
    ``float | int`` would share one cache slot. The key spells out every
    argument in declaration order, nested generics included.

    :param annotation: Annotation to key.
    :returns: Hashable key, or an unhashable one the caller must handle.
    """
    if isinstance(annotation, list) is True:
        return ("list", tuple(_cache_key(item) for item in annotation))
    args: tuple[object, ...] = typing.get_args(annotation)
    if len(args) == 0:
        return annotation
    return (typing.get_origin(annotation), tuple(_cache_key(arg) for arg in args))


def shape_of(annotation: object) -> TypeShape:
    """Analyse an annotation.

    :param annotation: Annotation or an existing ``TypeShape``.
    :returns: Analysed shape.
    :raises TypeError: If the annotation is unsupported.
    """
    if isinstance(annotation, TypeShape) is True:
        return annotation
    key: object = _cache_key(annotation)
    try:
        cached: TypeShape | None = _SHAPE_CACHE.get(key)
    except TypeError:
        return _build_shape(annotation, False)
    if cached is not None:
        return cached
    built: TypeShape = _build_shape(annotation, False)
    with _SHAPE_CACHE_LOCK:
        _SHAPE_CACHE[key] = built
    return built


def _build_shape(annotation: object, is_const: bool) -> TypeShape:
    origin: object = typing.get_origin(annotation)
    args: tuple[object, ...] = typing.get_args(annotation)

    if origin is Const:
        return _build_shape(args[0], True)

    marker_category: ValueCategory | None = _CATEGORY_BY_MARKER.get(origin)
    if marker_category is not None:
        inner: TypeShape = _build_shape(args[0], is_const)
        if inner.kind is ShapeKind.CLASS:
            return inner.replace(category=marker_category, annotation=annotation)
        binds_temporary: bool = marker_category is ValueCategory.RVALUE_REF
        if marker_category is ValueCategory.LVALUE_REF and is_const is True:
            binds_temporary = True
        if binds_temporary is True:
            return inner
        raise TypeError(f"{annotation!r}: pointer, reference and shared shapes require a bridged class")

    shape: TypeShape = _build_plain_shape(annotation, origin, args)
    if is_const is True:
        return shape.replace(is_const=True)
    return shape


def _build_plain_shape(annotation: object, origin: object, args: tuple[object, ...]) -> TypeShape:
    if annotation is Any or annotation is object:
        return TypeShape(ShapeKind.ANY, annotation=annotation)
    if annotation is None or annotation is type(None):
        return TypeShape(ShapeKind.NONE, annotation=annotation)
    if annotation is bool:
        return TypeShape(ShapeKind.BOOL, target=bool, annotation=annotation)

    width: tuple[int, bool] | None = _INTEGER_WIDTHS.get(annotation)
    if width is not None:
        return TypeShape(ShapeKind.INTEGER, target=int, bits=width[0], signed=width[1], annotation=annotation)
    if annotation is int:
        return TypeShape(ShapeKind.INTEGER, target=int, annotation=annotation)
    if annotation is Float32:
        return TypeShape(ShapeKind.FLOAT, target=float, bits=32, annotation=annotation)
    if annotation is float or annotation is Float64:
        return TypeShape(ShapeKind.FLOAT, target=float, bits=64, annotation=annotation)
    if annotation in (str, bytes, bytearray):
        return TypeShape(ShapeKind.STRING, target=annotation, annotation=annotation)

    supertype: object = getattr(annotation, "__supertype__", None)
    if supertype is not None:
        return _build_plain_shape(supertype, typing.get_origin(supertype), typing.get_args(supertype))

    if origin is typing.Union or origin is types.UnionType:
        return _build_union_shape(annotation, args)

    if origin is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            element: TypeShape = shape_of(args[0])
            return TypeShape(ShapeKind.SEQUENCE, args=(element,), container=tuple, annotation=annotation)
        items: tuple[TypeShape, ...] = tuple(shape_of(arg) for arg in args)
        return TypeShape(ShapeKind.TUPLE, args=items, container=tuple, annotation=annotation)

    sequence_container: type | None = _SEQUENCE_ORIGINS.get(origin)
    if sequence_container is not None:
        element_shape: TypeShape = ANY_SHAPE
        if len(args) == 1:
            element_shape = shape_of(args[0])
        return TypeShape(ShapeKind.SEQUENCE, args=(element_shape,), container=sequence_container, annotation=annotation)

    if origin in _MAPPING_ORIGINS:
        key_shape: TypeShape = TypeShape(ShapeKind.STRING, target=str, annotation=str)
        value_shape: TypeShape = ANY_SHAPE
        if len(args) == 2:
            key_shape = shape_of(args[0])
            value_shape = shape_of(args[1])
        return TypeShape(ShapeKind.MAPPING, args=(key_shape, value_shape), container=dict, annotation=annotation)

    if origin is collections.abc.Callable:
        return _build_callable_shape(annotation, args)

    if annotation in (list, tuple, set, frozenset):
        return TypeShape(ShapeKind.SEQUENCE, args=(ANY_SHAPE,), container=annotation, annotation=annotation)
    if annotation is dict:
        key_any: TypeShape = TypeShape(ShapeKind.STRING, target=str, annotation=str)
        return TypeShape(ShapeKind.MAPPING, args=(key_any, ANY_SHAPE), container=dict, annotation=annotation)
    if annotation is collections.abc.Callable:
        return TypeShape(ShapeKind.CALLABLE, args=(ANY_SHAPE,), container=None, annotation=annotation)

    if isinstance(annotation, type) is True:
        if issubclass(annotation, enum.Enum) is True:
            return TypeShape(ShapeKind.ENUM, target=annotation, annotation=annotation)
        if issubclass(annotation, _SCRIPT_VALUE_TYPES) is True:
            return TypeShape(ShapeKind.SCRIPT_VALUE, target=annotation, annotation=annotation)
        return TypeShape(ShapeKind.CLASS, target=annotation, annotation=annotation)

    raise TypeError(f"Unsupported annotation for bridging: {annotation!r}")


def _build_union_shape(annotation: object, args: tuple[object, ...]) -> TypeShape:
    non_none: list[object] = [arg for arg in args if arg is not type(None)]
    if len(args) == 2 and len(non_none) == 1:
        inner: TypeShape = shape_of(non_none[0])
        return TypeShape(ShapeKind.OPTIONAL, args=(inner,), annotation=annotation)
    alternatives: tuple[TypeShape, ...] = tuple(shape_of(arg) for arg in args)
    return TypeShape(ShapeKind.UNION, args=alternatives, annotation=annotation)


def _build_callable_shape(annotation: object, args: tuple[object, ...]) -> TypeShape:
    """Build a callable shape; ``args`` holds the return shape first.

    ``container`` is ``None`` for a variadic ``Callable[..., R]``.
    """
    if len(args) != 2:
        return TypeShape(ShapeKind.CALLABLE, args=(ANY_SHAPE,), annotation=annotation)
    parameters: object = args[0]
    return_shape: TypeShape = _return_shape_of(args[1])
    if parameters is Ellipsis:
        return TypeShape(ShapeKind.CALLABLE, args=(return_shape,), annotation=annotation)
    parameter_shapes: tuple[TypeShape, ...] = tuple(shape_of(arg) for arg in parameters)
    return TypeShape(ShapeKind.CALLABLE, args=(return_shape, *parameter_shapes), container=tuple, annotation=annotation)


def _return_shape_of(annotation: object) -> TypeShape:
    if annotation is None or annotation is type(None):
        return NONE_SHAPE
    return shape_of(annotation)


def shape_for_value(value: object) -> TypeShape:
    """Infer a shape from a runtime value with no annotation.

    Bridged class instances are inferred as shared handles: the caller keeps
    its own reference, so the script side neither copies nor takes ownership.

    :param value: Native value.
    :returns: Inferred shape.
    """
    if value is None:
        return NONE_SHAPE
    if isinstance(value, bool) is True:
        return shape_of(bool)
    if isinstance(value, enum.Enum) is True:
        return shape_of(type(value))
    if isinstance(value, int) is True:
        return shape_of(int)
    if isinstance(value, float) is True:
        return shape_of(float)
    if isinstance(value, (str, bytes, bytearray, memoryview)) is True:
        return TypeShape(ShapeKind.STRING, target=str, annotation=str)
    if isinstance(value, _SCRIPT_VALUE_TYPES) is True:
        return TypeShape(ShapeKind.SCRIPT_VALUE, target=object, annotation=object)
    if isinstance(value, collections.abc.Mapping) is True:
        return shape_of(dict)
    if isinstance(value, (list, tuple, set, frozenset)) is True:
        return shape_of(list)
    if isinstance(value, type) is False and callable(value) is True:
        return shape_of(collections.abc.Callable)
    return TypeShape(
        ShapeKind.CLASS,
        target=type(value),
        category=ValueCategory.SHARED,
        annotation=type(value),
    )
