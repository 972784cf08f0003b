"""Tests for script values and annotation shapes."""

from collections.abc import Callable
from typing import Optional

import pytest

from nativebridge import UNDEFINED
from nativebridge import Arguments
from nativebridge import BigInt
from nativebridge import ConversionError
from nativebridge import Const
from nativebridge import Engine
from nativebridge import Int8
from nativebridge import Pointer
from nativebridge import Ref
from nativebridge import RvalueRef
from nativebridge import ScriptArray
from nativebridge import ScriptException
from nativebridge import ScriptFunction
from nativebridge import ScriptObject
from nativebridge import Shared
from nativebridge import UInt16
from nativebridge.traits import ShapeKind
from nativebridge.traits import ValueCategory
from nativebridge.traits import shape_for_value
from nativebridge.traits import shape_of
from nativebridge.values import PropertyAttribute
from nativebridge.values import script_kind
from tests.fixtures.native_types import Color
from tests.fixtures.native_types import Point


def test_undefined_is_a_falsy_singleton() -> None:
    """``UNDEFINED`` is unique and prints like its script counterpart."""
    assert type(UNDEFINED)() is UNDEFINED
    assert bool(UNDEFINED) is False
    assert repr(UNDEFINED) == "undefined"


def test_bigint_requires_int() -> None:
    """Big integers compare by value and reject non-integers."""
    assert BigInt(2**70) == BigInt(2**70)
    assert hash(BigInt(5)) == hash(BigInt(5))
    assert repr(BigInt(5)) == "5n"
    with pytest.raises(TypeError):
        BigInt(True)
    with pytest.raises(TypeError):
        BigInt(1.5)


@pytest.mark.parametrize(
    ("value", "kind"),
    [
        (None, "null"),
        (UNDEFINED, "undefined"),
        (True, "boolean"),
        (1.5, "number"),
        (BigInt(1), "bigint"),
        ("text", "string"),
        (ScriptArray([1]), "array"),
        (ScriptObject(), "object"),
    ],
)
def test_script_kind(value: object, kind: str) -> None:
    """Every script value has one type name."""
    assert script_kind(value) == kind


def test_script_kind_rejects_native_values() -> None:
    """Native objects are not script values."""
    with pytest.raises(ConversionError):
        script_kind(Point())


def test_object_prototype_chain() -> None:
    """Reads follow the prototype chain; writes land on the object itself."""
    prototype: ScriptObject = ScriptObject()
    prototype.set("shared", 1)
    child: ScriptObject = ScriptObject(prototype)
    assert child.get("shared") == 1
    assert child.has("shared") is True
    assert child.has_own("shared") is False
    child.set("shared", 2)
    assert child.get("shared") == 2
    assert prototype.get("shared") == 1
    assert child.get("missing") is UNDEFINED


def test_property_attributes() -> None:
    """Read-only, hidden and permanent slots behave as declared."""
    target: ScriptObject = ScriptObject()
    target.define_own_property("fixed", 1, PropertyAttribute.READ_ONLY | PropertyAttribute.DONT_DELETE)
    target.define_own_property("hidden", 2, PropertyAttribute.DONT_ENUM)
    target.set("plain", 3)
    assert target.own_keys() == ["fixed", "plain"]
    with pytest.raises(ScriptException) as excinfo:
        target.set("fixed", 5)
    assert excinfo.value.kind == "TypeError"
    assert target.delete("fixed") is False
    assert target.delete("plain") is True
    assert target.has_own("plain") is False


def test_accessors() -> None:
    """Accessor properties route reads and writes through callables."""
    store: dict[str, object] = {"value": 1}
    target: ScriptObject = ScriptObject()
    target.define_accessor("value", lambda obj: store["value"], lambda obj, value: store.update(value=value))
    target.define_accessor("frozen", lambda obj: "ice", None)
    target.set("value", 7)
    assert target.get("value") == 7
    assert store["value"] == 7
    with pytest.raises(ScriptException, match="read-only"):
        target.set("frozen", "water")


def test_object_from_mapping() -> None:
    """Plain objects may be built from a mapping."""
    created: ScriptObject = ScriptObject.from_mapping({"a": 1, "b": "two"})
    assert created.own_keys() == ["a", "b"]
    assert repr(created) == "[object Object]"


def test_arguments_past_the_end_are_undefined(engine: Engine) -> None:
    """Missing arguments read as ``UNDEFINED``."""
    arguments: Arguments = Arguments(engine, UNDEFINED, [1, 2])
    assert arguments.length() == 2
    assert arguments[1] == 2
    assert arguments[2] is UNDEFINED
    assert arguments[-1] is UNDEFINED
    assert arguments.has_this() is False
    assert Arguments(engine, ScriptObject(), []).has_this() is True


def test_script_function_call(engine: Engine) -> None:
    """Functions receive the receiver and arguments they were called with."""
    function: ScriptFunction = engine.new_function(lambda arguments: (arguments.this, arguments.length()), "probe")
    assert function.name == "probe"
    assert function.call("self", [1, 2]) == ("self", 2)
    assert function(1) == (UNDEFINED, 1)


def test_markers_cannot_be_instantiated() -> None:
    """Shape markers exist only for annotations."""
    for marker in (Pointer, Ref, RvalueRef, Shared, Const):
        with pytest.raises(TypeError, match="annotation marker"):
            marker()


def test_class_shape_categories() -> None:
    """Markers set the value category of bridged class shapes."""
    assert shape_of(Point).category is ValueCategory.VALUE
    assert shape_of(Pointer[Point]).is_pointer is True
    assert shape_of(Ref[Point]).category is ValueCategory.LVALUE_REF
    assert shape_of(RvalueRef[Point]).is_reference is True
    assert shape_of(Shared[Point]).category is ValueCategory.SHARED
    const_ref = shape_of(Const[Ref[Point]])
    assert const_ref.is_const is True
    assert const_ref.describe() == "const Point&"
    assert shape_of(Pointer[Point]).describe() == "Point*"


def test_reference_markers_on_plain_types() -> None:
    """Only temporaries may bind plain values by reference."""
    with pytest.raises(TypeError, match="bridged class"):
        shape_of(Ref[int])
    with pytest.raises(TypeError, match="bridged class"):
        shape_of(Pointer[str])
    assert shape_of(Const[Ref[str]]).kind is ShapeKind.STRING
    assert shape_of(RvalueRef[int]).kind is ShapeKind.INTEGER


def test_plain_shapes() -> None:
    """Annotations map to the expected shape kinds."""
    assert shape_of(Int8).bits == 8
    assert shape_of(UInt16).signed is False
    assert shape_of(UInt16).describe() == "uint16"
    assert shape_of(int).bits is None
    assert shape_of(Color).kind is ShapeKind.ENUM
    assert shape_of(Optional[int]).kind is ShapeKind.OPTIONAL
    assert shape_of(int | str).kind is ShapeKind.UNION
    assert shape_of(tuple[int, str]).kind is ShapeKind.TUPLE
    assert shape_of(tuple[int, ...]).kind is ShapeKind.SEQUENCE
    assert shape_of(dict[int, str]).args[0].kind is ShapeKind.INTEGER
    assert shape_of(Callable[[int], str]).kind is ShapeKind.CALLABLE
    assert shape_of(ScriptObject).kind is ShapeKind.SCRIPT_VALUE
    assert shape_of(bytes).kind is ShapeKind.STRING
    with pytest.raises(TypeError):
        shape_of("not an annotation")


def test_shapes_inferred_from_values() -> None:
    """Unannotated values get a shape from their runtime type."""
    assert shape_for_value(None).kind is ShapeKind.NONE
    assert shape_for_value(True).kind is ShapeKind.BOOL
    assert shape_for_value(Color.RED).kind is ShapeKind.ENUM
    assert shape_for_value(3).kind is ShapeKind.INTEGER
    assert shape_for_value(Point()).category is ValueCategory.SHARED
