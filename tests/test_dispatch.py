"""Tests for native callables invoked from script code."""

import threading
from collections.abc import Callable

import pytest

from nativebridge import UNDEFINED
from nativebridge import AccessError
from nativebridge import Arguments
from nativebridge import Const
from nativebridge import ConversionError
from nativebridge import Engine
from nativebridge import EngineScope
from nativebridge import FunctionSignature
from nativebridge import Int32
from nativebridge import Ref
from nativebridge import ScriptClass
from nativebridge import ScriptException
from nativebridge import ScriptFunction
from nativebridge import call
from nativebridge import call_as_constructor
from nativebridge import def_class
from nativebridge import def_static_class
from nativebridge import from_script
from nativebridge import to_script
from nativebridge import wrap_function
from nativebridge import wrap_overload_function
from nativebridge import wrap_script_callback
from nativebridge.adapter import convert_arguments
from nativebridge.traits import shape_of
from tests.fixtures.native_types import Counter
from tests.fixtures.native_types import Point


def _join_str(a: str, b: str) -> str:
    return "str,str"


def _join_int(a: str, b: int) -> str:
    return "str,int"


def _touch_point(point: Ref[Point]) -> str:
    point.x += 1.0
    return "mutable"


def _read_point(point: Const[Ref[Point]]) -> str:
    return "const"


def _copy_point(point: Point) -> str:
    return "copy"


def _register_counter(engine: Engine) -> ScriptClass:
    """Register ``Counter`` with overloaded constructors.

    :param engine: Target engine.
    :returns: Script constructor.
    """
    meta = (
        def_class(Counter)
        .ctor()
        .ctor(int)
        .method("increment", Counter.increment)
        .method("get", Counter.get, const=True)
        .method("fail", Counter.fail)
        .prop("value")
        .build()
    )
    return engine.register_class(meta)


def test_arity_mismatch_is_rejected_before_the_body_runs(engine: Engine) -> None:
    """Calls with the wrong argument count never reach native code."""
    calls: list[int] = []

    def record(value: int) -> None:
        calls.append(value)

    function: ScriptFunction = engine.new_function(wrap_function(record), "record")
    with pytest.raises(ScriptException) as excinfo:
        function()
    assert excinfo.value.kind == "ConversionError"
    assert "argument count mismatch" in excinfo.value.message
    assert isinstance(excinfo.value.__cause__, ConversionError) is True
    assert calls == []
    assert function(3.0) is UNDEFINED
    assert calls == [3]


def test_overloads_resolve_in_declaration_order(engine: Engine) -> None:
    """The first overload whose arguments all convert is chosen."""
    meta = def_static_class("text").func("join", _join_str, _join_int).build()
    engine.register_class(meta)
    join: object = engine.global_this().get("text").get("join")
    assert join("a", "b") == "str,str"
    assert join("a", 1.0) == "str,int"
    with pytest.raises(ScriptException, match="no overload found") as excinfo:
        join(1.0, "a")
    assert excinfo.value.kind == "ConversionError"


def test_overload_function_requires_a_candidate() -> None:
    """An empty overload set is a usage error."""
    with pytest.raises(TypeError):
        wrap_overload_function()


def test_native_exceptions_become_script_exceptions(engine: Engine) -> None:
    """Arbitrary native errors surface with their type name and cause."""
    counter_cls: ScriptClass = _register_counter(engine)
    counter = counter_cls.construct([])
    with pytest.raises(ScriptException) as excinfo:
        counter.get("fail").call(counter, ["boom"])
    assert excinfo.value.kind == "Error"
    assert excinfo.value.message == "ValueError: boom"
    assert isinstance(excinfo.value.__cause__, ValueError) is True
    assert str(excinfo.value) == "Uncaught Error: ValueError: boom"


def test_methods_convert_arguments_and_results(engine: Engine) -> None:
    """Method arguments and results cross with their declared shapes."""
    counter_cls: ScriptClass = _register_counter(engine)
    counter = counter_cls.construct([5.0])
    assert counter.get("increment").call(counter, [2.0]) == 7.0
    assert counter.get("get").call(counter, []) == 7.0
    assert counter.get("value") == 7.0
    counter.set("value", 3.0)
    assert counter.get("get").call(counter, []) == 3.0
    with pytest.raises(ScriptException) as excinfo:
        counter.get("increment").call(counter, ["x"])
    assert excinfo.value.kind == "ConversionError"
    assert "argument 0" in excinfo.value.message


def test_overloaded_constructors(engine: Engine) -> None:
    """Constructor overloads are tried in order."""
    counter_cls: ScriptClass = _register_counter(engine)
    empty = counter_cls.construct([])
    seeded = counter_cls.construct([4.0])
    assert empty.get("value") == 0.0
    assert seeded.get("value") == 4.0
    with pytest.raises(ScriptException, match="no overload found"):
        counter_cls.construct(["x"])


def test_method_requires_a_matching_receiver(engine: Engine) -> None:
    """Calling a method on a foreign receiver is an illegal invocation."""
    counter_cls: ScriptClass = _register_counter(engine)
    counter = counter_cls.construct([])
    with pytest.raises(ScriptException) as excinfo:
        counter.get("get").call(engine.new_object(), [])
    assert excinfo.value.kind == "AccessError"
    assert "Illegal invocation" in excinfo.value.message


def test_raw_callbacks_see_arguments_unconverted(engine: Engine) -> None:
    """A callable taking ``Arguments`` receives the call as is."""
    seen: list[object] = []

    def raw(arguments: Arguments) -> object:
        seen.append(arguments.this)
        return arguments.length()

    signature: FunctionSignature = FunctionSignature.from_callable(raw)
    function: ScriptFunction = engine.new_function(wrap_function(raw))
    assert signature.is_raw is True
    assert function.call("receiver", [1, 2, 3]) == 3
    assert seen == ["receiver"]


def test_signature_reads_annotations() -> None:
    """Unannotated parameters accept anything; variadics are rejected."""

    def mixed(a: Int32, b) -> None:
        return None

    def variadic(*args: int) -> None:
        return None

    signature: FunctionSignature = FunctionSignature.from_callable(mixed)
    assert signature.arity == 2
    assert signature.parameters[0].bits == 32
    assert signature.parameters[1].kind.value == "any"
    assert signature.return_shape.kind.value == "none"
    with pytest.raises(TypeError, match="variadic"):
        FunctionSignature.from_callable(variadic)


def test_native_callable_converted_to_script_function(scope: Engine) -> None:
    """Native callables become script functions that convert their arguments."""

    def add(a: int, b: int) -> int:
        return a + b

    inferred: object = to_script(scope, lambda a, b: a + b)
    typed: object = to_script(scope, add, Callable[[int, int], int])
    assert isinstance(inferred, ScriptFunction) is True
    assert inferred(2.0, 3.0) == 5.0
    assert typed(2.0, 3.0) == 5.0
    with pytest.raises(ScriptException):
        typed("x", 1.0)


def test_script_function_converted_to_native_callable(engine: Engine) -> None:
    """Script functions become native callables that enter the engine themselves."""

    def double(arguments: Arguments) -> object:
        return arguments[0] * 2

    script_function: ScriptFunction = engine.new_function(double, "double")
    with EngineScope(engine):
        native: Callable[[int], int] = from_script(engine, script_function, Callable[[int], int])
    assert native(3) == 6
    assert isinstance(native(3), int) is True
    with pytest.raises(ConversionError, match="argument count mismatch"):
        native(1, 2)


def test_script_callback_usable_from_another_thread(engine: Engine) -> None:
    """Wrapped script callbacks serialize through the engine lock."""
    script_function: ScriptFunction = engine.new_function(lambda arguments: arguments[0] + 1.0)
    native = wrap_script_callback(engine, script_function, [shape_of(int)], shape_of(int))
    results: list[object] = []
    worker: threading.Thread = threading.Thread(target=lambda: results.append(native(41)))
    worker.start()
    worker.join(timeout=5)
    assert results == [42]


def test_call_converts_native_arguments(engine: Engine) -> None:
    """``call`` converts by runtime type and returns the raw script value."""
    script_function: ScriptFunction = engine.new_function(lambda arguments: [arguments.this, *arguments.values])
    result: object = call(engine, script_function, UNDEFINED, 1, "a", None)
    assert result == [UNDEFINED, 1.0, "a", None]


def test_call_as_constructor(engine: Engine) -> None:
    """``call_as_constructor`` runs script construction with native arguments."""
    counter_cls: ScriptClass = _register_counter(engine)
    counter = call_as_constructor(engine, counter_cls, 9)
    assert counter.get("value") == 9.0
    assert engine.get_instance_payload(counter).unwrap(Counter).value == 9


def test_class_constructor_cannot_be_called_as_function(engine: Engine) -> None:
    """Native class constructors require construction syntax."""
    counter_cls: ScriptClass = _register_counter(engine)
    with pytest.raises(ScriptException) as excinfo:
        counter_cls()
    assert excinfo.value.kind == "TypeError"


def test_const_argument_falls_through_to_const_overload(engine: Engine) -> None:
    """A const violation rejects only its own overload."""
    engine.register_class(def_class(Point).ctor(float, float).build())
    engine.register_class(def_static_class("geometry").func("use", _touch_point, _read_point).build())
    use: object = engine.global_this().get("geometry").get("use")
    native: Point = Point(1.0, 2.0)
    const_point: object = engine.to_script(native, Const[Ref[Point]], "reference")
    mutable_point: object = engine.to_script(native, Ref[Point], "reference")
    assert use(const_point) == "const"
    assert native.x == 1.0
    assert use(mutable_point) == "mutable"
    assert native.x == 2.0

    touch: ScriptFunction = engine.new_function(wrap_function(_touch_point))
    with pytest.raises(ScriptException) as excinfo:
        touch(const_point)
    assert excinfo.value.kind == "AccessError"
    assert "argument 0" in excinfo.value.message


def test_missing_copy_hook_falls_through_to_reference_overload(engine: Engine) -> None:
    """An ownership failure rejects only its own overload."""
    engine.register_class(def_class(Point).ctor(float, float).no_copy().build())
    engine.register_class(def_static_class("geometry").func("use", _copy_point, _touch_point).build())
    use: object = engine.global_this().get("geometry").get("use")
    point = engine.get_class_constructor(engine.get_class_meta(Point)).construct([1.0, 2.0])
    assert use(point) == "mutable"

    copy: ScriptFunction = engine.new_function(wrap_function(_copy_point))
    with pytest.raises(ScriptException) as excinfo:
        copy(point)
    assert excinfo.value.kind == "OwnershipError"


def test_argument_conversion_requires_entered_engine(engine: Engine) -> None:
    """A missing scope is not mistaken for a failed overload."""
    signature: FunctionSignature = FunctionSignature.from_callable(_join_str)
    with pytest.raises(AccessError):
        convert_arguments(engine, ["a", "b"], signature.parameters)
    with EngineScope(engine):
        assert convert_arguments(engine, ["a", "b"], signature.parameters).value == ["a", "b"]
