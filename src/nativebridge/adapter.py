"""Adapters between native callables and script-callable callbacks."""

import inspect
import typing
from collections.abc import Callable
from collections.abc import Sequence
from typing import TYPE_CHECKING

from nativebridge.converter import ConversionResult
from nativebridge.converter import from_script
from nativebridge.converter import to_script
from nativebridge.errors import AccessError
from nativebridge.errors import BridgeError
from nativebridge.errors import ConversionError
from nativebridge.errors import OwnershipError
from nativebridge.meta import ConstructorCallback
from nativebridge.meta import FunctionCallback
from nativebridge.meta import GetterCallback
from nativebridge.meta import InstanceEqualsCallback
from nativebridge.meta import InstanceGetterCallback
from nativebridge.meta import InstanceMethodCallback
from nativebridge.meta import InstanceSetterCallback
from nativebridge.meta import SetterCallback
from nativebridge.policy import ReturnValuePolicy
from nativebridge.policy import normalize_policy
from nativebridge.scope import EngineScope
from nativebridge.scope import ensure_scope
from nativebridge.traits import ANY_SHAPE
from nativebridge.traits import NONE_SHAPE
from nativebridge.traits import ShapeKind
from nativebridge.traits import TypeShape
from nativebridge.traits import shape_of
from nativebridge.values import UNDEFINED
from nativebridge.values import Arguments
from nativebridge.values import ScriptClass
from nativebridge.values import ScriptFunction
from nativebridge.values import ScriptObject

if TYPE_CHECKING:
    from nativebridge.engine import Engine
    from nativebridge.instance import InstancePayload

_NO_RECEIVER: object = object()


class FunctionSignature:
    """Parameter and return shapes of one bound callable."""

    __slots__ = ("parameters", "return_shape", "name", "is_raw")

    parameters: tuple[TypeShape, ...]
    return_shape: TypeShape
    name: str
    is_raw: bool

    def __init__(
        self,
        parameters: Sequence[TypeShape],
        return_shape: TypeShape,
        name: str = "",
        is_raw: bool = False,
    ) -> None:
        self.parameters = tuple(parameters)
        self.return_shape = return_shape
        self.name = name
        self.is_raw = is_raw

    @property
    def arity(self) -> int:
        return len(self.parameters)

    @classmethod
    def from_shapes(
        cls,
        parameters: Sequence[object],
        return_annotation: object = None,
        name: str = "",
    ) -> "FunctionSignature":
        """Build a signature from explicit annotations.

        :param parameters: Parameter annotations or shapes.
        :param return_annotation: Return annotation; ``None`` means no result.
        :param name: Name used in error messages.
        :returns: Signature.
        """
        return_shape: TypeShape = NONE_SHAPE if return_annotation is None else shape_of(return_annotation)
        return cls([shape_of(parameter) for parameter in parameters], return_shape, name)

    @classmethod
    def from_callable(cls, fn: Callable[..., object], skip_first: bool = False) -> "FunctionSignature":
        """Read a signature from a callable's annotations.

        Unannotated parameters accept any script value and an unannotated
        return is converted from its runtime value. A callable taking one
        ``Arguments`` parameter is a raw callback and sees the call as is.

        :param fn: Callable to inspect.
        :param skip_first: Skip the receiver parameter of an unbound method.
        :returns: Signature.
        :raises TypeError: If ``fn`` has no signature or takes ``*args`` or
            ``**kwargs``.
        """
        name: str = getattr(fn, "__qualname__", getattr(fn, "__name__", repr(fn)))
        try:
            signature: inspect.Signature = inspect.signature(fn)
        except (TypeError, ValueError) as error:
            raise TypeError(f"Cannot bind {name}: no inspectable signature") from error
        try:
            hints: dict[str, object] = typing.get_type_hints(fn)
        except (NameError, TypeError):
            hints = {}

        parameters: list[inspect.Parameter] = list(signature.parameters.values())
        if skip_first is True and len(parameters) > 0:
            parameters = parameters[1:]

        shapes: list[TypeShape] = []
        for parameter in parameters:
            if parameter.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                raise TypeError(f"Cannot bind {name}: variadic parameters are not supported")
            annotation: object = hints.get(parameter.name, parameter.annotation)
            if annotation is inspect.Parameter.empty:
                shapes.append(ANY_SHAPE)
                continue
            if annotation is Arguments and len(parameters) == 1:
                return cls((), ANY_SHAPE, name, is_raw=True)
            shapes.append(shape_of(annotation))

        return_annotation: object = hints.get("return", signature.return_annotation)
        return_shape: TypeShape = ANY_SHAPE
        if return_annotation is None or return_annotation is type(None):
            return_shape = NONE_SHAPE
        elif return_annotation is not inspect.Signature.empty:
            return_shape = shape_of(return_annotation)
        return cls(shapes, return_shape, name)

    def __repr__(self) -> str:
        parameters: str = ", ".join(shape.describe() for shape in self.parameters)
        return f"FunctionSignature({self.name}({parameters}) -> {self.return_shape.describe()})"


def convert_arguments(
    engine: "Engine",
    values: Sequence[object],
    shapes: Sequence[TypeShape],
) -> ConversionResult:
    """Convert every script argument of one call, all or nothing.

    Const violations and ownership failures of an argument count as a failed
    conversion, so overload dispatch moves on to the next candidate.

    :param engine: Current engine.
    :param values: Script arguments.
    :param shapes: Parameter shapes.
    :returns: Success with the native argument list, or the first failure.
    :raises AccessError: If ``engine`` is not entered on this thread.
    """
    if len(values) != len(shapes):
        return ConversionResult.failure(
            ConversionError(f"argument count mismatch: expected {len(shapes)}, got {len(values)}")
        )
    ensure_scope(engine)
    converted: list[object] = []
    for index, (value, shape) in enumerate(zip(values, shapes)):
        try:
            converted.append(from_script(engine, value, shape))
        except (ConversionError, AccessError, OwnershipError) as error:
            failure: BridgeError = type(error)(f"argument {index}: {error.message}")
            failure.__cause__ = error
            return ConversionResult.failure(failure)
    return ConversionResult.success(converted)


class NativeCallable:
    """One native callable bound with its signature and return policy."""

    __slots__ = ("fn", "signature", "policy", "converts_result")

    fn: Callable[..., object]
    signature: FunctionSignature
    policy: ReturnValuePolicy
    converts_result: bool

    def __init__(
        self,
        fn: Callable[..., object],
        signature: FunctionSignature,
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
        converts_result: bool = True,
    ) -> None:
        self.fn = fn
        self.signature = signature
        self.policy = normalize_policy(policy)
        self.converts_result = converts_result

    def try_convert(self, arguments: Arguments) -> ConversionResult:
        if self.signature.is_raw is True:
            return ConversionResult.success([arguments])
        return convert_arguments(arguments.engine, arguments.values, self.signature.parameters)

    def invoke(self, arguments: Arguments, converted: list[object], receiver: object = _NO_RECEIVER) -> object:
        """Run the callable with converted arguments and convert its result.

        :param arguments: Original call arguments.
        :param converted: Native arguments from ``try_convert``.
        :param receiver: Native receiver prepended for methods.
        :returns: Script value, or the native result for constructors.
        """
        if receiver is _NO_RECEIVER:
            result: object = self.fn(*converted)
        else:
            result = self.fn(receiver, *converted)
        if self.converts_result is False or self.signature.is_raw is True:
            return result
        if self.signature.return_shape.kind is ShapeKind.NONE:
            return UNDEFINED
        parent: object = arguments.this if isinstance(arguments.this, ScriptObject) is True else None
        return to_script(arguments.engine, result, self.signature.return_shape, self.policy, parent)


def dispatch_overloads(
    candidates: Sequence[NativeCallable],
    arguments: Arguments,
    receiver: object = _NO_RECEIVER,
) -> object:
    """Invoke the first candidate whose argument conversion fully succeeds.

    :param candidates: Overloads in declaration order.
    :param arguments: Call arguments.
    :param receiver: Native receiver for methods.
    :returns: Result of the chosen candidate.
    :raises BridgeError: With the argument failure for a single candidate.
    :raises ConversionError: With ``no overload found`` when every one of
        several candidates fails.
    """
    last_attempt: ConversionResult | None = None
    for candidate in candidates:
        attempt: ConversionResult = candidate.try_convert(arguments)
        if attempt.ok is True:
            return candidate.invoke(arguments, attempt.value, receiver)
        last_attempt = attempt
    if len(candidates) == 1 and last_attempt is not None:
        raise last_attempt.error
    raise ConversionError("no overload found")


def _bind(fn: Callable[..., object], policy: "ReturnValuePolicy | str", skip_first: bool) -> NativeCallable:
    return NativeCallable(fn, FunctionSignature.from_callable(fn, skip_first), policy)


def wrap_function(
    fn: Callable[..., object],
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
) -> FunctionCallback:
    """Wrap a native callable as a script function callback.

    :param fn: Native callable.
    :param policy: Return value policy.
    :returns: Callback receiving ``Arguments``.
    """
    candidates: list[NativeCallable] = [_bind(fn, policy, False)]

    def callback(arguments: Arguments) -> object:
        return dispatch_overloads(candidates, arguments)

    return callback


def wrap_overload_function(
    *fns: Callable[..., object],
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
) -> FunctionCallback:
    """Wrap overloads sharing one script-visible name.

    :param fns: Overloads in resolution order.
    :param policy: Return value policy applied to every overload.
    :returns: Callback receiving ``Arguments``.
    :raises TypeError: If no overload is given.
    """
    if len(fns) == 0:
        raise TypeError("wrap_overload_function requires at least one callable")
    candidates: list[NativeCallable] = [_bind(fn, policy, False) for fn in fns]

    def callback(arguments: Arguments) -> object:
        return dispatch_overloads(candidates, arguments)

    return callback


def wrap_callable_for_shape(fn: Callable[..., object], shape: TypeShape) -> FunctionCallback:
    """Wrap a native callable passed as a value of a callable shape.

    Explicit parameter shapes in ``shape`` override the callable's own
    annotations.
    """
    if shape.container is not tuple:
        return wrap_function(fn)
    signature: FunctionSignature = FunctionSignature(
        shape.args[1:],
        shape.args[0],
        getattr(fn, "__qualname__", ""),
    )
    candidates: list[NativeCallable] = [NativeCallable(fn, signature)]

    def callback(arguments: Arguments) -> object:
        return dispatch_overloads(candidates, arguments)

    return callback


def _unwrap_receiver(payload: "InstancePayload", owner: type, want_const: bool) -> object:
    receiver: object | None = payload.unwrap(owner, want_const)
    if receiver is None:
        raise ConversionError(f"Receiver {payload.define.name} is not a {owner.__qualname__}")
    return receiver


def wrap_method(
    owner: type,
    fn: Callable[..., object],
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    const: bool = False,
) -> InstanceMethodCallback:
    """Wrap a method taking the receiver as its first parameter.

    :param owner: Class the receiver is unwrapped to.
    :param fn: Unbound method or function ``(receiver, *args)``.
    :param policy: Return value policy.
    :param const: Whether the method only needs a const receiver.
    :returns: Instance method callback.
    """
    return wrap_overload_method(owner, (fn,), policy, const)


def wrap_overload_method(
    owner: type,
    fns: Sequence[Callable[..., object]],
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    const: bool = False,
) -> InstanceMethodCallback:
    if len(fns) == 0:
        raise TypeError("wrap_overload_method requires at least one callable")
    candidates: list[NativeCallable] = [_bind(fn, policy, True) for fn in fns]

    def callback(payload: "InstancePayload", arguments: Arguments) -> object:
        receiver: object = _unwrap_receiver(payload, owner, const)
        return dispatch_overloads(candidates, arguments, receiver)

    return callback


def _annotation_of(owner: type, attribute: str) -> object | None:
    try:
        hints: dict[str, object] = typing.get_type_hints(owner)
    except (NameError, TypeError):
        hints = getattr(owner, "__annotations__", {})
    return hints.get(attribute)


def attribute_shape(owner: type, attribute: str) -> TypeShape | None:
    """Return the shape of an attribute read, ``None`` when unannotated.

    Attribute reads are lvalues, so a by-value class attribute reads as an
    lvalue reference.
    """
    annotation: object | None = _annotation_of(owner, attribute)
    if annotation is None:
        return None
    return shape_of(annotation).as_lvalue()


def _attribute_store_shape(owner: type, attribute: str) -> TypeShape:
    annotation: object | None = _annotation_of(owner, attribute)
    if annotation is None:
        return ANY_SHAPE
    return shape_of(annotation)


def _accessor_parts(owner: type, getter: object) -> tuple[Callable[[object], object], TypeShape | None]:
    if isinstance(getter, str) is True:
        attribute: str = getter
        return (lambda receiver: getattr(receiver, attribute)), attribute_shape(owner, attribute)
    if isinstance(getter, property) is True:
        getter = getter.fget
    return_shape: TypeShape = FunctionSignature.from_callable(getter, skip_first=True).return_shape
    if return_shape.kind is ShapeKind.ANY:
        return getter, None
    return getter, return_shape


def wrap_instance_getter(
    owner: type,
    getter: object,
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
) -> InstanceGetterCallback:
    """Wrap an instance property getter.

    :param owner: Class the receiver is unwrapped to, as const.
    :param getter: Attribute name, ``property`` or callable ``(receiver)``.
    :param policy: Return value policy.
    :returns: Instance getter callback.
    """
    read, shape = _accessor_parts(owner, getter)
    resolved_policy: ReturnValuePolicy = normalize_policy(policy)

    def callback(payload: "InstancePayload", arguments: Arguments) -> object:
        receiver: object = _unwrap_receiver(payload, owner, True)
        value: object = read(receiver)
        return to_script(arguments.engine, value, shape, resolved_policy, arguments.this)

    return callback


def wrap_instance_setter(owner: type, setter: object) -> InstanceSetterCallback:
    """Wrap an instance property setter.

    :param owner: Class the receiver is unwrapped to, as mutable.
    :param setter: Attribute name, ``property`` or callable
        ``(receiver, value)``.
    :returns: Instance setter callback.
    """
    write: Callable[[object, object], object]
    shape: TypeShape
    if isinstance(setter, str) is True:
        attribute: str = setter
        shape = _attribute_store_shape(owner, attribute)

        def write(receiver: object, value: object) -> None:
            setattr(receiver, attribute, value)

    else:
        if isinstance(setter, property) is True:
            if setter.fset is None:
                raise TypeError("property has no setter")
            setter = setter.fset
        signature: FunctionSignature = FunctionSignature.from_callable(setter, skip_first=True)
        if signature.arity != 1:
            raise TypeError(f"Setter {signature.name} must take exactly one value parameter")
        shape = signature.parameters[0]
        write = setter

    def callback(payload: "InstancePayload", arguments: Arguments) -> None:
        receiver: object = _unwrap_receiver(payload, owner, False)
        value: object = from_script(arguments.engine, arguments[0], shape)
        write(receiver, value)

    return callback


def wrap_getter(
    getter: Callable[[], object],
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
) -> GetterCallback:
    """Wrap a zero-argument static getter."""
    return_shape: TypeShape = FunctionSignature.from_callable(getter).return_shape
    shape: TypeShape | None = None if return_shape.kind is ShapeKind.ANY else return_shape
    resolved_policy: ReturnValuePolicy = normalize_policy(policy)

    def callback(engine: "Engine") -> object:
        return to_script(engine, getter(), shape, resolved_policy)

    return callback


def wrap_setter(setter: Callable[[object], object]) -> SetterCallback:
    """Wrap a one-argument static setter."""
    signature: FunctionSignature = FunctionSignature.from_callable(setter)
    if signature.arity != 1:
        raise TypeError(f"Setter {signature.name} must take exactly one value parameter")
    shape: TypeShape = signature.parameters[0]

    def callback(engine: "Engine", value: object) -> None:
        setter(from_script(engine, value, shape))

    return callback


def wrap_static_member(
    owner: object,
    attribute: str,
    readonly: bool = False,
    policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
) -> tuple[GetterCallback, SetterCallback | None]:
    """Wrap an attribute of ``owner`` (a class or module) as a static property.

    :param owner: Object holding the attribute.
    :param attribute: Attribute name.
    :param readonly: Whether to omit the setter.
    :param policy: Return value policy of the getter.
    :returns: ``(getter, setter)`` with ``setter`` ``None`` when read-only.
    """
    read_shape: TypeShape | None = None
    store_shape: TypeShape = ANY_SHAPE
    if isinstance(owner, type) is True:
        read_shape = attribute_shape(owner, attribute)
        store_shape = _attribute_store_shape(owner, attribute)
    resolved_policy: ReturnValuePolicy = normalize_policy(policy)

    def getter(engine: "Engine") -> object:
        return to_script(engine, getattr(owner, attribute), read_shape, resolved_policy)

    if readonly is True:
        return getter, None

    def setter(engine: "Engine", value: object) -> None:
        setattr(owner, attribute, from_script(engine, value, store_shape))

    return getter, setter


def wrap_constant(value: object, annotation: object = None) -> GetterCallback:
    """Wrap a constant as a read-only static property getter."""
    shape: TypeShape | None = None if annotation is None else shape_of(annotation).as_lvalue()

    def getter(engine: "Engine") -> object:
        return to_script(engine, value, shape)

    return getter


def bind_constructors(cls: type, signatures: Sequence[Sequence[object]]) -> ConstructorCallback:
    """Bind constructor overloads given as parameter annotation lists.

    :param cls: Class to construct.
    :param signatures: One parameter annotation list per overload.
    :returns: Constructor callback returning the new native object.
    """
    candidates: list[NativeCallable] = []
    for parameters in signatures:
        signature: FunctionSignature = FunctionSignature.from_shapes(parameters, cls, cls.__qualname__)
        candidates.append(NativeCallable(cls, signature, converts_result=False))

    def constructor(arguments: Arguments) -> object:
        return dispatch_overloads(candidates, arguments)

    return constructor


def bind_constructor(cls: type, *parameters: object) -> ConstructorCallback:
    """Bind one constructor of ``cls`` with the given parameter annotations."""
    return bind_constructors(cls, [parameters])


def bind_instance_equals(cls: type) -> InstanceEqualsCallback:
    """Return the equality hook of ``cls``: ``==`` when defined, else identity."""
    if getattr(cls, "__eq__", object.__eq__) is object.__eq__:
        return lambda lhs, rhs: lhs is rhs
    return lambda lhs, rhs: bool(lhs == rhs)


def wrap_script_callback(
    engine: "Engine",
    function: ScriptFunction,
    parameter_shapes: Sequence[TypeShape] | None = None,
    return_shape: TypeShape | None = None,
) -> Callable[..., object]:
    """Wrap a script function as a native callable.

    The returned callable enters the engine scope on every call, so native
    code may invoke it from any thread.

    :param engine: Engine owning ``function``.
    :param function: Script function.
    :param parameter_shapes: Native parameter shapes; inferred when ``None``.
    :param return_shape: Native return shape; ``None`` passes the script
        value through.
    :returns: Native callable.
    """
    shapes: tuple[TypeShape, ...] | None = None
    if parameter_shapes is not None:
        shapes = tuple(parameter_shapes)

    def invoke(*args: object) -> object:
        if shapes is not None and len(args) != len(shapes):
            raise ConversionError(f"argument count mismatch: expected {len(shapes)}, got {len(args)}")
        with EngineScope(engine):
            script_args: list[object] = []
            for index, value in enumerate(args):
                shape: TypeShape | None = shapes[index] if shapes is not None else None
                script_args.append(to_script(engine, value, shape))
            result: object = function.call(UNDEFINED, script_args)
            if return_shape is None or return_shape.kind is ShapeKind.ANY:
                return result
            if return_shape.kind is ShapeKind.NONE:
                return None
            return from_script(engine, result, return_shape)

    invoke.__name__ = function.name or "script_callback"
    return invoke


def call(engine: "Engine", function: ScriptFunction, this: object = UNDEFINED, *args: object) -> object:
    """Call a script function with native arguments converted by their runtime type.

    :param engine: Engine owning ``function``.
    :param function: Script function.
    :param this: Receiver value.
    :param args: Native arguments.
    :returns: Raw script result.
    """
    with EngineScope(engine):
        script_args: list[object] = [to_script(engine, value) for value in args]
        return function.call(this, script_args)


def call_as_constructor(engine: "Engine", cls: ScriptClass, *args: object) -> ScriptObject:
    """Run ``new cls(...args)`` with native arguments converted by runtime type."""
    with EngineScope(engine):
        script_args: list[object] = [to_script(engine, value) for value in args]
        return cls.construct(script_args)
