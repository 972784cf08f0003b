"""Return-value ownership policies for bridged class instances."""

import enum
import logging
from typing import TYPE_CHECKING

from nativebridge.errors import ConversionError
from nativebridge.errors import OwnershipError
from nativebridge.instance import HolderKind
from nativebridge.instance import InstancePayload
from nativebridge.instance import NativeInstance
from nativebridge.meta import ClassMeta
from nativebridge.polymorphic import ResolvedCastSource
from nativebridge.polymorphic import resolve_cast_source
from nativebridge.traits import TypeShape
from nativebridge.traits import ValueCategory
from nativebridge.values import InstanceProxy
from nativebridge.values import ScriptObject
from nativebridge.values import is_null_or_undefined
from nativebridge.values import script_kind

if TYPE_CHECKING:
    from nativebridge.engine import Engine

logger = logging.getLogger(__name__)


class ReturnValuePolicy(enum.IntEnum):
    """How a native object returned to script code is held."""

    AUTOMATIC = 0
    COPY = 1
    MOVE = 2
    REFERENCE = 3
    TAKE_OWNERSHIP = 4
    REFERENCE_INTERNAL = 5


def normalize_policy(policy: "ReturnValuePolicy | str | int") -> ReturnValuePolicy:
    """Normalize a policy given as a member, name or number.

    :param policy: Policy value, e.g. ``"take_ownership"`` or ``4``.
    :returns: Policy member.
    :raises ValueError: If the value names no policy.
    """
    if isinstance(policy, ReturnValuePolicy) is True:
        return policy
    if isinstance(policy, str) is True:
        key: str = policy.strip().upper().replace("-", "_")
        member: ReturnValuePolicy | None = ReturnValuePolicy.__members__.get(key)
        if member is None:
            raise ValueError(f"Unknown return value policy: {policy!r}")
        return member
    if isinstance(policy, int) is True and isinstance(policy, bool) is False:
        try:
            return ReturnValuePolicy(policy)
        except ValueError:
            raise ValueError(f"Unknown return value policy: {policy!r}") from None
    raise ValueError(f"Unknown return value policy: {policy!r}")


def resolve_automatic_policy(shape: TypeShape, policy: ReturnValuePolicy) -> ReturnValuePolicy:
    """Resolve ``AUTOMATIC`` from the value category of ``shape``.

    Pointers are owned by the script side, lvalue references are copied,
    rvalue references and by-value results are moved, and shared handles are
    referenced.

    :param shape: Shape of the outgoing value.
    :param policy: Requested policy.
    :returns: Concrete policy.
    """
    if policy is not ReturnValuePolicy.AUTOMATIC:
        return policy
    if shape.category is ValueCategory.POINTER:
        return ReturnValuePolicy.TAKE_OWNERSHIP
    if shape.category is ValueCategory.LVALUE_REF:
        return ReturnValuePolicy.COPY
    if shape.category is ValueCategory.SHARED:
        return ReturnValuePolicy.REFERENCE
    return ReturnValuePolicy.MOVE


def _clone_through_hook(
    resolved: ResolvedCastSource,
    declared: type,
    policy: ReturnValuePolicy,
) -> tuple[object, object]:
    meta: ClassMeta = resolved.meta
    hook = meta.copy_clone if policy is ReturnValuePolicy.COPY else meta.move_clone
    verb: str = "copy" if policy is ReturnValuePolicy.COPY else "move"
    if hook is None:
        if resolved.is_downcasted is True:
            raise OwnershipError(
                f"Cannot {verb} {meta.name} through a {declared.__qualname__} value: "
                f"the derived class has no {verb} hook and the object would be sliced"
            )
        raise OwnershipError(f"Object of class {meta.name} is not {verb} constructible")
    cloned: object = hook(resolved.obj)
    view: object | None = meta.cast_to(cloned, declared)
    if view is None:
        raise OwnershipError(f"Cloned {meta.name} cannot be viewed as {declared.__qualname__}")
    return view, cloned


def create_native_instance(
    value: object,
    shape: TypeShape,
    policy: ReturnValuePolicy,
    resolved: ResolvedCastSource,
) -> NativeInstance:
    """Build the holder for an outgoing object under a concrete policy.

    The holder keeps the object at its declared type and is tagged with the
    resolved, possibly more derived, class record.

    :param value: Object viewed at ``shape.target``.
    :param shape: Declared shape of the value.
    :param policy: Concrete policy, never ``AUTOMATIC``.
    :param resolved: Outcome of polymorphic resolution.
    :returns: New holder.
    :raises OwnershipError: If the policy cannot be applied.
    """
    declared: type = shape.target
    if policy is ReturnValuePolicy.COPY or policy is ReturnValuePolicy.MOVE:
        view, cloned = _clone_through_hook(resolved, declared, policy)
        return NativeInstance(resolved.meta, view, HolderKind.OWNED, False, declared, cloned)

    if policy is ReturnValuePolicy.TAKE_OWNERSHIP:
        if shape.category is not ValueCategory.POINTER:
            raise OwnershipError(f"TAKE_OWNERSHIP requires a pointer-shaped value, got {shape.describe()}")
        return NativeInstance(resolved.meta, value, HolderKind.OWNED, shape.is_const, declared, resolved.obj)

    if policy is ReturnValuePolicy.REFERENCE or policy is ReturnValuePolicy.REFERENCE_INTERNAL:
        kind: HolderKind = HolderKind.BORROWED
        if shape.category is ValueCategory.SHARED:
            kind = HolderKind.SHARED
        return NativeInstance(resolved.meta, value, kind, shape.is_const, declared, resolved.obj)

    raise OwnershipError(f"Unresolved return value policy: {policy!r}")


def class_to_script(
    engine: "Engine",
    value: object,
    shape: TypeShape,
    policy: ReturnValuePolicy,
    parent: object = None,
) -> object:
    """Wrap an outgoing native object into a script proxy.

    :param engine: Current engine.
    :param value: Native object, or ``None`` for a null pointer.
    :param shape: Declared class shape.
    :param policy: Requested policy.
    :param parent: Receiver object, required by ``REFERENCE_INTERNAL``.
    :returns: Instance proxy, or ``None`` for a null pointer.
    :raises ConversionError: If ``value`` does not match ``shape``.
    :raises OwnershipError: If the policy cannot be applied.
    """
    concrete: ReturnValuePolicy = resolve_automatic_policy(shape, normalize_policy(policy))
    if value is None:
        if shape.category is ValueCategory.POINTER or shape.category is ValueCategory.SHARED:
            return None
        raise ConversionError(f"Cannot convert None to {shape.describe()}")
    declared: type = shape.target
    if isinstance(value, declared) is False:
        raise ConversionError(f"Expected {shape.describe()}, got {type(value).__qualname__}")
    if concrete is ReturnValuePolicy.REFERENCE_INTERNAL and isinstance(parent, ScriptObject) is False:
        raise OwnershipError("REFERENCE_INTERNAL requires a valid parent object")

    resolved: ResolvedCastSource = resolve_cast_source(engine, value, declared)
    instance: NativeInstance = create_native_instance(value, shape, concrete, resolved)
    proxy: InstanceProxy = engine.new_instance(resolved.meta, instance)

    if concrete is ReturnValuePolicy.REFERENCE_INTERNAL:
        if engine.set_reference_internal(parent, proxy) is False:
            raise OwnershipError("Failed to set reference internal")
    logger.debug("Bridged %s as %s with policy %s", declared.__qualname__, resolved.meta.name, concrete.name)
    return proxy


def class_from_script(engine: "Engine", value: object, shape: TypeShape) -> object:
    """Unwrap an incoming script value to the requested class shape.

    References and pointers bind directly to the held object. By-value
    shapes receive a copy made with the target class's copy hook, so the
    callee never mutates the held object.

    :param engine: Current engine.
    :param value: Script value.
    :param shape: Requested class shape.
    :returns: Native object, or ``None`` for a null pointer.
    :raises ConversionError: If ``value`` is not a matching native instance.
    :raises AccessError: On const violations or destroyed payloads.
    """
    if is_null_or_undefined(value) is True:
        if shape.category is ValueCategory.POINTER:
            return None
        raise ConversionError(f"Expected {shape.describe()}, got {script_kind(value)}")
    payload: InstancePayload | None = engine.get_instance_payload(value)
    if payload is None:
        raise ConversionError("Argument is not a native instance")

    target: type = shape.target
    if shape.category is ValueCategory.SHARED and payload.holder.kind is not HolderKind.SHARED:
        raise ConversionError(f"{payload.define.name} is not held by a shared handle")

    by_value: bool = shape.category is ValueCategory.VALUE
    want_const: bool = shape.is_const is True or by_value is True
    obj: object | None = payload.unwrap(target, want_const)
    if obj is None:
        raise ConversionError(f"Type mismatch or cast failed: {payload.define.name} is not a {shape.describe()}")
    if by_value is False:
        return obj

    target_meta: ClassMeta | None = engine.get_class_meta(target)
    copy_clone = target_meta.copy_clone if target_meta is not None else None
    if copy_clone is None:
        raise OwnershipError(f"Object of class {target.__qualname__} is not copy constructible")
    return copy_clone(obj)
