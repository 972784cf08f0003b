"""Runtime type resolution for polymorphic native objects."""

import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

from nativebridge.errors import OwnershipError
from nativebridge.meta import ClassMeta

if TYPE_CHECKING:
    from nativebridge.engine import Engine

PolymorphicTypeHook = Callable[[object], tuple[object, type]]


class PolymorphicHookRegistry:
    """Per-static-type hooks that find an object's most-derived form.

    The default, used when no hook is registered, is the object itself and
    ``type(obj)``. Handle or wrapper types whose real object lives elsewhere
    register a hook returning that object and its type.
    """

    _hooks: dict[type, PolymorphicTypeHook]
    _lock: threading.Lock

    def __init__(self) -> None:
        self._hooks = {}
        self._lock = threading.Lock()

    def register(self, static_type: type, hook: PolymorphicTypeHook) -> None:
        """Register ``hook`` for ``static_type`` and its subclasses.

        :param static_type: Static type the hook applies to.
        :param hook: Callable returning ``(most_derived_object, dynamic_type)``.
        """
        with self._lock:
            self._hooks[static_type] = hook

    def unregister(self, static_type: type) -> None:
        with self._lock:
            self._hooks.pop(static_type, None)

    def find(self, static_type: type) -> PolymorphicTypeHook | None:
        """Return the hook of the nearest type in ``static_type``'s MRO."""
        with self._lock:
            for candidate in static_type.__mro__:
                hook: PolymorphicTypeHook | None = self._hooks.get(candidate)
                if hook is not None:
                    return hook
        return None


DEFAULT_POLYMORPHIC_HOOKS: PolymorphicHookRegistry = PolymorphicHookRegistry()


def register_polymorphic_hook(static_type: type, hook: PolymorphicTypeHook) -> None:
    DEFAULT_POLYMORPHIC_HOOKS.register(static_type, hook)


def get_dynamic_type(obj: object, static_type: type, polymorphic: bool = True) -> tuple[object, type]:
    """Identify the runtime type of ``obj`` and its most-derived object.

    :param obj: Object viewed as ``static_type``.
    :param static_type: Declared type.
    :param polymorphic: Whether runtime identification applies at all.
    :returns: ``(most_derived_object, dynamic_type)``.
    """
    if polymorphic is False:
        return obj, static_type
    hook: PolymorphicTypeHook | None = DEFAULT_POLYMORPHIC_HOOKS.find(static_type)
    if hook is not None:
        return hook(obj)
    return obj, type(obj)


class ResolvedCastSource:
    """Outcome of resolving the class record for an outgoing object."""

    __slots__ = ("obj", "meta", "is_downcasted")

    obj: object
    meta: ClassMeta
    is_downcasted: bool

    def __init__(self, obj: object, meta: ClassMeta, is_downcasted: bool) -> None:
        self.obj = obj
        self.meta = meta
        self.is_downcasted = is_downcasted

    def __repr__(self) -> str:
        return f"ResolvedCastSource({self.meta.name}, is_downcasted={self.is_downcasted})"


def resolve_cast_source(engine: "Engine", obj: object, static_type: type) -> ResolvedCastSource:
    """Resolve the class record an outgoing object should be tagged with.

    An unregistered dynamic type falls back to its nearest registered
    ancestor below ``static_type``, then to ``static_type`` itself.

    :param engine: Engine holding the class table.
    :param obj: Object viewed as ``static_type``.
    :param static_type: Declared type.
    :returns: Resolved source.
    :raises OwnershipError: If neither the dynamic nor the static type is
        registered.
    """
    static_meta: ClassMeta | None = engine.get_class_meta(static_type)
    polymorphic: bool = static_meta.polymorphic if static_meta is not None else True
    derived, dynamic_type = get_dynamic_type(obj, static_type, polymorphic)

    if dynamic_type is not static_type:
        for candidate in dynamic_type.__mro__:
            if candidate is static_type:
                break
            candidate_meta: ClassMeta | None = engine.get_class_meta(candidate)
            if candidate_meta is not None and candidate_meta.is_a(static_type) is True:
                return ResolvedCastSource(derived, candidate_meta, True)

    if static_meta is None:
        raise OwnershipError(f"Class not registered: {static_type.__qualname__}")
    return ResolvedCastSource(obj, static_meta, False)
