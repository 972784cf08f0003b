"""Type-erased holders for native objects crossing into script space."""

import enum
from typing import TYPE_CHECKING

from nativebridge.errors import AccessError
from nativebridge.errors import OwnershipError
from nativebridge.meta import ClassMeta

if TYPE_CHECKING:
    from nativebridge.engine import Engine


class HolderKind(enum.Enum):
    """How a ``NativeInstance`` holds its object."""

    OWNED = "owned"
    SHARED = "shared"
    BORROWED = "borrowed"


class NativeInstance:
    """Holder of exactly one native object.

    ``value`` is the object viewed at the declared (element) type, while
    ``derived`` is the most-derived object that ``meta`` describes. The two
    differ only when the declared view is a sub-object reached through an
    upcaster.
    """

    _meta: ClassMeta
    _value: object
    _derived: object
    _kind: HolderKind
    _is_const: bool
    _element_type: type
    _released: bool

    def __init__(
        self,
        meta: ClassMeta,
        value: object,
        kind: HolderKind,
        is_const: bool = False,
        element_type: type | None = None,
        derived: object | None = None,
    ) -> None:
        """Initialize a holder.

        :param meta: Class record used for casts, possibly more derived than
            ``element_type``.
        :param value: Object viewed at ``element_type``.
        :param kind: Holder kind.
        :param is_const: Whether only const views may be handed out.
        :param element_type: Declared type of ``value``; defaults to
            ``meta.type_id``.
        :param derived: Most-derived object; defaults to ``value``.
        :raises OwnershipError: If ``meta`` describes a static class.
        """
        if meta.type_id is None:
            raise OwnershipError(f"static class {meta.name} cannot hold instances")
        self._meta = meta
        self._value = value
        self._derived = derived if derived is not None else value
        self._kind = kind
        self._is_const = is_const
        self._element_type = element_type if element_type is not None else meta.type_id
        self._released = False

    @property
    def meta(self) -> ClassMeta:
        """Return the class record of the most derived known type."""
        return self._meta

    @property
    def type_id(self) -> type:
        """Return the concrete type described by ``meta``."""
        return self._meta.type_id

    @property
    def element_type(self) -> type:
        """Return the declared type the held object is viewed as."""
        return self._element_type

    @property
    def kind(self) -> HolderKind:
        """Return the ownership kind of this holder."""
        return self._kind

    @property
    def is_const(self) -> bool:
        """Report whether only const access is allowed."""
        return self._is_const

    @property
    def is_owned(self) -> bool:
        """Report whether releasing this holder destroys the object."""
        return self._kind is HolderKind.OWNED

    @property
    def is_released(self) -> bool:
        """Report whether the held object has been released."""
        return self._released

    def get(self) -> object:
        """Return the object at its declared type.

        :returns: Held object.
        :raises AccessError: If the holder was released.
        """
        self._check_alive()
        return self._value

    def cast(self, target_type: type) -> object | None:
        """View the held object as ``target_type``.

        :param target_type: Requested native type.
        :returns: Adjusted object, or ``None`` when ``target_type`` is not
            reachable from this holder's class, or the holder was released.
        """
        if self._released is True:
            return None
        if target_type is self._element_type:
            return self._value
        return self._meta.cast_to(self._derived, target_type)

    def unwrap(self, target_type: type, want_const: bool = False) -> object | None:
        """Return a view for a native consumer.

        :param target_type: Requested native type.
        :param want_const: Whether the consumer only needs a const view.
        :returns: Adjusted object, or ``None`` on type mismatch.
        :raises AccessError: If the holder was released, or a mutable view is
            requested from a const holder.
        """
        self._check_alive()
        if self._is_const is True and want_const is False:
            raise AccessError(f"Cannot obtain a mutable {target_type.__qualname__} from a const {self._meta.name}")
        return self.cast(target_type)

    def clone(self) -> "NativeInstance":
        """Copy the object through the class copy hook into a new owning holder.

        :returns: New owning holder of the same dynamic class.
        :raises OwnershipError: If the class has no copy hook.
        :raises AccessError: If the holder was released.
        """
        self._check_alive()
        copy_clone = self._meta.copy_clone
        if copy_clone is None:
            raise OwnershipError(f"Object of class {self._meta.name} is not copy constructible")
        copied: object = copy_clone(self._derived)
        view: object | None = self._meta.cast_to(copied, self._element_type)
        if view is None:
            view = copied
        return NativeInstance(
            self._meta,
            view,
            HolderKind.OWNED,
            element_type=self._element_type,
            derived=copied,
        )

    def get_shared(self) -> object | None:
        """Return the shared handle, ``None`` for non-shared holders."""
        if self._kind is not HolderKind.SHARED or self._released is True:
            return None
        return self._value

    def release(self) -> bool:
        """Drop the held object; owning holders run the destructor hook.

        :returns: ``True`` on the first release, ``False`` afterwards.
        """
        if self._released is True:
            return False
        self._released = True
        derived: object = self._derived
        self._value = None
        self._derived = None
        if self._kind is HolderKind.OWNED:
            destructor = self._meta.find_destructor()
            if destructor is not None:
                destructor(derived)
        return True

    def _check_alive(self) -> None:
        if self._released is True:
            raise AccessError(f"Native instance of class {self._meta.name} has already been destroyed")

    def __repr__(self) -> str:
        state: str = "released" if self._released is True else self._kind.value
        return f"NativeInstance({self._meta.name}, {state})"


class InstancePayload:
    """Opaque payload carried by one script-side proxy."""

    _holder: NativeInstance
    _define: ClassMeta
    _engine: "Engine"
    _construct_from_script: bool
    _finalized: bool

    def __init__(
        self,
        holder: NativeInstance,
        define: ClassMeta,
        engine: "Engine",
        construct_from_script: bool = False,
    ) -> None:
        """Initialize a payload.

        :param holder: Holder of the native object.
        :param define: Class whose prototype the proxy uses.
        :param engine: Owning engine.
        :param construct_from_script: Whether script ``new`` created it.
        """
        self._holder = holder
        self._define = define
        self._engine = engine
        self._construct_from_script = construct_from_script
        self._finalized = False

    @property
    def holder(self) -> NativeInstance:
        """Return the holder of the native object."""
        return self._holder

    @property
    def define(self) -> ClassMeta:
        """Return the class record the proxy was created for."""
        return self._define

    @property
    def engine(self) -> "Engine":
        """Return the engine that owns this payload."""
        return self._engine

    @property
    def is_construct_from_script(self) -> bool:
        """Report whether script code constructed the object with ``new``."""
        return self._construct_from_script

    @property
    def is_finalized(self) -> bool:
        """Report whether the payload has been released."""
        return self._finalized

    def finalize(self) -> None:
        """Release the native object early; later member access raises."""
        self._engine.release_payload(self)

    def _release_holder(self) -> bool:
        if self._finalized is True:
            return False
        self._finalized = True
        return self._holder.release()

    def unwrap(self, target_type: type, want_const: bool = False) -> object | None:
        """Unwrap the held object for a native consumer.

        :param target_type: Requested native type.
        :param want_const: Whether the consumer only needs a const view.
        :returns: Adjusted object, or ``None`` on type mismatch.
        :raises AccessError: If finalized or on a const violation.
        """
        if self._finalized is True:
            raise AccessError(f"Native instance of class {self._define.name} has already been destroyed")
        return self._holder.unwrap(target_type, want_const)
