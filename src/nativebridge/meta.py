"""Class and enum metadata records."""

from collections.abc import Callable
from collections.abc import Iterable
from typing import TYPE_CHECKING

from nativebridge.errors import RegistrationError

if TYPE_CHECKING:
    from nativebridge.engine import Engine
    from nativebridge.instance import InstancePayload
    from nativebridge.values import Arguments

UpcasterCallback = Callable[[object], object]
CopyCloneCtor = Callable[[object], object]
MoveCloneCtor = Callable[[object], object]
DestructorCallback = Callable[[object], None]
InstanceEqualsCallback = Callable[[object, object], bool]

FunctionCallback = Callable[["Arguments"], object]
GetterCallback = Callable[["Engine"], object]
SetterCallback = Callable[["Engine", object], None]
InstanceMethodCallback = Callable[["InstancePayload", "Arguments"], object]
InstanceGetterCallback = Callable[["InstancePayload", "Arguments"], object]
InstanceSetterCallback = Callable[["InstancePayload", "Arguments"], None]
ConstructorCallback = Callable[["Arguments"], object]


class _FrozenRecord:
    """Base for metadata records that never change after construction."""

    __slots__ = ()

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def _init_fields(self, **fields: object) -> None:
        for name, value in fields.items():
            object.__setattr__(self, name, value)


def validate_class_name(name: str) -> str:
    """Validate a hierarchical dot-separated class or enum name.

    :param name: Candidate name such as ``a.b.ClassName``.
    :returns: The validated name.
    :raises RegistrationError: If the name is empty or has misplaced dots.
    """
    if isinstance(name, str) is False or len(name) == 0:
        raise RegistrationError("class name cannot be empty")
    if name.startswith(".") is True or name.endswith(".") is True:
        raise RegistrationError(f"class name cannot start or end with '.': {name!r}")
    if ".." in name:
        raise RegistrationError(f"class name cannot contain consecutive '.': {name!r}")
    return name


class StaticProperty(_FrozenRecord):
    """Static property: a getter and an optional setter bound to the engine."""

    __slots__ = ("name", "getter", "setter")

    name: str
    getter: GetterCallback
    setter: SetterCallback | None

    def __init__(self, name: str, getter: GetterCallback, setter: SetterCallback | None) -> None:
        self._init_fields(name=name, getter=getter, setter=setter)


class StaticFunction(_FrozenRecord):
    """Static function exposed on the class constructor."""

    __slots__ = ("name", "callback")

    name: str
    callback: FunctionCallback

    def __init__(self, name: str, callback: FunctionCallback) -> None:
        self._init_fields(name=name, callback=callback)


class StaticMemberMeta(_FrozenRecord):
    """Static properties and functions of one class, in declaration order."""

    __slots__ = ("properties", "functions")

    properties: tuple[StaticProperty, ...]
    functions: tuple[StaticFunction, ...]

    def __init__(
        self,
        properties: Iterable[StaticProperty] = (),
        functions: Iterable[StaticFunction] = (),
    ) -> None:
        self._init_fields(properties=tuple(properties), functions=tuple(functions))


class InstanceProperty(_FrozenRecord):
    """Instance property; read-only when ``setter`` is ``None``."""

    __slots__ = ("name", "getter", "setter")

    name: str
    getter: InstanceGetterCallback
    setter: InstanceSetterCallback | None

    def __init__(
        self,
        name: str,
        getter: InstanceGetterCallback,
        setter: InstanceSetterCallback | None,
    ) -> None:
        self._init_fields(name=name, getter=getter, setter=setter)


class InstanceMethod(_FrozenRecord):
    """Instance method mounted on the class prototype."""

    __slots__ = ("name", "callback")

    name: str
    callback: InstanceMethodCallback

    def __init__(self, name: str, callback: InstanceMethodCallback) -> None:
        self._init_fields(name=name, callback=callback)


class InstanceMemberMeta(_FrozenRecord):
    """Constructor, instance members and type-erased hooks of one class."""

    __slots__ = (
        "constructor",
        "properties",
        "methods",
        "class_size",
        "equals",
        "copy_clone",
        "move_clone",
    )

    constructor: ConstructorCallback | None
    properties: tuple[InstanceProperty, ...]
    methods: tuple[InstanceMethod, ...]
    class_size: int
    equals: InstanceEqualsCallback | None
    copy_clone: CopyCloneCtor | None
    move_clone: MoveCloneCtor | None

    def __init__(
        self,
        constructor: ConstructorCallback | None = None,
        properties: Iterable[InstanceProperty] = (),
        methods: Iterable[InstanceMethod] = (),
        class_size: int = 0,
        equals: InstanceEqualsCallback | None = None,
        copy_clone: CopyCloneCtor | None = None,
        move_clone: MoveCloneCtor | None = None,
    ) -> None:
        self._init_fields(
            constructor=constructor,
            properties=tuple(properties),
            methods=tuple(methods),
            class_size=class_size,
            equals=equals,
            copy_clone=copy_clone,
            move_clone=move_clone,
        )


class ClassMeta(_FrozenRecord):
    """Registration record of one native class.

    ``type_id`` is ``None`` for static classes, which only carry static
    members. ``upcaster`` turns an object viewed as this class into the view
    expected by ``base``; for ordinary Python subclasses that is the object
    itself, for composed sub-objects it is an attribute lookup.
    """

    __slots__ = (
        "name",
        "static_meta",
        "instance_meta",
        "base",
        "type_id",
        "upcaster",
        "destructor",
        "polymorphic",
    )

    name: str
    static_meta: StaticMemberMeta
    instance_meta: InstanceMemberMeta
    base: "ClassMeta | None"
    type_id: type | None
    upcaster: UpcasterCallback | None
    destructor: DestructorCallback | None
    polymorphic: bool

    def __init__(
        self,
        name: str,
        static_meta: StaticMemberMeta,
        instance_meta: InstanceMemberMeta,
        base: "ClassMeta | None" = None,
        type_id: type | None = None,
        upcaster: UpcasterCallback | None = None,
        destructor: DestructorCallback | None = None,
        polymorphic: bool = True,
    ) -> None:
        """Initialize a class record.

        :param name: Hierarchical class name.
        :param static_meta: Static members.
        :param instance_meta: Instance members and hooks.
        :param base: Base class record, when any.
        :param type_id: Native type identity, ``None`` for static classes.
        :param upcaster: Adjusts an object of this class to its base view.
        :param destructor: Hook run when an owning holder releases the object.
        :param polymorphic: Whether runtime type resolution applies.
        :raises RegistrationError: If the name is malformed or the base chain
            is inconsistent.
        """
        validate_class_name(name)
        if base is not None:
            if type_id is None:
                raise RegistrationError(f"static class {name} cannot inherit a base class")
            if upcaster is None:
                raise RegistrationError(f"class {name} inherits {base.name} without an upcaster")
            ancestor: ClassMeta | None = base
            while ancestor is not None:
                if ancestor.type_id is type_id:
                    raise RegistrationError(f"class {name} appears in its own base chain")
                ancestor = ancestor.base
        self._init_fields(
            name=name,
            static_meta=static_meta,
            instance_meta=instance_meta,
            base=base,
            type_id=type_id,
            upcaster=upcaster,
            destructor=destructor,
            polymorphic=polymorphic,
        )

    @property
    def instance_size(self) -> int:
        """Return the declared native size of one instance, in bytes."""
        return self.instance_meta.class_size

    @property
    def copy_clone(self) -> CopyCloneCtor | None:
        """Return the copy hook, or ``None`` when copying is not allowed."""
        return self.instance_meta.copy_clone

    @property
    def move_clone(self) -> MoveCloneCtor | None:
        """Return the move hook, or ``None`` when moving is not allowed."""
        return self.instance_meta.move_clone

    @property
    def equals(self) -> InstanceEqualsCallback | None:
        """Return the equality hook behind ``$equals``."""
        return self.instance_meta.equals

    def has_constructor(self) -> bool:
        """Report whether script code may construct (or inherit) this class."""
        return self.instance_meta.constructor is not None

    def is_a(self, target: "type | ClassMeta", recursion: bool = True) -> bool:
        """Report whether this class is ``target`` or derives from it.

        :param target: Native type or class record.
        :param recursion: Whether to walk the base chain.
        :returns: ``True`` when related.
        """
        type_id: object = target.type_id if isinstance(target, ClassMeta) is True else target
        if self.type_id is type_id:
            return True
        if recursion is False:
            return False
        current: ClassMeta | None = self.base
        while current is not None:
            if current.type_id is type_id:
                return True
            current = current.base
        return False

    def cast_to(self, obj: object, target_type: type) -> object | None:
        """View ``obj`` (an object of this class) as ``target_type``.

        Applies each ``upcaster`` along the base chain. Unreachable targets
        are not an error, callers probe with this.

        :param obj: Object viewed as this class.
        :param target_type: Requested native type.
        :returns: Adjusted object, or ``None`` when unreachable.
        """
        current: ClassMeta | None = self
        current_obj: object = obj
        while current is not None:
            if current.type_id is target_type:
                return current_obj
            if current.base is None or current.upcaster is None:
                return None
            current_obj = current.upcaster(current_obj)
            if current_obj is None:
                return None
            current = current.base
        return None

    def find_destructor(self) -> DestructorCallback | None:
        """Return the nearest destructor hook along the base chain."""
        current: ClassMeta | None = self
        while current is not None:
            if current.destructor is not None:
                return current.destructor
            current = current.base
        return None

    def __repr__(self) -> str:
        return f"ClassMeta({self.name!r})"


class EnumEntry(_FrozenRecord):
    """One named integral value of an enumeration."""

    __slots__ = ("name", "value")

    name: str
    value: int

    def __init__(self, name: str, value: int) -> None:
        self._init_fields(name=name, value=value)


class EnumMeta(_FrozenRecord):
    """Registration record of one native enumeration."""

    __slots__ = ("name", "entries")

    name: str
    entries: tuple[EnumEntry, ...]

    def __init__(self, name: str, entries: Iterable[EnumEntry]) -> None:
        validate_class_name(name)
        self._init_fields(name=name, entries=tuple(entries))

    def __repr__(self) -> str:
        return f"EnumMeta({self.name!r})"
