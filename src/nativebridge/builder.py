"""Registration builders for class and enum metadata."""

import copy
import enum
from collections.abc import Callable

from nativebridge.adapter import bind_constructors
from nativebridge.adapter import bind_instance_equals
from nativebridge.adapter import wrap_constant
from nativebridge.adapter import wrap_getter
from nativebridge.adapter import wrap_instance_getter
from nativebridge.adapter import wrap_instance_setter
from nativebridge.adapter import wrap_method
from nativebridge.adapter import wrap_overload_function
from nativebridge.adapter import wrap_overload_method
from nativebridge.adapter import wrap_setter
from nativebridge.adapter import wrap_static_member
from nativebridge.errors import RegistrationError
from nativebridge.meta import ClassMeta
from nativebridge.meta import ConstructorCallback
from nativebridge.meta import CopyCloneCtor
from nativebridge.meta import DestructorCallback
from nativebridge.meta import EnumEntry
from nativebridge.meta import EnumMeta
from nativebridge.meta import InstanceEqualsCallback
from nativebridge.meta import InstanceMemberMeta
from nativebridge.meta import InstanceMethod
from nativebridge.meta import InstanceProperty
from nativebridge.meta import MoveCloneCtor
from nativebridge.meta import StaticFunction
from nativebridge.meta import StaticMemberMeta
from nativebridge.meta import StaticProperty
from nativebridge.meta import UpcasterCallback
from nativebridge.meta import validate_class_name
from nativebridge.policy import ReturnValuePolicy
from nativebridge.policy import normalize_policy


class _ConstructorKind(enum.Enum):
    NONE = "none"
    NORMAL = "normal"
    CUSTOM = "custom"
    DISABLED = "disabled"


def _disabled_constructor(arguments: object) -> None:
    return None


def _identity_upcaster(obj: object) -> object:
    return obj


class ClassMetaBuilder:
    """Collect the members of one native class and build its ``ClassMeta``.

    Every method returns the builder so declarations chain::

        meta = (
            ClassMetaBuilder(Counter, "demo.Counter")
            .ctor()
            .ctor(int)
            .method("increment", Counter.increment)
            .prop("value")
            .build()
        )

    A builder created with ``cls=None`` describes a static class and only
    accepts static members.
    """

    _cls: type | None
    _name: str
    _static_properties: list[StaticProperty]
    _static_functions: list[StaticFunction]
    _instance_properties: list[InstanceProperty]
    _instance_methods: list[InstanceMethod]
    _member_names: set[str]
    _static_names: set[str]
    _constructor_kind: _ConstructorKind
    _constructor_signatures: list[tuple[object, ...]]
    _custom_constructor: ConstructorCallback | None
    _base: ClassMeta | None
    _upcaster: UpcasterCallback | None
    _copy_clone: CopyCloneCtor | None
    _move_clone: MoveCloneCtor | None
    _destructor: DestructorCallback | None
    _equals: InstanceEqualsCallback | None
    _polymorphic: bool
    _class_size: int

    def __init__(self, cls: type | None, name: str | None = None) -> None:
        """Initialize a builder.

        :param cls: Native class, or ``None`` for a static class.
        :param name: Hierarchical script name; defaults to the class name.
        :raises RegistrationError: If the name is malformed or missing.
        """
        if name is None:
            if cls is None:
                raise RegistrationError("static classes require an explicit name")
            name = cls.__name__
        self._cls = cls
        self._name = validate_class_name(name)
        self._static_properties = []
        self._static_functions = []
        self._instance_properties = []
        self._instance_methods = []
        self._member_names = set()
        self._static_names = set()
        self._constructor_kind = _ConstructorKind.NONE
        self._constructor_signatures = []
        self._custom_constructor = None
        self._base = None
        self._upcaster = None
        self._copy_clone = copy.copy if cls is not None else None
        self._move_clone = copy.copy if cls is not None else None
        self._destructor = None
        self._equals = bind_instance_equals(cls) if cls is not None else None
        self._polymorphic = True
        self._class_size = getattr(cls, "__basicsize__", 0) if cls is not None else 0

    @property
    def is_instance_class(self) -> bool:
        """Report whether the builder describes a class with instances."""
        return self._cls is not None

    def _require_instance_class(self, what: str) -> type:
        if self._cls is None:
            raise RegistrationError(f"static class {self._name} cannot declare {what}")
        return self._cls

    def _claim_static_name(self, name: str) -> None:
        if name in self._static_names:
            raise RegistrationError(f"static member {name} is already declared on {self._name}")
        self._static_names.add(name)

    def _claim_member_name(self, name: str) -> None:
        if name in self._member_names:
            raise RegistrationError(f"instance member {name} is already declared on {self._name}")
        self._member_names.add(name)

    # static members

    def func(
        self,
        name: str,
        *fns: Callable[..., object],
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare a static function; several callables form overloads."""
        if len(fns) == 0:
            raise RegistrationError(f"static function {name} needs at least one callable")
        self._claim_static_name(name)
        self._static_functions.append(StaticFunction(name, wrap_overload_function(*fns, policy=policy)))
        return self

    def var(
        self,
        name: str,
        getter: Callable[[], object],
        setter: Callable[[object], object] | None = None,
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare a static property from getter and setter callables."""
        self._claim_static_name(name)
        wrapped_setter = wrap_setter(setter) if setter is not None else None
        self._static_properties.append(StaticProperty(name, wrap_getter(getter, policy), wrapped_setter))
        return self

    def var_readonly(
        self,
        name: str,
        getter: Callable[[], object],
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare a static property that script code cannot assign.

        :param name: Script property name.
        :param getter: Callable returning the current value.
        :param policy: Return value policy for reads.
        :returns: This builder.
        """
        return self.var(name, getter, None, policy)

    def var_attr(
        self,
        name: str,
        owner: object,
        attribute: str | None = None,
        readonly: bool = False,
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare a static property backed by an attribute of ``owner``.

        :param name: Script property name.
        :param owner: Class or module holding the attribute.
        :param attribute: Attribute name; defaults to ``name``.
        :param readonly: Whether script writes are rejected.
        :param policy: Return value policy for reads.
        :returns: This builder.
        """
        self._claim_static_name(name)
        getter, setter = wrap_static_member(owner, attribute if attribute is not None else name, readonly, policy)
        self._static_properties.append(StaticProperty(name, getter, setter))
        return self

    def var_value(self, name: str, value: object, annotation: object = None) -> "ClassMetaBuilder":
        """Declare a read-only static constant."""
        self._claim_static_name(name)
        self._static_properties.append(StaticProperty(name, wrap_constant(value, annotation), None))
        return self

    # constructors

    def ctor(self, *parameter_types: object) -> "ClassMetaBuilder":
        """Declare a constructor taking ``parameter_types``.

        Repeated calls declare constructor overloads, tried in order.
        """
        self._require_instance_class("constructors")
        if self._constructor_kind not in (_ConstructorKind.NONE, _ConstructorKind.NORMAL):
            raise RegistrationError(f"class {self._name} already has a {self._constructor_kind.value} constructor")
        self._constructor_kind = _ConstructorKind.NORMAL
        self._constructor_signatures.append(tuple(parameter_types))
        return self

    def ctor_custom(self, constructor: ConstructorCallback) -> "ClassMetaBuilder":
        """Declare a constructor callback receiving the raw ``Arguments``.

        The callback returns the new native object, a ready ``NativeInstance``
        or ``None`` to reject construction.
        """
        self._require_instance_class("constructors")
        if self._constructor_kind is not _ConstructorKind.NONE:
            raise RegistrationError(f"class {self._name} already has a {self._constructor_kind.value} constructor")
        self._constructor_kind = _ConstructorKind.CUSTOM
        self._custom_constructor = constructor
        return self

    def ctor_disabled(self) -> "ClassMetaBuilder":
        """Forbid ``new`` from script code while still allowing subclasses."""
        self._require_instance_class("constructors")
        if self._constructor_kind is not _ConstructorKind.NONE:
            raise RegistrationError(f"class {self._name} already has a {self._constructor_kind.value} constructor")
        self._constructor_kind = _ConstructorKind.DISABLED
        return self

    # instance members

    def method(
        self,
        name: str,
        *fns: Callable[..., object],
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
        const: bool = False,
    ) -> "ClassMetaBuilder":
        """Declare an instance method; several callables form overloads.

        :param name: Script method name.
        :param fns: Functions taking the receiver first, e.g. ``Cls.method``.
        :param policy: Return value policy.
        :param const: Whether the receiver is only read.
        :returns: This builder.
        """
        owner: type = self._require_instance_class("instance methods")
        if len(fns) == 0:
            raise RegistrationError(f"method {name} needs at least one callable")
        self._claim_member_name(name)
        if len(fns) == 1:
            callback = wrap_method(owner, fns[0], policy, const)
        else:
            callback = wrap_overload_method(owner, fns, policy, const)
        self._instance_methods.append(InstanceMethod(name, callback))
        return self

    def prop(
        self,
        name: str,
        getter: object = None,
        setter: object = None,
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare an instance property.

        With no accessors the property reads and writes the attribute called
        ``name``. An attribute name or a ``property`` with a setter is
        writable; a plain getter callable without ``setter`` is read-only.
        """
        owner: type = self._require_instance_class("instance properties")
        if getter is None:
            getter = name
        if setter is None:
            if isinstance(getter, str) is True:
                setter = getter
            elif isinstance(getter, property) is True and getter.fset is not None:
                setter = getter
        return self._add_instance_property(owner, name, getter, setter, policy)

    def prop_readonly(
        self,
        name: str,
        getter: object = None,
        policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
    ) -> "ClassMetaBuilder":
        """Declare an instance property that script code cannot assign.

        :param name: Script property name.
        :param getter: Attribute name, ``property`` or callable; defaults to
            the attribute called ``name``.
        :param policy: Return value policy for reads.
        :returns: This builder.
        """
        owner: type = self._require_instance_class("instance properties")
        if getter is None:
            getter = name
        return self._add_instance_property(owner, name, getter, None, policy)

    def _add_instance_property(
        self,
        owner: type,
        name: str,
        getter: object,
        setter: object,
        policy: "ReturnValuePolicy | str",
    ) -> "ClassMetaBuilder":
        self._claim_member_name(name)
        wrapped_setter = wrap_instance_setter(owner, setter) if setter is not None else None
        wrapped_getter = wrap_instance_getter(owner, getter, normalize_policy(policy))
        self._instance_properties.append(InstanceProperty(name, wrapped_getter, wrapped_setter))
        return self

    # hierarchy and hooks

    def inherit(self, base: ClassMeta, upcaster: UpcasterCallback | None = None) -> "ClassMetaBuilder":
        """Declare the base class.

        :param base: Registered class record of the base.
        :param upcaster: Turns an object of this class into its base view;
            defaults to the identity for Python subclasses.
        :returns: This builder.
        :raises RegistrationError: If no upcaster is given for a class that is
            not a Python subclass of the base.
        """
        cls: type = self._require_instance_class("a base class")
        if self._base is not None:
            raise RegistrationError(f"class {self._name} already inherits {self._base.name}")
        if base.type_id is None:
            raise RegistrationError(f"class {self._name} cannot inherit static class {base.name}")
        if upcaster is None:
            if issubclass(cls, base.type_id) is False:
                raise RegistrationError(
                    f"class {self._name} is not a subclass of {base.name}; an upcaster is required"
                )
            upcaster = _identity_upcaster
        self._base = base
        self._upcaster = upcaster
        return self

    def copyable(self, hook: CopyCloneCtor = copy.copy) -> "ClassMetaBuilder":
        """Set the hook copying an instance for ``COPY`` and by-value parameters.

        :param hook: Callable returning an independent copy.
        :returns: This builder.
        """
        self._require_instance_class("copy hooks")
        self._copy_clone = hook
        return self

    def no_copy(self) -> "ClassMetaBuilder":
        """Forbid copies; ``COPY`` results and by-value parameters then fail."""
        self._require_instance_class("copy hooks")
        self._copy_clone = None
        return self

    def movable(self, hook: MoveCloneCtor = copy.copy) -> "ClassMetaBuilder":
        """Set the hook moving an instance into a new owning holder.

        :param hook: Callable returning the moved object.
        :returns: This builder.
        """
        self._require_instance_class("move hooks")
        self._move_clone = hook
        return self

    def no_move(self) -> "ClassMetaBuilder":
        """Forbid moves; ``MOVE`` results then fail."""
        self._require_instance_class("move hooks")
        self._move_clone = None
        return self

    def destructor(self, hook: DestructorCallback) -> "ClassMetaBuilder":
        """Run ``hook`` when a script-owned object is released."""
        self._require_instance_class("a destructor")
        self._destructor = hook
        return self

    def equals(self, hook: InstanceEqualsCallback) -> "ClassMetaBuilder":
        """Replace the ``$equals`` comparison.

        :param hook: Callable comparing two native objects.
        :returns: This builder.
        """
        self._require_instance_class("an equality hook")
        self._equals = hook
        return self

    def polymorphic(self, enabled: bool = True) -> "ClassMetaBuilder":
        """Choose whether outgoing objects resolve to their runtime class.

        :param enabled: ``False`` always bridges at the declared class.
        :returns: This builder.
        """
        self._require_instance_class("polymorphism")
        self._polymorphic = enabled
        return self

    def class_size(self, size: int) -> "ClassMetaBuilder":
        """Set the native size reported for script-constructed instances.

        :param size: Size in bytes.
        :returns: This builder.
        :raises RegistrationError: If ``size`` is negative.
        """
        self._require_instance_class("an instance size")
        if size < 0:
            raise RegistrationError("class size cannot be negative")
        self._class_size = size
        return self

    def build(self) -> ClassMeta:
        """Build the immutable class record.

        :returns: Class record ready for ``Engine.register_class``.
        """
        constructor: ConstructorCallback | None = None
        if self._constructor_kind is _ConstructorKind.NORMAL:
            constructor = bind_constructors(self._cls, self._constructor_signatures)
        elif self._constructor_kind is _ConstructorKind.CUSTOM:
            constructor = self._custom_constructor
        elif self._constructor_kind is _ConstructorKind.DISABLED:
            constructor = _disabled_constructor

        static_meta: StaticMemberMeta = StaticMemberMeta(self._static_properties, self._static_functions)
        instance_meta: InstanceMemberMeta = InstanceMemberMeta(
            constructor=constructor,
            properties=self._instance_properties,
            methods=self._instance_methods,
            class_size=self._class_size,
            equals=self._equals,
            copy_clone=self._copy_clone,
            move_clone=self._move_clone,
        )
        return ClassMeta(
            self._name,
            static_meta,
            instance_meta,
            base=self._base,
            type_id=self._cls,
            upcaster=self._upcaster,
            destructor=self._destructor,
            polymorphic=self._polymorphic,
        )


class EnumMetaBuilder:
    """Collect the entries of one native enumeration."""

    _enum_cls: type[enum.Enum]
    _name: str
    _entries: list[EnumEntry]
    _entry_names: set[str]

    def __init__(self, enum_cls: type[enum.Enum], name: str | None = None) -> None:
        """Initialize an enum builder.

        :param enum_cls: Enumeration class.
        :param name: Hierarchical script name; defaults to the class name.
        :raises RegistrationError: If ``enum_cls`` is not an ``enum.Enum``.
        """
        if isinstance(enum_cls, type) is False or issubclass(enum_cls, enum.Enum) is False:
            raise RegistrationError("EnumMetaBuilder requires an enum.Enum subclass")
        self._enum_cls = enum_cls
        self._name = validate_class_name(name if name is not None else enum_cls.__name__)
        self._entries = []
        self._entry_names = set()

    def value(self, name: str, member: enum.Enum) -> "EnumMetaBuilder":
        """Declare one entry.

        :param name: Script-visible entry name.
        :param member: Enum member; its value must be integral.
        :returns: This builder.
        :raises RegistrationError: On duplicate names, foreign members or
            non-integral values.
        """
        if isinstance(member, self._enum_cls) is False:
            raise RegistrationError(f"{member!r} is not a member of {self._enum_cls.__qualname__}")
        underlying: object = member.value
        if isinstance(underlying, int) is False or isinstance(underlying, bool) is True:
            raise RegistrationError(f"enum entry {name} has a non-integral value")
        if name in self._entry_names:
            raise RegistrationError(f"enum entry {name} is already declared on {self._name}")
        self._entry_names.add(name)
        self._entries.append(EnumEntry(name, int(underlying)))
        return self

    def values(self) -> "EnumMetaBuilder":
        """Declare every member under its Python name."""
        for member in self._enum_cls:
            self.value(member.name, member)
        return self

    def build(self) -> EnumMeta:
        """Build the immutable enum record."""
        return EnumMeta(self._name, self._entries)
