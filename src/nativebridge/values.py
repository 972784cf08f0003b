"""Script-side value model used by the bridge.

Script values are plain Python objects where a natural counterpart exists
(``None`` is null, ``bool``/``float``/``str`` are booleans, numbers and
strings) and small wrapper classes everywhere else.
"""

import enum
from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from typing import TYPE_CHECKING

from nativebridge.errors import ConversionError
from nativebridge.errors import ScriptException

if TYPE_CHECKING:
    from nativebridge.engine import Engine
    from nativebridge.instance import InstancePayload
    from nativebridge.meta import ClassMeta


class _Undefined:
    """Singleton type of the script ``undefined`` value."""

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


UNDEFINED: _Undefined = _Undefined()


class BigInt:
    """Script big-integer value."""

    __slots__ = ("value",)

    value: int

    def __init__(self, value: int) -> None:
        """Initialize a big-integer value.

        :param value: Integral value.
        :raises TypeError: If ``value`` is not an ``int``.
        """
        if isinstance(value, int) is False or isinstance(value, bool) is True:
            raise TypeError("BigInt requires an int value")
        self.value = value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, BigInt) is False:
            return NotImplemented
        return self.value == other.value

    def __hash__(self) -> int:
        return hash(("BigInt", self.value))

    def __repr__(self) -> str:
        return f"{self.value}n"


class ScriptArray(list):
    """Script indexed list."""

    def __repr__(self) -> str:
        return f"ScriptArray({list.__repr__(self)})"


class PropertyAttribute(enum.IntFlag):
    """Attributes of one script object property."""

    NONE = 0
    READ_ONLY = 1
    DONT_ENUM = 2
    DONT_DELETE = 4


AccessorGetter = Callable[["ScriptObject"], object]
AccessorSetter = Callable[["ScriptObject", object], None]


class _Property:
    """One own property slot: a data value or an accessor pair."""

    __slots__ = ("value", "getter", "setter", "attributes", "is_accessor")

    value: object
    getter: AccessorGetter | None
    setter: AccessorSetter | None
    attributes: PropertyAttribute
    is_accessor: bool

    def __init__(
        self,
        value: object = None,
        getter: AccessorGetter | None = None,
        setter: AccessorSetter | None = None,
        attributes: PropertyAttribute = PropertyAttribute.NONE,
        is_accessor: bool = False,
    ) -> None:
        self.value = value
        self.getter = getter
        self.setter = setter
        self.attributes = attributes
        self.is_accessor = is_accessor


class ScriptObject:
    """Script object with own properties and a prototype link."""

    _properties: dict[str, _Property]
    _prototype: "ScriptObject | None"
    _to_string_tag: str | None

    def __init__(self, prototype: "ScriptObject | None" = None) -> None:
        """Initialize an empty object.

        :param prototype: Optional prototype object.
        """
        self._properties = {}
        self._prototype = prototype
        self._to_string_tag = None

    @classmethod
    def from_mapping(cls, items: Mapping[str, object]) -> "ScriptObject":
        """Build a plain object from string-keyed items.

        :param items: Property values keyed by name.
        :returns: New object.
        """
        created: ScriptObject = cls()
        for key, value in items.items():
            created.set(key, value)
        return created

    @property
    def prototype(self) -> "ScriptObject | None":
        """Return this object's prototype.

        :returns: Prototype object or ``None``.
        """
        return self._prototype

    def set_prototype(self, prototype: "ScriptObject | None") -> None:
        """Replace this object's prototype.

        :param prototype: New prototype object or ``None``.
        """
        self._prototype = prototype

    def set_to_string_tag(self, tag: str) -> None:
        """Set the tag used by ``repr``.

        :param tag: Tag text, usually a class name.
        """
        self._to_string_tag = tag

    def _find_property(self, key: str) -> _Property | None:
        current: ScriptObject | None = self
        while current is not None:
            found: _Property | None = current._properties.get(key)
            if found is not None:
                return found
            current = current._prototype
        return None

    def get(self, key: str) -> object:
        """Read a property along the prototype chain.

        :param key: Property name.
        :returns: Property value, or ``UNDEFINED`` when absent.
        """
        found: _Property | None = self._find_property(key)
        if found is None:
            return UNDEFINED
        if found.is_accessor is True:
            if found.getter is None:
                return UNDEFINED
            return found.getter(self)
        return found.value

    def set(self, key: str, value: object) -> None:
        """Write a property, honouring accessors and read-only slots.

        :param key: Property name.
        :param value: Script value to store.
        :raises ScriptException: If the property is read-only.
        """
        found: _Property | None = self._find_property(key)
        if found is not None and found.is_accessor is True:
            if found.setter is None:
                raise ScriptException(f"Cannot write to read-only native property '{key}'", "TypeError")
            found.setter(self, value)
            return
        if found is not None and bool(found.attributes & PropertyAttribute.READ_ONLY) is True:
            raise ScriptException(f"Cannot assign to read only property '{key}'", "TypeError")
        own: _Property | None = self._properties.get(key)
        if own is None:
            self._properties[key] = _Property(value=value)
            return
        own.value = value

    def define_own_property(
        self,
        key: str,
        value: object,
        attributes: PropertyAttribute = PropertyAttribute.NONE,
    ) -> None:
        """Define or replace one own data property.

        :param key: Property name.
        :param value: Property value.
        :param attributes: Property attributes.
        """
        self._properties[key] = _Property(value=value, attributes=attributes)

    def define_accessor(
        self,
        key: str,
        getter: AccessorGetter | None,
        setter: AccessorSetter | None,
        attributes: PropertyAttribute = PropertyAttribute.NONE,
    ) -> None:
        """Define or replace one own accessor property.

        :param key: Property name.
        :param getter: Getter receiving the receiver object.
        :param setter: Setter receiving the receiver object and the new value.
        :param attributes: Property attributes.
        """
        self._properties[key] = _Property(
            getter=getter,
            setter=setter,
            attributes=attributes,
            is_accessor=True,
        )

    def has(self, key: str) -> bool:
        """Report whether ``key`` resolves along the prototype chain."""
        return self._find_property(key) is not None

    def has_own(self, key: str) -> bool:
        """Report whether ``key`` is an own property."""
        return key in self._properties

    def delete(self, key: str) -> bool:
        """Delete one own property.

        :param key: Property name.
        :returns: ``True`` when the property is gone afterwards.
        """
        own: _Property | None = self._properties.get(key)
        if own is None:
            return True
        if bool(own.attributes & PropertyAttribute.DONT_DELETE) is True:
            return False
        del self._properties[key]
        return True

    def own_keys(self) -> list[str]:
        """Return enumerable own property names in insertion order.

        :returns: Property names.
        """
        keys: list[str] = []
        for key, slot in self._properties.items():
            if bool(slot.attributes & PropertyAttribute.DONT_ENUM) is True:
                continue
            keys.append(key)
        return keys

    def __repr__(self) -> str:
        tag: str = self._to_string_tag if self._to_string_tag is not None else "Object"
        return f"[object {tag}]"


class Arguments:
    """Arguments of one script call into native code."""

    _engine: "Engine"
    _this: object
    _values: list[object]

    def __init__(self, engine: "Engine", this: object, values: Iterable[object]) -> None:
        """Initialize call arguments.

        :param engine: Engine the call runs in.
        :param this: Receiver value, ``UNDEFINED`` for plain calls.
        :param values: Positional script values.
        """
        self._engine = engine
        self._this = this
        self._values = list(values)

    @property
    def engine(self) -> "Engine":
        return self._engine

    @property
    def this(self) -> object:
        return self._this

    @property
    def values(self) -> list[object]:
        return self._values

    def has_this(self) -> bool:
        """Report whether the call has an object receiver."""
        return isinstance(self._this, ScriptObject)

    def length(self) -> int:
        return len(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getitem__(self, index: int) -> object:
        """Return one argument, ``UNDEFINED`` past the end."""
        if index < 0 or index >= len(self._values):
            return UNDEFINED
        return self._values[index]


FunctionCallback = Callable[[Arguments], object]


class ScriptFunction(ScriptObject):
    """Script function backed by a native callback."""

    _engine: "Engine"
    _callback: FunctionCallback
    _name: str

    def __init__(self, engine: "Engine", callback: FunctionCallback, name: str = "") -> None:
        """Initialize a function object.

        :param engine: Owning engine.
        :param callback: Native callback receiving ``Arguments``.
        :param name: Function name.
        """
        super().__init__()
        self._engine = engine
        self._callback = callback
        self._name = name
        self.define_own_property("name", name, PropertyAttribute.READ_ONLY | PropertyAttribute.DONT_ENUM)
        self.set_to_string_tag("Function")

    @property
    def name(self) -> str:
        return self._name

    def call(self, this: object = UNDEFINED, args: Iterable[object] = ()) -> object:
        """Call the function from script code.

        :param this: Receiver value.
        :param args: Positional script values.
        :returns: Script return value.
        :raises ScriptException: If the native side raised.
        """
        arguments: Arguments = Arguments(self._engine, this, args)
        return self._engine.invoke_native(self._callback, arguments)

    def __call__(self, *args: object) -> object:
        """Call the function with no receiver."""
        return self.call(UNDEFINED, args)


class ScriptClass(ScriptFunction):
    """Script constructor function for one registered native class."""

    _meta: "ClassMeta"
    _instance_prototype: ScriptObject

    def __init__(self, engine: "Engine", meta: "ClassMeta", base: "ScriptClass | None") -> None:
        """Initialize a class constructor.

        :param engine: Owning engine.
        :param meta: Class metadata.
        :param base: Constructor of the base class, when any.
        """
        super().__init__(engine, _reject_plain_call, meta.name)
        self._meta = meta
        base_prototype: ScriptObject | None = None
        if base is not None:
            base_prototype = base.instance_prototype
        self._instance_prototype = ScriptObject(prototype=base_prototype)
        self._instance_prototype.define_own_property(
            "constructor",
            self,
            PropertyAttribute.DONT_ENUM,
        )
        self.define_own_property(
            "prototype",
            self._instance_prototype,
            PropertyAttribute.READ_ONLY | PropertyAttribute.DONT_ENUM | PropertyAttribute.DONT_DELETE,
        )

    @property
    def meta(self) -> "ClassMeta":
        return self._meta

    @property
    def instance_prototype(self) -> ScriptObject:
        return self._instance_prototype

    def construct(self, args: Iterable[object] = ()) -> "InstanceProxy":
        """Run ``new C(...args)`` from script code.

        :param args: Positional script values.
        :returns: New instance proxy.
        :raises ScriptException: If construction fails.
        """
        values: list[object] = list(args)
        created: object = self._engine.invoke_native(self._engine.construct_from_script, self, values)
        return created


def _reject_plain_call(arguments: Arguments) -> object:
    """Reject calling a native class constructor without ``new``."""
    raise ScriptException("Native class constructor cannot be called as a function", "TypeError")


class InstanceProxy(ScriptObject):
    """Script object standing in for one native instance."""

    _payload: "InstancePayload | None"
    _parent_ref: "InstanceProxy | None"

    def __init__(self, prototype: ScriptObject) -> None:
        """Initialize an unbound proxy.

        :param prototype: Instance prototype of the proxy's class.
        """
        super().__init__(prototype=prototype)
        self._payload = None
        self._parent_ref = None

    @property
    def payload(self) -> "InstancePayload | None":
        """Return the bound payload.

        :returns: Payload, or ``None`` when unbound or released.
        """
        return self._payload

    def _bind_payload(self, payload: "InstancePayload | None") -> None:
        self._payload = payload

    def _keep_alive(self, parent: "InstanceProxy") -> None:
        self._parent_ref = parent

    def __repr__(self) -> str:
        tag: str = self._to_string_tag if self._to_string_tag is not None else "Object"
        prototype: ScriptObject | None = self._prototype
        if prototype is not None and prototype._to_string_tag is not None:
            tag = prototype._to_string_tag
        return f"[object {tag}]"


def script_kind(value: object) -> str:
    """Return the script type name of ``value``.

    :param value: Script value.
    :returns: One of ``null``, ``undefined``, ``boolean``, ``number``,
        ``bigint``, ``string``, ``array``, ``function`` or ``object``.
    :raises ConversionError: If ``value`` is not a script value.
    """
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool) is True:
        return "boolean"
    if isinstance(value, (int, float)) is True:
        return "number"
    if isinstance(value, BigInt) is True:
        return "bigint"
    if isinstance(value, str) is True:
        return "string"
    if isinstance(value, ScriptArray) is True:
        return "array"
    if isinstance(value, ScriptFunction) is True:
        return "function"
    if isinstance(value, ScriptObject) is True:
        return "object"
    raise ConversionError(f"{type(value).__name__} is not a script value")


def is_null_or_undefined(value: object) -> bool:
    """Report whether ``value`` is script ``null`` or ``undefined``."""
    return value is None or value is UNDEFINED
