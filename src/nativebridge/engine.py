"""Script engine host: class registry, proxies and their lifetime."""

import gc
import logging
import threading
import weakref
from collections.abc import Callable

from nativebridge.converter import DEFAULT_CONVERTERS
from nativebridge.converter import ConverterRegistry
from nativebridge.converter import from_script
from nativebridge.converter import to_script
from nativebridge.errors import AccessError
from nativebridge.errors import ConversionError
from nativebridge.errors import OwnershipError
from nativebridge.errors import RegistrationError
from nativebridge.errors import ScriptException
from nativebridge.instance import HolderKind
from nativebridge.instance import InstancePayload
from nativebridge.instance import NativeInstance
from nativebridge.meta import ClassMeta
from nativebridge.meta import EnumMeta
from nativebridge.meta import InstanceMethod
from nativebridge.meta import InstanceProperty
from nativebridge.meta import StaticProperty
from nativebridge.policy import ReturnValuePolicy
from nativebridge.policy import normalize_policy
from nativebridge.scope import EngineScope
from nativebridge.values import UNDEFINED
from nativebridge.values import Arguments
from nativebridge.values import FunctionCallback
from nativebridge.values import InstanceProxy
from nativebridge.values import PropertyAttribute
from nativebridge.values import ScriptClass
from nativebridge.values import ScriptFunction
from nativebridge.values import ScriptObject

logger = logging.getLogger(__name__)

_MEMBER_ATTRIBUTES: PropertyAttribute = PropertyAttribute.DONT_DELETE
_HIDDEN_ATTRIBUTES: PropertyAttribute = PropertyAttribute.DONT_DELETE | PropertyAttribute.DONT_ENUM
_ENUM_ENTRY_ATTRIBUTES: PropertyAttribute = PropertyAttribute.READ_ONLY | PropertyAttribute.DONT_DELETE


class _ManagedResource:
    """Native resource released when its script value is collected."""

    __slots__ = ("resource", "deleter", "finalizer")

    resource: object
    deleter: Callable[[object], None]
    finalizer: weakref.finalize

    def __init__(self, resource: object, deleter: Callable[[object], None], finalizer: weakref.finalize) -> None:
        self.resource = resource
        self.deleter = deleter
        self.finalizer = finalizer


def _finalize_managed_resource(engine_ref: "weakref.ReferenceType[Engine]", resource_id: int) -> None:
    """Release a managed resource after its script value was collected.

    :param engine_ref: Weak reference to the owning engine.
    :param resource_id: Managed resource identifier.
    """
    engine: Engine | None = engine_ref()
    if engine is None:
        return
    engine.release_resource_safely(resource_id)


def _validate_engine_name(name: str) -> str:
    """Validate an engine name.

    :param name: Requested name.
    :returns: Validated name.
    :raises ValueError: If the name is not a non-empty string.
    """
    if isinstance(name, str) is False or len(name.strip()) == 0:
        raise ValueError("Engine name must be a non-empty string")
    return name


class Engine:
    """One script execution context hosting bridged native classes."""

    _name: str
    _default_policy: ReturnValuePolicy
    _converters: ConverterRegistry
    _lock: threading.RLock
    _is_closed: bool
    _global: ScriptObject
    _registered_classes: dict[str, ClassMeta]
    _class_constructors: dict[ClassMeta, ScriptClass]
    _type_mapping: dict[type, ClassMeta]
    _registered_enums: dict[str, EnumMeta]
    _managed_resources: dict[int, _ManagedResource]
    _external_allocated_size: int
    _data: object

    def __init__(
        self,
        name: str = "engine",
        default_policy: "ReturnValuePolicy | str" = ReturnValuePolicy.AUTOMATIC,
        converters: ConverterRegistry | None = None,
    ) -> None:
        """Initialize an engine.

        :param name: Engine name used in logs and errors.
        :param default_policy: Policy used by ``Engine.to_script`` when the
            caller passes none.
        :param converters: Custom converter registry; the process-wide
            registry when omitted.
        :raises ValueError: If ``name`` or ``default_policy`` is invalid.
        """
        self._name = _validate_engine_name(name)
        self._default_policy = normalize_policy(default_policy)
        self._converters = converters if converters is not None else DEFAULT_CONVERTERS
        self._lock = threading.RLock()
        self._is_closed = False
        self._global = ScriptObject()
        self._global.set_to_string_tag("global")
        self._registered_classes = {}
        self._class_constructors = {}
        self._type_mapping = {}
        self._registered_enums = {}
        self._managed_resources = {}
        self._external_allocated_size = 0
        self._data = None

    @property
    def name(self) -> str:
        """Return the engine name used in logs and errors."""
        return self._name

    @property
    def default_policy(self) -> ReturnValuePolicy:
        """Return the policy ``to_script`` uses when none is given."""
        return self._default_policy

    @property
    def converters(self) -> ConverterRegistry:
        """Return the custom converter registry of this engine."""
        return self._converters

    @property
    def lock(self) -> threading.RLock:
        """Return the lock serializing access to this engine."""
        return self._lock

    @property
    def is_closed(self) -> bool:
        """Report whether this engine has been closed.

        :returns: ``True`` when closed.
        """
        with self._lock:
            return self._is_closed

    @property
    def external_allocated_size(self) -> int:
        """Return the declared size of live script-constructed instances."""
        with self._lock:
            return self._external_allocated_size

    @property
    def live_payload_count(self) -> int:
        """Return the number of payloads not yet released."""
        with self._lock:
            return len(self._managed_resources)

    def set_data(self, data: object) -> None:
        """Attach arbitrary user data to this engine."""
        self._data = data

    def get_data(self) -> object:
        return self._data

    def global_this(self) -> ScriptObject:
        return self._global

    def new_object(self) -> ScriptObject:
        return ScriptObject()

    def new_function(self, callback: FunctionCallback, name: str = "") -> ScriptFunction:
        """Create a script function backed by a native callback.

        :param callback: Callback receiving ``Arguments``.
        :param name: Function name.
        :returns: Script function.
        """
        return ScriptFunction(self, callback, name)

    def invoke_native(self, callback: Callable[..., object], *args: object) -> object:
        """Run a native callback on behalf of script code.

        Native exceptions never reach script code as such: they are
        translated into ``ScriptException`` with the original as the cause.

        :param callback: Native callback.
        :param args: Callback arguments.
        :returns: Callback result.
        :raises ScriptException: If the callback raised.
        :raises AccessError: If the engine is closed.
        """
        with EngineScope(self):
            try:
                return callback(*args)
            except ScriptException:
                raise
            except Exception as error:
                raise ScriptException.from_native(error) from error

    def get_class_meta(self, type_id: type) -> ClassMeta | None:
        """Look up the class registered for a native type.

        :param type_id: Native type.
        :returns: Class record, or ``None`` when unregistered.
        """
        return self._type_mapping.get(type_id)

    def get_class_constructor(self, meta: ClassMeta) -> ScriptClass | None:
        return self._class_constructors.get(meta)

    def register_class(self, meta: ClassMeta) -> ScriptClass:
        """Expose a native class to script code.

        :param meta: Class record.
        :returns: Script constructor, also mounted on the global object under
            the class's dotted name.
        :raises RegistrationError: On duplicate names or types, or an
            unusable base class.
        """
        with EngineScope(self):
            if meta.name in self._registered_classes:
                raise RegistrationError(f"Class already registered: {meta.name}")
            if meta.type_id is not None and meta.type_id in self._type_mapping:
                existing: ClassMeta = self._type_mapping[meta.type_id]
                raise RegistrationError(f"Type {meta.type_id.__qualname__} is already registered as {existing.name}")

            base_class: ScriptClass | None = None
            if meta.base is not None:
                if meta.base.has_constructor() is False:
                    raise RegistrationError(f"Base class must have a constructor: {meta.name}")
                base_class = self._class_constructors.get(meta.base)
                if base_class is None:
                    raise RegistrationError(f"Base class not registered: {meta.name}")

            script_class: ScriptClass = ScriptClass(self, meta, base_class)
            script_class.instance_prototype.set_to_string_tag(meta.name)
            if base_class is not None:
                script_class.set_prototype(base_class)
            self._build_static_members(script_class, meta)
            self._build_instance_members(script_class, meta)

            self._mount(meta.name, script_class)
            self._registered_classes[meta.name] = meta
            self._class_constructors[meta] = script_class
            if meta.type_id is not None:
                self._type_mapping[meta.type_id] = meta
        logger.debug("Registered class %s in engine %s", meta.name, self._name)
        return script_class

    def register_enum(self, meta: EnumMeta) -> ScriptObject:
        """Expose a native enumeration as a read-only object of numbers.

        :param meta: Enum record.
        :returns: Enum object, also mounted on the global object.
        :raises RegistrationError: If an enum of the same name exists.
        """
        with EngineScope(self):
            if meta.name in self._registered_enums:
                raise RegistrationError(f"Enum already registered: {meta.name}")
            enum_object: ScriptObject = ScriptObject()
            for entry in meta.entries:
                enum_object.define_own_property(entry.name, float(entry.value), _ENUM_ENTRY_ATTRIBUTES)
            enum_object.define_own_property(
                "$name",
                meta.name,
                PropertyAttribute.DONT_ENUM | PropertyAttribute.DONT_DELETE | PropertyAttribute.READ_ONLY,
            )
            enum_object.set_to_string_tag(meta.name)
            self._mount(meta.name, enum_object)
            self._registered_enums[meta.name] = meta
        logger.debug("Registered enum %s in engine %s", meta.name, self._name)
        return enum_object

    def _mount(self, name: str, value: ScriptObject) -> None:
        parts: list[str] = name.split(".")
        current: ScriptObject = self._global
        for part in parts[:-1]:
            existing: object = current.get(part)
            if existing is UNDEFINED:
                namespace: ScriptObject = ScriptObject()
                current.set(part, namespace)
                current = namespace
                continue
            if isinstance(existing, ScriptObject) is False:
                raise RegistrationError(f"Cannot mount {name}: {part} is not an object")
            current = existing
        current.set(parts[-1], value)

    def _build_static_members(self, script_class: ScriptClass, meta: ClassMeta) -> None:
        for prop in meta.static_meta.properties:
            getter, setter = self._static_accessor(prop)
            script_class.define_accessor(prop.name, getter, setter, _MEMBER_ATTRIBUTES)
        for function in meta.static_meta.functions:
            script_class.define_own_property(
                function.name,
                ScriptFunction(self, function.callback, function.name),
                _MEMBER_ATTRIBUTES,
            )

    def _static_accessor(
        self,
        prop: StaticProperty,
    ) -> tuple[Callable[[ScriptObject], object], Callable[[ScriptObject, object], None] | None]:
        def getter(this: ScriptObject) -> object:
            return self.invoke_native(prop.getter, self)

        if prop.setter is None:
            return getter, None

        def setter(this: ScriptObject, value: object) -> None:
            self.invoke_native(prop.setter, self, value)

        return getter, setter

    def _build_instance_members(self, script_class: ScriptClass, meta: ClassMeta) -> None:
        if meta.type_id is None:
            return
        prototype: ScriptObject = script_class.instance_prototype
        equals_function: ScriptFunction = ScriptFunction(self, self._equals_callback(meta), "$equals")
        prototype.define_own_property("$equals", equals_function, _HIDDEN_ATTRIBUTES)
        for method in meta.instance_meta.methods:
            prototype.define_own_property(
                method.name,
                ScriptFunction(self, self._method_callback(meta, method), method.name),
                _MEMBER_ATTRIBUTES,
            )
        for prop in meta.instance_meta.properties:
            getter, setter = self._instance_accessor(meta, prop)
            prototype.define_accessor(prop.name, getter, setter, _MEMBER_ATTRIBUTES)

    def _receiver_payload(self, this: object, meta: ClassMeta) -> InstancePayload:
        payload: InstancePayload | None = self.get_instance_payload(this)
        if payload is None or payload.define.is_a(meta) is False:
            raise AccessError(f"Illegal invocation: receiver is not a {meta.name} instance")
        if payload.is_finalized is True:
            raise AccessError(f"Native instance of class {payload.define.name} has already been destroyed")
        return payload

    def _method_callback(self, meta: ClassMeta, method: InstanceMethod) -> FunctionCallback:
        def callback(arguments: Arguments) -> object:
            payload: InstancePayload = self._receiver_payload(arguments.this, meta)
            return method.callback(payload, arguments)

        return callback

    def _instance_accessor(
        self,
        meta: ClassMeta,
        prop: InstanceProperty,
    ) -> tuple[Callable[[ScriptObject], object], Callable[[ScriptObject, object], None] | None]:
        def read(this: ScriptObject) -> object:
            payload: InstancePayload = self._receiver_payload(this, meta)
            return prop.getter(payload, Arguments(self, this, ()))

        def getter(this: ScriptObject) -> object:
            return self.invoke_native(read, this)

        if prop.setter is None:
            return getter, None

        def write(this: ScriptObject, value: object) -> None:
            payload: InstancePayload = self._receiver_payload(this, meta)
            prop.setter(payload, Arguments(self, this, (value,)))

        def setter(this: ScriptObject, value: object) -> None:
            self.invoke_native(write, this, value)

        return getter, setter

    def _equals_callback(self, meta: ClassMeta) -> FunctionCallback:
        def callback(arguments: Arguments) -> bool:
            payload: InstancePayload = self._receiver_payload(arguments.this, meta)
            other: InstancePayload | None = self.get_instance_payload(arguments[0])
            if other is None or other.is_finalized is True:
                return False
            lhs: object | None = payload.unwrap(meta.type_id, True)
            rhs: object | None = other.unwrap(meta.type_id, True)
            if lhs is None or rhs is None:
                return False
            equals = meta.equals
            if equals is None:
                return lhs is rhs
            return bool(equals(lhs, rhs))

        return callback

    def construct_from_script(self, script_class: ScriptClass, values: list[object]) -> InstanceProxy:
        """Handle ``new C(...)`` issued by script code.

        The constructor callback returns the new native object, which the
        engine then owns, or a ready ``NativeInstance``.

        :param script_class: Constructor being invoked.
        :param values: Script arguments.
        :returns: New proxy.
        :raises AccessError: If the class cannot be constructed.
        """
        meta: ClassMeta = script_class.meta
        constructor = meta.instance_meta.constructor
        if constructor is None or meta.type_id is None:
            raise AccessError(f"Native class {meta.name} cannot be constructed")
        created: object = constructor(Arguments(self, UNDEFINED, values))
        if created is None:
            raise AccessError(f"Native class {meta.name} cannot be constructed")
        instance: NativeInstance
        if isinstance(created, NativeInstance) is True:
            instance = created
        else:
            if isinstance(created, meta.type_id) is False:
                raise OwnershipError(
                    f"Constructor of {meta.name} returned {type(created).__qualname__}, "
                    f"expected {meta.type_id.__qualname__}"
                )
            instance = NativeInstance(meta, created, HolderKind.OWNED)
        return self._attach(meta, instance, True)

    def new_instance(self, meta: ClassMeta, instance: NativeInstance) -> InstanceProxy:
        """Wrap a native instance into a proxy of ``meta``'s class.

        :param meta: Registered class record.
        :param instance: Holder to attach.
        :returns: New proxy.
        :raises OwnershipError: If ``meta`` is not registered here.
        """
        with EngineScope(self):
            if meta not in self._class_constructors:
                raise OwnershipError(
                    f"The native class {meta.name} is not registered, so an instance cannot be constructed"
                )
            return self._attach(meta, instance, False)

    def _attach(self, meta: ClassMeta, instance: NativeInstance, construct_from_script: bool) -> InstanceProxy:
        script_class: ScriptClass = self._class_constructors[meta]
        proxy: InstanceProxy = InstanceProxy(script_class.instance_prototype)
        payload: InstancePayload = InstancePayload(instance, meta, self, construct_from_script)
        proxy._bind_payload(payload)
        with self._lock:
            if construct_from_script is True:
                self._external_allocated_size += meta.instance_size
            self.add_managed_resource(payload, proxy, self._delete_payload)
        logger.debug("Created %s proxy for %s", instance.kind.value, meta.name)
        return proxy

    def _delete_payload(self, resource: object) -> None:
        payload: InstancePayload = resource
        if payload.is_construct_from_script is True:
            self._external_allocated_size -= payload.define.instance_size
        payload._release_holder()

    def add_managed_resource(
        self,
        resource: object,
        value: ScriptObject,
        deleter: Callable[[object], None],
    ) -> None:
        """Release ``resource`` through ``deleter`` once ``value`` is collected.

        :param resource: Native resource; must not reference ``value``.
        :param value: Script value whose collection triggers the release.
        :param deleter: Release callback receiving ``resource``.
        """
        resource_id: int = id(resource)
        engine_ref: weakref.ReferenceType[Engine] = weakref.ref(self)
        finalizer: weakref.finalize = weakref.finalize(value, _finalize_managed_resource, engine_ref, resource_id)
        finalizer.atexit = False
        with self._lock:
            self._managed_resources[resource_id] = _ManagedResource(resource, deleter, finalizer)

    def release_managed_resource(self, resource_id: int) -> bool:
        """Release one managed resource now.

        The engine lock is taken first, so a collection callback arriving on
        another thread cannot race an in-flight call.

        :param resource_id: Managed resource identifier.
        :returns: ``True`` when a live resource was released.
        """
        with self._lock:
            entry: _ManagedResource | None = self._managed_resources.pop(resource_id, None)
            if entry is None:
                return False
            entry.finalizer.detach()
            entry.deleter(entry.resource)
        return True

    def release_resource_safely(self, resource_id: int) -> None:
        """Best-effort release used by collection callbacks.

        :param resource_id: Managed resource identifier.
        """
        try:
            self.release_managed_resource(resource_id)
        except Exception as error:
            logger.warning("Destructor hook failed in engine %s: %s", self._name, error)
            return
        logger.debug("Finalized collected payload in engine %s", self._name)

    def release_payload(self, payload: InstancePayload) -> bool:
        """Release one payload early; later member access raises.

        :param payload: Payload to release.
        :returns: ``True`` when the payload was still live.
        """
        with self._lock:
            entry: _ManagedResource | None = self._managed_resources.get(id(payload))
            if entry is None or entry.resource is not payload:
                return payload._release_holder()
            return self.release_managed_resource(id(payload))

    def destroy_instance(self, value: object) -> bool:
        """Release the native object behind a proxy before it is collected.

        :param value: Instance proxy.
        :returns: ``True`` when the payload was still live.
        :raises ConversionError: If ``value`` is not a native instance.
        """
        payload: InstancePayload | None = self.get_instance_payload(value)
        if payload is None:
            raise ConversionError("Argument is not a native instance")
        return self.release_payload(payload)

    def get_instance_payload(self, value: object) -> InstancePayload | None:
        """Return the payload carried by a proxy.

        :param value: Script value.
        :returns: Payload, or ``None`` when ``value`` is not a native instance.
        """
        if isinstance(value, InstanceProxy) is False:
            return None
        payload: InstancePayload | None = value.payload
        if payload is None or payload.engine is not self:
            return None
        return payload

    def is_instance_of(self, value: object, meta: ClassMeta) -> bool:
        """Report whether ``value``'s prototype chain includes ``meta``'s class."""
        script_class: ScriptClass | None = self._class_constructors.get(meta)
        if script_class is None or isinstance(value, ScriptObject) is False:
            return False
        prototype: ScriptObject | None = value.prototype
        while prototype is not None:
            if prototype is script_class.instance_prototype:
                return True
            prototype = prototype.prototype
        return False

    def set_reference_internal(self, parent: object, child: object) -> bool:
        """Keep ``parent`` reachable for as long as ``child`` is.

        :param parent: Parent proxy.
        :param child: Child proxy.
        :returns: ``False`` when either side is not a native instance proxy.
        """
        if isinstance(parent, InstanceProxy) is False or isinstance(child, InstanceProxy) is False:
            return False
        child._keep_alive(parent)
        return True

    def to_script(
        self,
        value: object,
        shape: object = None,
        policy: "ReturnValuePolicy | str | None" = None,
        parent: object = None,
    ) -> object:
        """Convert a native value inside this engine's scope.

        :param value: Native value.
        :param shape: Annotation or shape; inferred when ``None``.
        :param policy: Ownership policy; the engine default when ``None``.
        :param parent: Receiver object for ``REFERENCE_INTERNAL``.
        :returns: Script value.
        """
        resolved_policy: ReturnValuePolicy = self._default_policy if policy is None else normalize_policy(policy)
        with EngineScope(self):
            return to_script(self, value, shape, resolved_policy, parent)

    def from_script(self, value: object, shape: object) -> object:
        """Convert a script value inside this engine's scope."""
        with EngineScope(self):
            return from_script(self, value, shape)

    def gc(self) -> int:
        """Run a collection so unreachable proxies release their payloads.

        :returns: Number of objects the collector found unreachable.
        """
        return gc.collect()

    def close(self) -> None:
        """Close the engine and release every remaining payload."""
        with self._lock:
            if self._is_closed is True:
                return
            self._is_closed = True
            entries: list[_ManagedResource] = list(self._managed_resources.values())
            self._managed_resources.clear()
            for entry in entries:
                entry.finalizer.detach()
                try:
                    entry.deleter(entry.resource)
                except Exception as error:
                    logger.warning("Destructor hook failed while closing engine %s: %s", self._name, error)
            self._class_constructors.clear()
            self._registered_classes.clear()
            self._type_mapping.clear()
            self._registered_enums.clear()
        logger.debug("Closed engine %s, released %d payloads", self._name, len(entries))

    def __repr__(self) -> str:
        state: str = "closed" if self._is_closed is True else "open"
        return f"Engine({self._name!r}, {state})"
