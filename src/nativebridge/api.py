"""User-facing API entrypoints for nativebridge."""

import enum

from nativebridge.builder import ClassMetaBuilder
from nativebridge.builder import EnumMetaBuilder
from nativebridge.engine import Engine
from nativebridge.meta import ClassMeta
from nativebridge.meta import EnumMeta
from nativebridge.policy import ReturnValuePolicy


def def_class(cls: type, name: str | None = None) -> ClassMetaBuilder:
    """Start declaring a native class.

    :param cls: Native class.
    :param name: Hierarchical script name; defaults to ``cls.__name__``.
    :returns: Class builder.
    """
    return ClassMetaBuilder(cls, name)


def def_static_class(name: str) -> ClassMetaBuilder:
    """Start declaring a class that only carries static members.

    :param name: Hierarchical script name.
    :returns: Class builder.
    """
    return ClassMetaBuilder(None, name)


def def_enum(enum_cls: type[enum.Enum], name: str | None = None) -> EnumMetaBuilder:
    """Start declaring a native enumeration.

    :param enum_cls: Enum class with integral values.
    :param name: Hierarchical script name; defaults to ``enum_cls.__name__``.
    :returns: Enum builder.
    """
    return EnumMetaBuilder(enum_cls, name)


def create_engine(
    name: str = "engine",
    default_policy: ReturnValuePolicy | str = ReturnValuePolicy.AUTOMATIC,
    classes: list[ClassMeta] | None = None,
    enums: list[EnumMeta] | None = None,
) -> Engine:
    """Create an engine and register classes and enums in order.

    Base classes must precede their subclasses in ``classes``.

    :param name: Engine name.
    :param default_policy: Default return value policy.
    :param classes: Class records to register.
    :param enums: Enum records to register.
    :returns: New engine.
    """
    engine: Engine = Engine(name=name, default_policy=default_policy)
    for meta in classes or []:
        engine.register_class(meta)
    for enum_meta in enums or []:
        engine.register_enum(enum_meta)
    return engine
