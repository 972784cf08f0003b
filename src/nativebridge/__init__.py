"""Public package API for nativebridge."""

from nativebridge.adapter import FunctionSignature
from nativebridge.adapter import call
from nativebridge.adapter import call_as_constructor
from nativebridge.adapter import wrap_function
from nativebridge.adapter import wrap_overload_function
from nativebridge.adapter import wrap_script_callback
from nativebridge.api import create_engine
from nativebridge.api import def_class
from nativebridge.api import def_enum
from nativebridge.api import def_static_class
from nativebridge.builder import ClassMetaBuilder
from nativebridge.builder import EnumMetaBuilder
from nativebridge.converter import ConversionResult
from nativebridge.converter import ConverterRegistry
from nativebridge.converter import TypeConverter
from nativebridge.converter import from_script
from nativebridge.converter import register_converter
from nativebridge.converter import to_script
from nativebridge.converter import try_from_script
from nativebridge.engine import Engine
from nativebridge.errors import AccessError
from nativebridge.errors import BridgeError
from nativebridge.errors import ConversionError
from nativebridge.errors import ErrorKind
from nativebridge.errors import OwnershipError
from nativebridge.errors import RegistrationError
from nativebridge.errors import ScriptException
from nativebridge.instance import HolderKind
from nativebridge.instance import InstancePayload
from nativebridge.instance import NativeInstance
from nativebridge.meta import ClassMeta
from nativebridge.meta import EnumMeta
from nativebridge.polymorphic import ResolvedCastSource
from nativebridge.polymorphic import register_polymorphic_hook
from nativebridge.polymorphic import resolve_cast_source
from nativebridge.policy import ReturnValuePolicy
from nativebridge.scope import EngineScope
from nativebridge.scope import current_engine
from nativebridge.scope import current_engine_checked
from nativebridge.traits import Const
from nativebridge.traits import Float32
from nativebridge.traits import Float64
from nativebridge.traits import Int8
from nativebridge.traits import Int16
from nativebridge.traits import Int32
from nativebridge.traits import Int64
from nativebridge.traits import Pointer
from nativebridge.traits import Ref
from nativebridge.traits import RvalueRef
from nativebridge.traits import Shared
from nativebridge.traits import UInt8
from nativebridge.traits import UInt16
from nativebridge.traits import UInt32
from nativebridge.traits import UInt64
from nativebridge.values import UNDEFINED
from nativebridge.values import Arguments
from nativebridge.values import BigInt
from nativebridge.values import InstanceProxy
from nativebridge.values import ScriptArray
from nativebridge.values import ScriptClass
from nativebridge.values import ScriptFunction
from nativebridge.values import ScriptObject

__all__: list[str] = [
    "FunctionSignature",
    "call",
    "call_as_constructor",
    "wrap_function",
    "wrap_overload_function",
    "wrap_script_callback",
    "create_engine",
    "def_class",
    "def_enum",
    "def_static_class",
    "ClassMetaBuilder",
    "EnumMetaBuilder",
    "ConversionResult",
    "ConverterRegistry",
    "TypeConverter",
    "from_script",
    "register_converter",
    "to_script",
    "try_from_script",
    "Engine",
    "AccessError",
    "BridgeError",
    "ConversionError",
    "ErrorKind",
    "OwnershipError",
    "RegistrationError",
    "ScriptException",
    "HolderKind",
    "InstancePayload",
    "NativeInstance",
    "ClassMeta",
    "EnumMeta",
    "ResolvedCastSource",
    "register_polymorphic_hook",
    "resolve_cast_source",
    "ReturnValuePolicy",
    "EngineScope",
    "current_engine",
    "current_engine_checked",
    "Const",
    "Float32",
    "Float64",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Pointer",
    "Ref",
    "RvalueRef",
    "Shared",
    "UInt8",
    "UInt16",
    "UInt32",
    "UInt64",
    "UNDEFINED",
    "Arguments",
    "BigInt",
    "InstanceProxy",
    "ScriptArray",
    "ScriptClass",
    "ScriptFunction",
    "ScriptObject",
]
