"""Tests for script/native value conversion."""

import math
from typing import Optional
from typing import Union

import pytest

from nativebridge import UNDEFINED
from nativebridge import AccessError
from nativebridge import BigInt
from nativebridge import ConversionError
from nativebridge import ConverterRegistry
from nativebridge import Engine
from nativebridge import EngineScope
from nativebridge import Float32
from nativebridge import Int8
from nativebridge import Int32
from nativebridge import Int64
from nativebridge import ScriptArray
from nativebridge import ScriptObject
from nativebridge import TypeConverter
from nativebridge import UInt8
from nativebridge import UInt32
from nativebridge import UInt64
from nativebridge import from_script
from nativebridge import to_script
from nativebridge import try_from_script
from tests.fixtures.native_types import Color


class Money:
    """Value type converted by a custom converter."""

    cents: int

    def __init__(self, cents: int) -> None:
        self.cents = cents


class MoneyConverter(TypeConverter):
    """Render money as a decimal string."""

    def to_script(self, engine, value, shape, policy, parent) -> object:
        return f"{value.cents / 100:.2f}"

    def from_script(self, engine, value, shape) -> object:
        if isinstance(value, str) is False:
            raise ConversionError("money must be a string")
        return Money(round(float(value) * 100))


@pytest.mark.parametrize(
    "value,annotation",
    [
        (True, bool),
        (-5, Int32),
        (4_000_000_000, UInt32),
        (-(2**63), Int64),
        (2**64 - 1, UInt64),
        (3.5, float),
        ("héllo", str),
        (7, Optional[int]),
        (None, Optional[int]),
        ([1, 2, 3], list[int]),
        ({"a": 1, "b": 2}, dict[str, int]),
        ((1, "x"), tuple[int, str]),
        (5, Union[int, str]),
        ("s", Union[int, str]),
        (None, None),
    ],
)
def test_value_survives_script_roundtrip(scope: Engine, value: object, annotation: object) -> None:
    """Converting to script and back should yield an equal native value."""
    script_value: object = to_script(scope, value, annotation)
    restored: object = from_script(scope, script_value, annotation)
    assert restored == value
    assert type(restored) is type(value)


def test_numbers_become_floats_or_bigints(scope: Engine) -> None:
    """Plain and narrow integers are numbers; 64-bit integers are bigints."""
    assert to_script(scope, 5, int) == 5.0
    assert isinstance(to_script(scope, 5, Int32), float) is True
    assert to_script(scope, 5, Int64) == BigInt(5)
    assert to_script(scope, 2**60, int) == BigInt(2**60)
    assert to_script(scope, 2**53 - 1, int) == float(2**53 - 1)


def test_fixed_width_outgoing_integers_are_range_checked(scope: Engine) -> None:
    """Outgoing values outside the declared width are rejected."""
    with pytest.raises(ConversionError, match="out of range"):
        to_script(scope, 2**31, Int32)
    with pytest.raises(ConversionError, match="out of range"):
        to_script(scope, -1, UInt8)


def test_incoming_numbers_truncate_and_wrap(scope: Engine) -> None:
    """Script numbers are truncated toward zero, then wrapped to the width."""
    assert from_script(scope, 3.9, Int32) == 3
    assert from_script(scope, -3.9, Int32) == -3
    assert from_script(scope, 300, UInt8) == 44
    assert from_script(scope, 128, Int8) == -128
    assert from_script(scope, float(2**32 + 5), UInt32) == 5
    assert from_script(scope, BigInt(2**64 + 1), UInt64) == 1
    assert from_script(scope, BigInt(-1), UInt64) == 2**64 - 1


def test_incoming_numbers_reject_non_finite_and_booleans(scope: Engine) -> None:
    """NaN, infinities and booleans are not integers."""
    with pytest.raises(ConversionError):
        from_script(scope, math.nan, int)
    with pytest.raises(ConversionError):
        from_script(scope, math.inf, Int32)
    with pytest.raises(ConversionError):
        from_script(scope, True, int)
    with pytest.raises(ConversionError):
        from_script(scope, 1, bool)


def test_float32_is_narrowed(scope: Engine) -> None:
    """Single precision values lose precision in both directions."""
    narrowed: object = to_script(scope, 0.1, Float32)
    assert narrowed != 0.1
    assert abs(narrowed - 0.1) < 1e-7
    assert from_script(scope, 0.1, Float32) == narrowed
    assert to_script(scope, 1e300, Float32) == math.inf


def test_byte_strings_are_decoded_as_utf8(scope: Engine) -> None:
    """Byte strings leave native code as text and may come back as bytes."""
    assert to_script(scope, b"caf\xc3\xa9", str) == "café"
    assert to_script(scope, bytearray(b"ab"), str) == "ab"
    assert to_script(scope, b"xy") == "xy"
    assert from_script(scope, "café", bytes) == b"caf\xc3\xa9"
    with pytest.raises(ConversionError, match="UTF-8"):
        to_script(scope, b"\xff", str)


def test_enums_cross_as_numbers(scope: Engine) -> None:
    """Enum members become their integral value and come back as members."""
    assert to_script(scope, Color.GREEN, Color) == 2.0
    assert to_script(scope, Color.BLUE) == 4.0
    assert from_script(scope, 4, Color) is Color.BLUE
    with pytest.raises(ConversionError):
        from_script(scope, 3, Color)


def test_unit_shape_is_strict(scope: Engine) -> None:
    """Only null and undefined convert to ``None``."""
    assert from_script(scope, None, None) is None
    assert from_script(scope, UNDEFINED, None) is None
    with pytest.raises(ConversionError):
        from_script(scope, 0, None)
    with pytest.raises(ConversionError):
        to_script(scope, 0, None)


def test_optional_accepts_undefined(scope: Engine) -> None:
    """Undefined is an absent optional."""
    assert from_script(scope, UNDEFINED, Optional[str]) is None
    assert from_script(scope, "x", Optional[str]) == "x"


def test_mapping_keys_must_be_string_like(scope: Engine) -> None:
    """Mappings become objects, so their keys must be strings."""
    with pytest.raises(ConversionError, match="string-like"):
        to_script(scope, {1: 2}, dict[int, int])
    with pytest.raises(ConversionError, match="string-like"):
        to_script(scope, {1: 2})
    converted: object = to_script(scope, {"k": [1, 2]})
    assert isinstance(converted, ScriptObject) is True
    assert converted.get("k") == ScriptArray([1.0, 2.0])


def test_mapping_from_script_requires_plain_object(scope: Engine) -> None:
    """Arrays and functions are not mappings."""
    with pytest.raises(ConversionError):
        from_script(scope, ScriptArray([1.0]), dict[str, int])
    plain: ScriptObject = ScriptObject.from_mapping({"a": 1.5})
    assert from_script(scope, plain, dict[str, float]) == {"a": 1.5}


def test_tuple_length_must_match(scope: Engine) -> None:
    """Tuples convert only at their exact length."""
    with pytest.raises(ConversionError, match="length mismatch"):
        from_script(scope, ScriptArray([1.0]), tuple[int, str])
    with pytest.raises(ConversionError):
        to_script(scope, (1, "x", 3), tuple[int, str])


def test_sequence_conversion_is_all_or_nothing(scope: Engine) -> None:
    """One bad element fails the whole sequence."""
    with pytest.raises(ConversionError):
        from_script(scope, ScriptArray([1.0, "x"]), list[int])
    with pytest.raises(ConversionError):
        to_script(scope, "abc", list[str])
    assert from_script(scope, ScriptArray([1.0, 2.0]), set[int]) == {1, 2}


def test_union_prefers_first_declared_alternative(scope: Engine) -> None:
    """Incoming values take the first alternative that converts."""
    as_float: object = from_script(scope, 3.0, Union[float, int])
    as_int: object = from_script(scope, 3.0, Union[int, float])
    assert isinstance(as_float, float) is True
    assert isinstance(as_int, int) is True
    assert from_script(scope, "s", int | str) == "s"


def test_union_order_survives_equal_annotations(scope: Engine) -> None:
    """Unions that compare equal still keep their own declaration order."""
    assert Union[int, float] == Union[float, int]
    assert from_script(scope, 1.5, Union[int, float]) == 1
    assert from_script(scope, 1.5, Union[float, int]) == 1.5
    assert from_script(scope, 1.5, float | int) == 1.5
    assert from_script(scope, 1.5, int | float) == 1
    nested_int: object = from_script(scope, ScriptArray([2.5]), list[int | float])
    nested_float: object = from_script(scope, ScriptArray([2.5]), list[float | int])
    assert nested_int == [2]
    assert nested_float == [2.5]


def test_union_without_match_reports_it(scope: Engine) -> None:
    """A value matching no alternative fails with a clear message."""
    with pytest.raises(ConversionError, match="no matching type found"):
        from_script(scope, True, Union[int, str])
    with pytest.raises(ConversionError, match="no matching type found"):
        to_script(scope, 1.5, Union[int, str])


def test_mismatch_messages_name_the_value_kind(scope: Engine) -> None:
    """Script values are named by script kind, native values by class."""
    with pytest.raises(ConversionError, match="Cannot convert string to bool"):
        from_script(scope, "yes", bool)
    with pytest.raises(ConversionError, match="Cannot convert array to bool"):
        from_script(scope, ScriptArray([]), bool)
    with pytest.raises(ConversionError, match="Cannot convert Money to bool"):
        to_script(scope, Money(1), bool)


def test_try_from_script_reports_failure_as_result(scope: Engine) -> None:
    """Expected mismatches do not raise through ``try_from_script``."""
    failed = try_from_script(scope, "x", int)
    succeeded = try_from_script(scope, 2.0, int)
    assert failed.ok is False
    assert isinstance(failed.error, ConversionError) is True
    assert succeeded.ok is True
    assert succeeded.unwrap() == 2
    with pytest.raises(ConversionError):
        failed.unwrap()


def test_conversion_requires_entered_engine(engine: Engine) -> None:
    """Converting outside the engine's scope is an access error."""
    with pytest.raises(AccessError):
        to_script(engine, 1, int)
    with pytest.raises(AccessError):
        from_script(engine, 1.0, int)
    assert engine.to_script(1, int) == 1.0
    assert engine.from_script(1.0, int) == 1


def test_other_engine_scope_is_not_enough(engine: Engine) -> None:
    """Only the innermost entered engine may convert."""
    other: Engine = Engine(name="other")
    try:
        with EngineScope(engine):
            with EngineScope(other):
                with pytest.raises(AccessError):
                    to_script(engine, 1, int)
                assert to_script(other, 1, int) == 1.0
            assert to_script(engine, 1, int) == 1.0
    finally:
        other.close()


def test_custom_converter_takes_precedence() -> None:
    """A registered converter handles its type and subclasses."""
    registry: ConverterRegistry = ConverterRegistry()
    registry.register(Money, MoneyConverter())
    money_engine: Engine = Engine(name="money", converters=registry)
    try:
        with EngineScope(money_engine):
            assert to_script(money_engine, Money(250), Money) == "2.50"
            assert from_script(money_engine, "1.25", Money).cents == 125
            assert to_script(money_engine, [Money(5)], list[Money]) == ScriptArray(["0.05"])
    finally:
        money_engine.close()


def test_converter_registry_lookup_follows_mro() -> None:
    """Subclasses inherit their base type's converter until unregistered."""

    class Euro(Money):
        """Money subclass."""

    registry: ConverterRegistry = ConverterRegistry()
    converter: MoneyConverter = MoneyConverter()
    registry.register(Money, converter)
    copied: ConverterRegistry = registry.copy()
    assert registry.find(Euro) is converter
    registry.unregister(Money)
    assert registry.find(Euro) is None
    assert copied.find(Euro) is converter
    with pytest.raises(TypeError):
        registry.register("Money", converter)
