"""Custom error types for nativebridge."""

import enum
from typing import ClassVar


class ErrorKind(enum.Enum):
    """Classification tag carried by every bridge error."""

    REGISTRATION = "RegistrationError"
    CONVERSION = "ConversionError"
    OWNERSHIP = "OwnershipError"
    ACCESS = "AccessError"


class BridgeError(Exception):
    """Base class for all nativebridge errors."""

    kind: ClassVar[ErrorKind]
    message: str

    def __init__(self, message: str) -> None:
        """Initialize a bridge error.

        :param message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)


class RegistrationError(BridgeError):
    """Raised for duplicate or malformed class and enum registrations."""

    kind = ErrorKind.REGISTRATION


class ConversionError(BridgeError):
    """Raised when a script value does not match the requested native shape."""

    kind = ErrorKind.CONVERSION


class OwnershipError(BridgeError):
    """Raised when an ownership policy cannot be applied to a value."""

    kind = ErrorKind.OWNERSHIP


class AccessError(BridgeError):
    """Raised for const violations and access to destroyed native payloads."""

    kind = ErrorKind.ACCESS


class ScriptException(Exception):
    """Script-visible exception thrown across the bridge boundary."""

    kind: str
    message: str
    value: object

    def __init__(self, message: str, kind: str = "Error", value: object = None) -> None:
        """Initialize a script exception.

        :param message: Exception message.
        :param kind: Classification tag, a bridge error kind or a script error name.
        :param value: Thrown script value, when the script side threw one.
        """
        self.kind = kind
        self.message = message
        self.value = value
        super().__init__(f"Uncaught {kind}: {message}")

    @classmethod
    def from_native(cls, exc: BaseException) -> "ScriptException":
        """Translate a native-side exception into the script representation.

        :param exc: Exception raised by native code.
        :returns: Equivalent script exception.
        """
        if isinstance(exc, ScriptException) is True:
            return exc
        if isinstance(exc, BridgeError) is True:
            return cls(exc.message, exc.kind.value)
        return cls(f"{type(exc).__name__}: {exc}", "Error")
