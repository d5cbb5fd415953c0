"""
Custom exceptions for EchoBench.

Provides specific exception types for better error handling and debugging.
"""


class EchoBenchError(Exception):
    """Base exception for all EchoBench errors."""
    pass


# ---------------- Channel Errors ----------------

class ChannelError(EchoBenchError):
    """Base class for transport channel errors."""
    pass


class ConnectError(ChannelError):
    """Channel failed to open. Fatal to the run."""

    def __init__(self, address: str, reason: str = "unknown"):
        super().__init__(f"Failed to connect to {address}: {reason}")
        self.address = address
        self.reason = reason


class ChannelClosedError(ChannelError):
    """Operation on a channel that is not open."""
    pass


# ---------------- Codec Errors ----------------

class CodecError(EchoBenchError):
    """Base class for wire format errors."""
    pass


class MalformedResponseError(CodecError):
    """Response payload carries no readable sequence tag."""
    pass


class TagRangeError(CodecError):
    """Sequence tag cannot be represented by the encoding."""

    def __init__(self, tag: int, max_tag: int):
        super().__init__(f"Sequence tag {tag} out of range (max {max_tag})")
        self.tag = tag
        self.max_tag = max_tag


# ---------------- Configuration Errors ----------------

class ValidationError(EchoBenchError):
    """Input validation failed."""
    pass


class InvalidConfigError(ValidationError):
    """A configuration value is invalid."""

    def __init__(self, field: str, value, reason: str):
        super().__init__(f"Invalid {field}={value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class UnknownTransportError(ValidationError):
    """No transport matches the given name or address scheme."""

    def __init__(self, name: str):
        super().__init__(f"Unknown transport: '{name}'")
        self.name = name
