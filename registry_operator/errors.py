"""Error types raised by the operator bootstrap."""

from __future__ import annotations


class OperatorError(Exception):
    """Base class for operator bootstrap errors."""


class ConfigurationError(OperatorError):
    """Invalid or unreadable configuration. Always fatal at startup."""


class TransportError(OperatorError):
    """Listener could not be bound or a connection failed."""


class RenderError(OperatorError):
    """Metrics exposition could not be rendered for one request."""
