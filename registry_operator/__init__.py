"""registry-operator - cluster image registry operator bootstrap."""

__version__ = "0.1.0"
__logo__ = "📦"
