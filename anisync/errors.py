from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A required setting is missing; callers must fail closed."""
