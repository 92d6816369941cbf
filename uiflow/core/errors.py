"""
Exception types for uiflow-engine.

Evaluation never raises: unknown or malformed nodes degrade to
``unsupported`` and evaluate false. Only structurally broken input at
the public boundary raises.
"""


class UIFlowError(Exception):
    """Base class for engine errors."""
    pass


class ConfigurationError(UIFlowError):
    """Raised when a flow configuration document cannot be loaded."""
    pass


class InvalidCategoryError(UIFlowError, ValueError):
    """Raised when an element is registered with an unknown category."""

    def __init__(self, category: object):
        super().__init__(f"Invalid category: {category}")
        self.category = category
