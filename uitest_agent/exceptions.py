class UITestAgentError(Exception):
    """Base class for agent errors."""


class NavigationError(UITestAgentError):
    """Raised when the start page cannot be opened."""


class InstructionParseError(UITestAgentError):
    """Raised when the decision oracle returns an unusable instruction."""


class ConfigurationError(UITestAgentError):
    """Raised for invalid or missing configuration."""
