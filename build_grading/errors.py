"""Exceptions raised by build-grading."""


class ConfigurationError(ValueError):
    """Malformed or inconsistent grading configuration or input."""
