"""Exceptions raised by the filename generation pipeline."""


class CallnameError(Exception):
    """Base class for all errors raised by this package."""


class TemplateSyntaxError(CallnameError, ValueError):
    """A filename template string could not be parsed."""

    def __init__(self, message: str, template: str, position: int):
        super().__init__(f"{message} at position {position}: {template!r}")
        self.template = template
        self.position = position


class InvalidDatePatternError(CallnameError, ValueError):
    """A custom date pattern contains an unsupported directive."""


class CallMismatchError(CallnameError, RuntimeError):
    """Call details were supplied for a call unrelated to the generator."""
