"""
PostScript Cross-Compiler Errors
Every error is fatal: compilation stops at the first one raised
"""

from typing import Optional


class PSCError(Exception):
    def __init__(self, message: str, line: Optional[int] = None):
        self.message = message
        self.line = line
        if line is not None:
            super().__init__(f"line {line}: {message}")
        else:
            super().__init__(message)


class LexError(PSCError):
    """Malformed or unterminated literal in the source text."""


class UnknownOperatorError(PSCError):
    """Identifier that is neither an operator nor a known dictionary entry."""

    def __init__(self, token: str, line: Optional[int] = None, stack_dump: str = ''):
        self.token = token
        self.stack_dump = stack_dump
        super().__init__(f"Unknown identifier ({token})", line)


class UnsupportedConstructError(PSCError):
    """Operator used in a shape that cannot be modeled at compile time."""


class MalformedStateError(PSCError):
    """Internal invariant violation in the symbolic stack tracker."""

    def __init__(self, message: str, line: Optional[int] = None, stack_dump: str = ''):
        self.stack_dump = stack_dump
        if stack_dump:
            message = f"{message}\n{stack_dump}"
        super().__init__(message, line)


class ConfigError(PSCError):
    """Invalid compiler configuration."""
