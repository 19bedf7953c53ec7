"""
Exception classes for templr.

This module defines the error taxonomy shared by the parser, the value tree
resolver, the lint engine and the execution engine. Recoverable template
problems never surface as exceptions on the lint path; they become findings.
"""

from dataclasses import dataclass


@dataclass
class ErrorContext:
    """
    Context information for error messages.

    Captures where an error occurred in template terms so that messages can
    point at the offending directive.

    Params:
        file: Template file the error belongs to
        line: 1-based line number of the directive
        column: 1-based column number of the directive
        directive: The raw directive text that caused the error
    """

    file: str | None = None
    line: int | None = None
    column: int | None = None
    directive: str | None = None

    def format_location(self) -> str:
        """
        Format location information as indented lines.

        Returns:
            Formatted location string, empty when nothing is known
        """
        lines = []

        if self.line is not None:
            where = f"line {self.line}"
            if self.column is not None:
                where += f", column {self.column}"
            lines.append(f"  at {where}")

        if self.file:
            lines.append(f"  in {self.file}")

        if self.directive:
            lines.append(f"  directive: {self.directive}")

        return "\n".join(lines)


class TemplrError(Exception):
    """Base exception for all templr errors."""

    pass


class ConfigurationError(TemplrError):
    """Raised when configuration or a data layer is unusable.

    This is fatal: it aborts a run before any template is analyzed.
    """

    def __init__(self, message: str, source: str | None = None):
        """
        Initialize the exception.

        Params:
            message: What is wrong with the configuration
            source: Optional file or layer name the problem came from
        """
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class TemplateSyntaxError(TemplrError):
    """Raised when a template with parse errors is handed to the renderer."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        """
        Initialize the exception.

        Params:
            message: Primary error message
            context: Optional location of the first parse error
        """
        self.context = context
        if context:
            location_info = context.format_location()
            if location_info:
                message = f"{message}\n{location_info}"
        super().__init__(message)


class RenderError(TemplrError):
    """Raised when template execution fails."""

    def __init__(self, message: str, context: ErrorContext | None = None):
        """
        Initialize the exception.

        Params:
            message: Primary error message
            context: Optional location of the directive being executed
        """
        self.context = context
        if context:
            location_info = context.format_location()
            if location_info:
                message = f"{message}\n{location_info}"
        super().__init__(message)


class ScopeStackError(TemplrError):
    """Raised when scope frames are not pushed and popped symmetrically.

    This signals a defect in the scope tracker, not a template problem.
    """

    def __init__(self, expected_depth: int, actual_depth: int, frame: str = ""):
        """
        Initialize the exception.

        Params:
            expected_depth: Depth the stack should have returned to
            actual_depth: Depth the stack actually has
            frame: Kind of the frame being closed
        """
        self.expected_depth = expected_depth
        self.actual_depth = actual_depth
        label = f" while closing '{frame}'" if frame else ""
        super().__init__(
            f"Unbalanced scope stack{label}: expected depth {expected_depth}, got {actual_depth}"
        )
