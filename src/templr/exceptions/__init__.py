"""
templr exception classes.

This package provides all exception types used throughout templr for
consistent error handling and reporting.
"""

from templr.exceptions.core import (
    ConfigurationError,
    ErrorContext,
    RenderError,
    ScopeStackError,
    TemplateSyntaxError,
    TemplrError,
)

__all__ = [
    "TemplrError",
    "ConfigurationError",
    "ErrorContext",
    "RenderError",
    "ScopeStackError",
    "TemplateSyntaxError",
]
