"""
Core type definitions for templr.

This module contains fundamental type aliases used throughout templr for
type safety and consistency.
"""

from typing import Any

ScalarValue = str | int | float | bool | None

PlainValue = ScalarValue | list | dict

PlainMapping = dict[str, Any]
