"""
Canonical path utilities for templr.

A canonical path is a dot-separated string naming a location in the merged
value tree, rooted at the top-level context (e.g. "service.ports.http").
The empty string names the root itself.
"""

from dataclasses import dataclass
from fnmatch import fnmatchcase

PATH_SEPARATOR = "."


@dataclass
class PathComponents:
    """Result of splitting a path into its components."""

    first_part: str
    remainder: str
    has_remainder: bool

    @classmethod
    def split_path(cls, path: str) -> "PathComponents":
        """
        Split a path at the first dot separator.

        Params:
            path: Path string to split (e.g., "service.ports.http")

        Returns:
            PathComponents with first_part, remainder, and has_remainder flag

        Examples:
            "service.ports.http" -> PathComponents("service", "ports.http", True)
            "name" -> PathComponents("name", "", False)
        """
        if not path or PATH_SEPARATOR not in path:
            return cls(first_part=path, remainder="", has_remainder=False)

        first_part, remainder = path.split(PATH_SEPARATOR, 1)
        return cls(first_part=first_part, remainder=remainder, has_remainder=True)


def split_path_components(path: str) -> list[str]:
    """
    Split a canonical path into all its components.

    Params:
        path: Path to split (e.g., "service.ports.http")

    Returns:
        List of path components, empty for the root path

    Examples:
        "service.ports.http" -> ["service", "ports", "http"]
        "" -> []
    """
    if not path:
        return []
    return path.split(PATH_SEPARATOR)


def join_path(base: str, steps: tuple[str, ...] | list[str]) -> str:
    """
    Append literal steps to a base canonical path.

    Params:
        base: Canonical base path, "" for the root
        steps: Field names to append

    Returns:
        The combined canonical path
    """
    parts = split_path_components(base) + list(steps)
    return PATH_SEPARATOR.join(parts)


def parent_path(path: str) -> str:
    """Return the canonical path of the enclosing map ("" for top-level keys)."""
    components = PathComponents.split_path(path)
    if not components.has_remainder:
        return ""
    return path.rsplit(PATH_SEPARATOR, 1)[0]


def validate_path_format(path: str, path_type: str = "path") -> None:
    """
    Validate basic canonical path format requirements.

    Params:
        path: Path string to validate
        path_type: Type description for error messages

    Raises:
        ValueError: If path format is invalid
    """
    if not path or not isinstance(path, str):
        raise ValueError(f"{path_type} must be a non-empty string")

    if path.strip() != path:
        raise ValueError(f"{path_type} must not have leading or trailing whitespace")

    if any(not part for part in path.split(PATH_SEPARATOR)):
        raise ValueError(f"{path_type} '{path}' contains an empty segment")


def matches_any(candidate: str, patterns: tuple[str, ...] | list[str]) -> bool:
    """
    Check a path or file name against shell-style glob patterns.

    Params:
        candidate: Canonical path or file path to test
        patterns: Glob patterns (fnmatch syntax, case-sensitive)

    Returns:
        True if any pattern matches
    """
    return any(fnmatchcase(candidate, pattern) for pattern in patterns)
