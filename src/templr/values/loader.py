"""
Data file loading for value layers.

Reads YAML or JSON documents into plain mappings. Any problem reading or
decoding a layer is a ConfigurationError, which aborts the run before
analysis starts.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from templr.core.types import PlainMapping
from templr.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_VALUES_FILES = ("values.yaml", "values.yml")

YAML_SUFFIXES = (".yaml", ".yml")
JSON_SUFFIXES = (".json",)


def _require_mapping(data: Any, source: str) -> PlainMapping:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"top-level document must be a mapping, got {type(data).__name__}", source
        )
    return data


def parse_data_text(text: str, fmt: str | None = None, source: str = "<data>") -> PlainMapping:
    """
    Decode a YAML or JSON document.

    Params:
        text: Document text
        fmt: "yaml", "json", or None to try YAML first and then JSON
        source: Name used in error messages

    Returns:
        The decoded mapping; an empty document yields {}

    Raises:
        ConfigurationError: If the text cannot be decoded or is not a mapping
    """
    if fmt == "json":
        try:
            return _require_mapping(json.loads(text), source)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"json decode: {exc}", source) from exc

    try:
        return _require_mapping(yaml.safe_load(text), source)
    except yaml.YAMLError as yaml_exc:
        if fmt == "yaml":
            raise ConfigurationError(f"yaml decode: {yaml_exc}", source) from yaml_exc
        try:
            return _require_mapping(json.loads(text), source)
        except json.JSONDecodeError as json_exc:
            raise ConfigurationError(
                f"could not parse as YAML or JSON: {yaml_exc} / {json_exc}", source
            ) from json_exc


def load_data(path: str | Path) -> PlainMapping:
    """
    Load one data file.

    The format follows the file suffix: .yaml/.yml is YAML, .json is JSON,
    anything else is tried as YAML and then as JSON.

    Params:
        path: File to load

    Returns:
        The decoded mapping

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        raise ConfigurationError(f"cannot read data file: {exc.strerror or exc}", str(path)) from exc

    suffix = path.suffix.lower()
    fmt = "yaml" if suffix in YAML_SUFFIXES else "json" if suffix in JSON_SUFFIXES else None
    data = parse_data_text(text, fmt, str(path))
    logger.debug("loaded %d key(s) from %s", len(data), path)
    return data


def find_default_values(base_dir: str | Path) -> Path | None:
    """Return the first default values file present in base_dir, if any."""
    for name in DEFAULT_VALUES_FILES:
        candidate = Path(base_dir) / name
        if candidate.is_file():
            return candidate
    return None


def load_default_values(base_dir: str | Path) -> PlainMapping:
    """
    Load the auto-discovered default values file of a directory.

    Params:
        base_dir: Directory to look in

    Returns:
        The decoded mapping, or {} when no default file exists
    """
    candidate = find_default_values(base_dir)
    if candidate is None:
        logger.debug("no default values file in %s", base_dir)
        return {}
    return load_data(candidate)
