"""
Project configuration for templr.

Models the `.templr.yaml` project file. Only the sections that affect the
parser, the value resolver and the linter are modelled; other sections
(render, output, schema) are ignored. Validation failures are reported as
ConfigurationError.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from templr.exceptions import ConfigurationError
from templr.lint.policy import Policy, make_policy
from templr.parsing import Delimiters
from templr.reporting import resolve_format

PROJECT_CONFIG_FILE = ".templr.yaml"


class FilesConfig(BaseModel):
    """Template discovery settings."""

    model_config = ConfigDict(extra="ignore")

    extensions: list[str] = Field(default_factory=lambda: ["tpl"])
    helpers: list[str] = Field(default_factory=lambda: ["_helpers*.tpl"])
    default_values_file: str = ""


class TemplateConfig(BaseModel):
    """Template engine settings."""

    model_config = ConfigDict(extra="ignore")

    left_delimiter: str = "{{"
    right_delimiter: str = "}}"
    default_missing: str = "<no value>"


class LintConfig(BaseModel):
    """Lint rules as written in the project file."""

    model_config = ConfigDict(extra="ignore")

    fail_on_warn: bool = False
    fail_on_undefined: bool = False
    strict_mode: bool = False
    output_format: str = "text"
    exclude: list[str] = Field(default_factory=list)
    disallow_functions: list[str] = Field(default_factory=list)
    required_vars: list[str] = Field(default_factory=list)
    no_undefined_check: bool = False
    refine_includes: bool = False

    @field_validator("output_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        resolve_format(value)
        return value


class TemplrConfig(BaseModel):
    """
    The `.templr.yaml` project configuration.

    Examples:
        # All defaults
        config = TemplrConfig()

        # Partial override from a dict
        config = TemplrConfig.from_dict({"lint": {"fail_on_warn": True}})

        # From a YAML file
        config = load_config(".templr.yaml")
        policy = config.policy()
    """

    model_config = ConfigDict(extra="ignore")

    files: FilesConfig = Field(default_factory=FilesConfig)
    template: TemplateConfig = Field(default_factory=TemplateConfig)
    lint: LintConfig = Field(default_factory=LintConfig)

    @classmethod
    def from_dict(cls, config: dict[str, Any], source: str | None = None) -> "TemplrConfig":
        """
        Create from a dict, only overriding the given values.

        Params:
            config: Parsed configuration document
            source: File name used in error messages

        Raises:
            ConfigurationError: If a value is invalid
        """
        try:
            return cls.model_validate(config)
        except ValidationError as exc:
            raise ConfigurationError(f"invalid configuration: {exc}", source) from exc

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "TemplrConfig":
        """
        Create from a YAML file.

        An empty file yields the defaults.

        Raises:
            ConfigurationError: If the file is unreadable, not YAML, not a
                mapping, or holds invalid values
        """
        path = Path(yaml_path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigurationError(f"cannot read config: {exc.strerror or exc}", str(path)) from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"invalid YAML: {exc}", str(path)) from exc

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("configuration must be a mapping", str(path))
        return cls.from_dict(data, str(path))

    def policy(self) -> Policy:
        """Build the lint Policy described by the `lint` section."""
        lint = self.lint
        return make_policy(
            required_vars=lint.required_vars,
            disallow_functions=lint.disallow_functions,
            exclude_globs=lint.exclude,
            undefined_check_enabled=not lint.no_undefined_check,
            fail_on_warn=lint.fail_on_warn,
            fail_on_undefined=lint.fail_on_undefined,
            strict_mode=lint.strict_mode,
            refine_includes=lint.refine_includes,
        )

    def delimiters(self) -> Delimiters:
        """
        Return the configured delimiter pair.

        Raises:
            ConfigurationError: If the delimiters are empty, contain
                whitespace, or are identical
        """
        try:
            return Delimiters(self.template.left_delimiter, self.template.right_delimiter)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc


def load_config(path: str | Path | None = None) -> TemplrConfig:
    """
    Load the project configuration.

    Params:
        path: Config file; `.templr.yaml` in the working directory when
            omitted, defaults when that does not exist either

    Returns:
        The validated TemplrConfig
    """
    if path is None:
        candidate = Path(PROJECT_CONFIG_FILE)
        if not candidate.is_file():
            return TemplrConfig()
        path = candidate
    return TemplrConfig.from_yaml(path)
