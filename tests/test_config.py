"""
Tests for project configuration loading.
"""

import pytest

from templr.config import PROJECT_CONFIG_FILE, TemplrConfig, load_config
from templr.exceptions import ConfigurationError
from templr.parsing import Delimiters


class TestTemplrConfig:
    """Tests for the configuration model."""

    def test_defaults(self):
        """Test the built-in defaults."""
        config = TemplrConfig()
        assert config.files.extensions == ["tpl"]
        assert config.files.helpers == ["_helpers*.tpl"]
        assert config.template.default_missing == "<no value>"
        assert config.lint.output_format == "text"
        assert config.delimiters() == Delimiters("{{", "}}")

    def test_policy_from_lint_section(self):
        """Test the lint section becomes a Policy."""
        config = TemplrConfig.from_dict(
            {
                "lint": {
                    "fail_on_warn": True,
                    "required_vars": ["service.name"],
                    "disallow_functions": ["env"],
                    "exclude": ["secrets.*"],
                    "no_undefined_check": True,
                    "refine_includes": True,
                }
            }
        )
        policy = config.policy()
        assert policy.fail_on_warn
        assert policy.required_vars == ("service.name",)
        assert policy.disallow_functions == ("env",)
        assert policy.exclude_globs == ("secrets.*",)
        assert not policy.undefined_check_enabled
        assert policy.refine_includes

    def test_partial_override(self):
        """Test unspecified values keep their defaults."""
        config = TemplrConfig.from_dict({"template": {"left_delimiter": "[["}})
        assert config.template.left_delimiter == "[["
        assert config.template.right_delimiter == "}}"
        assert config.files.extensions == ["tpl"]

    def test_unknown_sections_ignored(self):
        """Test sections that are not modelled are accepted."""
        config = TemplrConfig.from_dict({"render": {"dry_run": True}, "schema": {"path": "x"}})
        assert config == TemplrConfig()

    def test_github_actions_format_alias(self):
        """Test the older annotation format name is accepted."""
        assert TemplrConfig.from_dict({"lint": {"output_format": "github-actions"}}).lint.output_format == "github-actions"

    @pytest.mark.parametrize(
        "data",
        [
            {"lint": {"output_format": "xml"}},
            {"lint": {"fail_on_warn": "maybe"}},
            {"files": {"extensions": "tpl"}},
        ],
    )
    def test_invalid_values(self, data):
        """Test invalid values are configuration errors."""
        with pytest.raises(ConfigurationError, match="invalid configuration"):
            TemplrConfig.from_dict(data, ".templr.yaml")

    def test_invalid_policy(self):
        """Test bad lint rules surface when the policy is built."""
        config = TemplrConfig.from_dict({"lint": {"required_vars": ["a..b"]}})
        with pytest.raises(ConfigurationError, match="invalid lint policy"):
            config.policy()

    def test_custom_delimiters(self):
        """Test the delimiter pair is built from the template section."""
        config = TemplrConfig.from_dict({"template": {"left_delimiter": "[[", "right_delimiter": "]]"}})
        assert config.delimiters() == Delimiters("[[", "]]")

    def test_invalid_delimiters(self):
        """Test identical delimiters are rejected."""
        config = TemplrConfig.from_dict({"template": {"left_delimiter": "%%", "right_delimiter": "%%"}})
        with pytest.raises(ConfigurationError, match="must differ"):
            config.delimiters()


class TestLoadConfig:
    """Tests for reading configuration files."""

    def test_from_yaml(self, write_file):
        """Test loading a project file."""
        path = write_file(PROJECT_CONFIG_FILE, "lint:\n  strict_mode: true\n")
        assert TemplrConfig.from_yaml(path).policy().strict_mode

    def test_empty_file(self, write_file):
        """Test an empty file gives the defaults."""
        assert TemplrConfig.from_yaml(write_file("empty.yaml", "")) == TemplrConfig()

    def test_not_a_mapping(self, write_file):
        """Test a top-level list is rejected."""
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            TemplrConfig.from_yaml(write_file("list.yaml", "- a\n"))

    def test_invalid_yaml(self, write_file):
        """Test malformed YAML is rejected."""
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            TemplrConfig.from_yaml(write_file("bad.yaml", "lint: [\n"))

    def test_missing_file(self, tmp_path):
        """Test an unreadable file is rejected."""
        with pytest.raises(ConfigurationError, match="cannot read config"):
            TemplrConfig.from_yaml(tmp_path / "missing.yaml")

    def test_default_location(self, tmp_path, monkeypatch, write_file):
        """Test the project file in the working directory is picked up."""
        monkeypatch.chdir(tmp_path)
        assert load_config() == TemplrConfig()
        write_file(PROJECT_CONFIG_FILE, "lint:\n  fail_on_warn: true\n")
        assert load_config().lint.fail_on_warn
