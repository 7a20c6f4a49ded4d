"""Tests for configuration loading and validation."""

import pytest

from budget_recon.config import (
    ColumnMapping,
    LocaleSettings,
    ReconConfig,
    generate_default_config,
    get_default_config,
    load_config,
)
from budget_recon.utils.exceptions import ConfigurationError


class TestDefaults:
    def test_defaults_validate(self):
        config = ReconConfig(**get_default_config())
        assert config.locale.decimal_separator == ","
        assert config.mapping.date_format == "%d/%m/%Y"
        assert config.matching.duplicate_policy == "ledger"
        assert config.matching.duplicate_precedence == "before_exact"
        assert config.matching.reconcile_created is False

    def test_load_without_file_uses_defaults(self):
        config = load_config(None)
        assert config.config_file_path is None
        assert config.matching.max_workers == 4


class TestLoadConfig:
    """YAML files are merged over the defaults."""

    def test_partial_file_is_deep_merged(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "locale:\n"
            "  decimal_separator: '.'\n"
            "  digit_grouping: ','\n"
            "matching:\n"
            "  max_workers: 2\n"
        )
        config = load_config(path)

        assert config.locale.decimal_separator == "."
        assert config.matching.max_workers == 2
        assert config.matching.duplicate_policy == "ledger"
        assert config.config_file_path == str(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("matching: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("matching:\n  duplicate_policy: fuzzy\n")
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_generated_file_round_trips(self, tmp_path):
        path = tmp_path / "generated" / "config.yaml"
        generate_default_config(path)

        assert path.read_text().startswith("#")
        config = load_config(path)
        assert config.input.csv.delimiter == ";"


class TestValidators:
    def test_mapping_needs_an_amount_column(self):
        with pytest.raises(ValueError):
            ColumnMapping(amount=None)

    def test_mapping_accepts_debit_credit(self):
        mapping = ColumnMapping(amount=None, debit=3, credit=4)
        assert mapping.debit == 3

    def test_locale_separators_must_differ(self):
        with pytest.raises(ValueError):
            LocaleSettings(decimal_separator=",", digit_grouping=",")

    def test_locale_rejects_unknown_separator(self):
        with pytest.raises(ValueError):
            LocaleSettings(decimal_separator=";")
