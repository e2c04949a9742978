from decimal import Decimal

import pytest

from bank_cash_recon.config import (
    ReconConfig,
    generate_default_config,
    get_default_config,
    load_config,
)
from bank_cash_recon.models.rules import ConditionOperator
from bank_cash_recon.utils.exceptions import ConfigurationError


class TestDefaults:
    def test_search_tiers(self):
        search = ReconConfig().search
        assert search.exact.tolerance == Decimal("0")
        assert search.exact.min_confidence == Decimal("0.7")
        assert search.close.tolerance == Decimal("0.05")
        assert search.fuzzy.tolerance == Decimal("0.10")
        assert search.fuzzy.search_in_identifier
        assert search.suggestion_bands == [
            Decimal("0.01"),
            Decimal("0.05"),
            Decimal("0.10"),
            Decimal("0.20"),
        ]

    def test_reconciliation_settings(self):
        settings = ReconConfig().reconciliation
        assert settings.value_bucket_width == Decimal("10")
        assert settings.probe_neighbor_buckets
        assert settings.date_tolerance_days == 1
        assert settings.exact_threshold == Decimal("0.95")
        assert settings.approximate_threshold == Decimal("0.8")

    def test_default_pix_rule(self):
        rules = ReconConfig().rules
        assert [r.id for r in rules] == ["pix_matching"]
        assert rules[0].conditions[1].operator == ConditionOperator.RANGE
        assert rules[0].conditions[1].tolerance == Decimal("0.01")

    def test_default_dict_is_yaml_friendly(self):
        data = get_default_config()
        assert "config_file_path" not in data
        assert data["rules"][0]["conditions"][0]["operator"] == "contains"


class TestLoadConfig:
    """Tests for load_config: YAML deep-merged over defaults."""

    def test_missing_path_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config.config_file_path is None
        assert config.input.delimiter == ";"

    def test_partial_override_keeps_other_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "reconciliation:\n"
            "  value_tolerance: 0.02\n"
            "input:\n"
            "  column_mappings:\n"
            "    amount: Amount\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.reconciliation.value_tolerance == Decimal("0.02")
        assert config.reconciliation.date_tolerance_days == 1
        assert config.input.column_mappings.amount == "Amount"
        assert config.input.column_mappings.date == "Data"
        assert config.config_file_path == str(path)

    def test_rules_are_replaced(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "rules:\n"
            "  - id: same_day\n"
            "    name: Same day\n"
            "    conditions:\n"
            "      - field: date\n"
            "        operator: equals\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert [r.id for r in config.rules] == ["same_day"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path).reconciliation.min_confidence == Decimal("0.3")

    @pytest.mark.parametrize(
        "content",
        [
            "reconciliation: [unclosed\n",
            "- just\n- a list\n",
            "reconciliation:\n  value_bucket_width: 0\n",
            "rules:\n  - id: bad\n    name: Bad\n    conditions:\n      - field: amount\n        operator: nope\n",
        ],
    )
    def test_invalid_files(self, tmp_path, content):
        path = tmp_path / "config.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(path)


def test_generated_config_round_trips(tmp_path):
    path = tmp_path / "nested" / "config.yaml"

    generate_default_config(path)
    config = load_config(path)

    assert path.read_text(encoding="utf-8").startswith("# Bank / cash register")
    assert config.model_dump(exclude={"config_file_path"}) == ReconConfig().model_dump(
        exclude={"config_file_path"}
    )
