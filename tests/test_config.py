# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for taxonomap.config value objects and environment loader."""

from __future__ import annotations

import dataclasses

import pytest

from taxonomap.config import (
    ClassifierConfig,
    ClassifierThresholds,
    ClassifierWeights,
    DeduplicationConfig,
    DiscoveryConfig,
    Settings,
    TreeBuilderOptions,
    load_settings,
)
from taxonomap.errors import ConfigurationError, TaxonomapError


class TestDefaults:
    def test_discovery_defaults(self):
        cfg = DiscoveryConfig()
        assert cfg.max_strategies == 10
        assert cfg.min_confidence == 0.3
        assert cfg.parallel is False
        assert cfg.early_exit is True
        assert cfg.timeout_s == 30.0

    def test_thresholds_are_lowered_values(self):
        t = ClassifierThresholds()
        assert (t.main_section, t.category, t.subcategory) == (0.40, 0.25, 0.15)

    def test_weights_sum_to_one(self):
        w = ClassifierWeights()
        total = sum(getattr(w, f.name) for f in dataclasses.fields(w))
        assert total == pytest.approx(1.0)

    def test_tree_defaults(self):
        opts = TreeBuilderOptions()
        assert opts.max_depth == 4
        assert opts.max_total_categories == 1000
        assert opts.max_categories_per_level == 50
        assert opts.memory_flush_threshold == 200

    def test_dedup_defaults(self):
        cfg = DeduplicationConfig()
        assert cfg.sample_size == 40
        assert cfg.alias_threshold == 0.9
        assert cfg.superset_threshold == 0.8
        assert "utm_source" in cfg.tracking_params

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DiscoveryConfig().parallel = True  # type: ignore[misc]


class TestValidation:
    def test_configuration_error_is_taxonomap_error(self):
        assert issubclass(ConfigurationError, TaxonomapError)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_strategies": 0},
            {"timeout_s": 0},
            {"strategy_timeout_s": -1},
            {"min_confidence": 1.5},
            {"learning_threshold": -0.1},
        ],
    )
    def test_bad_discovery_config(self, kwargs):
        with pytest.raises(ConfigurationError):
            DiscoveryConfig(**kwargs)

    @pytest.mark.parametrize(
        "values",
        [(0.3, 0.3, 0.1), (0.2, 0.3, 0.1), (1.2, 0.5, 0.1), (0.4, 0.25, -0.1)],
    )
    def test_thresholds_must_descend(self, values):
        main, cat, sub = values
        with pytest.raises(ConfigurationError):
            ClassifierThresholds(main_section=main, category=cat, subcategory=sub)

    def test_negative_weight(self):
        with pytest.raises(ConfigurationError, match="dom_position"):
            ClassifierWeights(dom_position=-0.1)

    def test_penalty_out_of_range(self):
        with pytest.raises(ConfigurationError):
            ClassifierConfig(utility_penalty=2.0)

    @pytest.mark.parametrize("name", ["max_depth", "max_total_categories", "max_categories_per_level"])
    def test_tree_limits_positive(self, name):
        with pytest.raises(ConfigurationError, match=name):
            TreeBuilderOptions(**{name: 0})

    def test_negative_delay(self):
        with pytest.raises(ConfigurationError):
            TreeBuilderOptions(request_delay_s=-1)

    def test_dedup_sample_size(self):
        with pytest.raises(ConfigurationError):
            DeduplicationConfig(sample_size=0)

    def test_dedup_threshold_range(self):
        with pytest.raises(ConfigurationError):
            DeduplicationConfig(alias_threshold=1.01)


class TestLoadSettings:
    def test_empty_environment_gives_defaults(self):
        settings = load_settings({})
        assert settings == Settings()
        assert settings.db_path == ""
        assert settings.log_level == "INFO"

    def test_reads_variables(self):
        env = {
            "TAXONOMAP_PARALLEL": "yes",
            "TAXONOMAP_MIN_CONFIDENCE": "0.45",
            "TAXONOMAP_DISCOVERY_TIMEOUT": "12.5",
            "TAXONOMAP_MAX_DEPTH": "2",
            "TAXONOMAP_MAX_TOTAL_CATEGORIES": "300",
            "TAXONOMAP_MAX_PER_LEVEL": "7",
            "TAXONOMAP_REQUEST_DELAY": "0",
            "TAXONOMAP_SAMPLE_SIZE": "20",
            "TAXONOMAP_ALIAS_THRESHOLD": "0.95",
            "TAXONOMAP_SUPERSET_THRESHOLD": "0.7",
            "TAXONOMAP_LOG_LEVEL": "DEBUG",
            "TAXONOMAP_JSON_LOGS": "1",
            "TAXONOMAP_DB_PATH": "/tmp/taxonomap.db",
        }
        s = load_settings(env)
        assert s.discovery.parallel is True
        assert s.discovery.min_confidence == 0.45
        assert s.discovery.timeout_s == 12.5
        assert s.tree.max_depth == 2
        assert s.tree.max_total_categories == 300
        assert s.tree.max_categories_per_level == 7
        assert s.tree.request_delay_s == 0.0
        assert s.dedup.sample_size == 20
        assert s.dedup.alias_threshold == 0.95
        assert s.dedup.superset_threshold == 0.7
        assert s.log_level == "DEBUG"
        assert s.json_logs is True
        assert s.db_path == "/tmp/taxonomap.db"

    def test_flag_false_values(self):
        assert load_settings({"TAXONOMAP_PARALLEL": "off"}).discovery.parallel is False

    def test_blank_values_use_defaults(self):
        assert load_settings({"TAXONOMAP_MAX_DEPTH": "  "}).tree.max_depth == 4

    def test_unparseable_number_names_variable(self):
        with pytest.raises(ConfigurationError, match="TAXONOMAP_MAX_DEPTH"):
            load_settings({"TAXONOMAP_MAX_DEPTH": "deep"})

    def test_out_of_range_value_rejected(self):
        with pytest.raises(ConfigurationError):
            load_settings({"TAXONOMAP_MIN_CONFIDENCE": "3"})

    def test_reads_os_environ_by_default(self, monkeypatch):
        monkeypatch.setenv("TAXONOMAP_MAX_PER_LEVEL", "9")
        assert load_settings().tree.max_categories_per_level == 9
