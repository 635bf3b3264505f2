# Test suite for settings

import json
import logging

import pytest

from context_budget.config.settings import BudgetSettings
from context_budget.exceptions import ConfigurationError, ValidationError
from context_budget.model_manager import DEFAULT_CATALOG, ModelCatalog, ModelMetaData
from context_budget.structs import CallType


class TestBudgetSettings:
    """Test suite for BudgetSettings"""

    def test_defaults(self):
        settings = BudgetSettings(_env_file=None)
        limits = settings.limits()
        assert limits.max_conversation_tokens is None
        assert limits.max_history_length == 1000
        assert settings.strong_reference_threshold == 0.85
        assert settings.catalog() is DEFAULT_CATALOG

    def test_log_level_normalized(self):
        """Test that the log level is upper-cased"""
        assert BudgetSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            BudgetSettings(_env_file=None, log_level="chatty")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_conversation_steps": 0},
            {"max_conversation_tokens": 0},
            {"max_history_length": -1},
            {"packer_safety_margin": -1},
            {"strong_reference_threshold": 1.5},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Test that out-of-range values are rejected"""
        with pytest.raises(ValidationError):
            BudgetSettings(_env_file=None, **kwargs)

    def test_blank_persona_disabled(self):
        assert BudgetSettings(_env_file=None, persona="   ").persona is None

    def test_environment(self, monkeypatch):
        """Test that unprefixed, case-insensitive environment variables are read"""
        monkeypatch.setenv("MAX_CONVERSATION_STEPS", "5")
        monkeypatch.setenv("max_conversation_tokens", "2000")
        limits = BudgetSettings(_env_file=None).limits()
        assert limits.max_conversation_steps == 5
        assert limits.max_conversation_tokens == 2000

    def test_env_file(self, tmp_path):
        """Test loading values from a .env file"""
        env_file = tmp_path / ".env"
        env_file.write_text("DEFAULT_MODEL=o3-mini\nPERSONA=Be terse\n", encoding="utf-8")
        settings = BudgetSettings(_env_file=env_file)
        assert settings.default_model == "o3-mini"
        assert settings.persona == "Be terse"


class TestCatalogFile:
    """Test suite for loading model metadata from JSON"""

    def test_catalog_path(self, tmp_path):
        """Test that file entries extend the built-in catalog"""
        path = tmp_path / "models.json"
        path.write_text(
            json.dumps({"models": {"local-llm": {"context_size": 4096, "call_type": "tools"}}}),
            encoding="utf-8",
        )
        catalog = BudgetSettings(_env_file=None, model_catalog_path=path).catalog()

        assert catalog.context_size("local-llm") == 4096
        assert catalog.call_type("local-llm") == CallType.TOOLS
        assert "gpt-4o" in catalog

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ModelCatalog.from_json(tmp_path / "absent.json")

    def test_invalid_entry(self, tmp_path):
        """Test that bad metadata is reported as a configuration error"""
        path = tmp_path / "models.json"
        path.write_text(json.dumps({"models": {"bad": {"context_size": "lots"}}}), encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            ModelCatalog.from_json(path)
        assert exc_info.value.model_name == "bad"

    def test_immutable_updates(self):
        """Test that with_model/without_model return new catalogs"""
        extra = ModelMetaData(name="local-llm", context_size=2048)
        extended = DEFAULT_CATALOG.with_model(extra)
        assert "local-llm" in extended
        assert "local-llm" not in DEFAULT_CATALOG
        assert "local-llm" not in extended.without_model("local-llm")
        assert len(extended) == len(DEFAULT_CATALOG) + 1


class TestSettingsLogging:
    """Test suite for logging configured from settings"""

    def test_setup_logging(self, tmp_path):
        """Test that log level and file come from settings"""
        log_file = tmp_path / "budget.log"
        logger = BudgetSettings(_env_file=None, log_level="warning", log_file=log_file).setup_logging()
        try:
            assert logger.level == logging.WARNING
            assert log_file.exists()
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
            logger.setLevel(logging.NOTSET)
