# context_budget/config/settings.py
import logging
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from context_budget.exceptions.config import ValidationError
from context_budget.model_manager.catalog import DEFAULT_CATALOG, ModelCatalog
from context_budget.structs import ConversationLimits
from context_budget.utils.logger import configure_logging

logger = logging.getLogger("Settings")


class BudgetSettings(BaseSettings):
    # === Environment Variables (CLEAN NAMES) ===
    default_model: str = "gpt-4o"
    max_conversation_steps: int = 2**31 - 1
    max_conversation_tokens: Optional[int] = None
    max_history_length: int = 1000
    persona: Optional[str] = "You are a helpful assistant."
    packer_safety_margin: int = 0
    strong_reference_threshold: float = 0.85
    model_catalog_path: Optional[Path] = None
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # === Pydantic V2 Configuration ===
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # NO prefix - clean names match exactly
        extra="ignore",
        case_sensitive=False,
    )

    # === Model Validator ===

    @model_validator(mode="after")
    def validate_and_normalize(self) -> "BudgetSettings":
        """Validate limits and normalize the log level."""

        # 1. Validate log level
        if self.log_level.upper() not in logging._nameToLevel:
            raise ValidationError(
                f"Invalid log level: {self.log_level}",
                field_name="log_level",
                invalid_value=self.log_level,
            )
        self.log_level = self.log_level.upper()

        # 2. Validate conversation limits
        for name in ("max_conversation_steps", "max_conversation_tokens"):
            value = getattr(self, name)
            if value is not None and value < 1:
                raise ValidationError(
                    f"{name} must be at least 1, got {value}",
                    field_name=name,
                    invalid_value=value,
                )
        if self.max_history_length < 0:
            raise ValidationError(
                f"max_history_length cannot be negative, got {self.max_history_length}",
                field_name="max_history_length",
                invalid_value=self.max_history_length,
            )

        # 3. Validate packer settings
        if self.packer_safety_margin < 0:
            raise ValidationError(
                f"packer_safety_margin cannot be negative, got {self.packer_safety_margin}",
                field_name="packer_safety_margin",
                invalid_value=self.packer_safety_margin,
            )
        if not 0.0 <= self.strong_reference_threshold <= 1.0:
            raise ValidationError(
                "strong_reference_threshold must be between 0 and 1, "
                f"got {self.strong_reference_threshold}",
                field_name="strong_reference_threshold",
                invalid_value=self.strong_reference_threshold,
            )

        # Blank persona means no persona
        if self.persona is not None and not self.persona.strip():
            self.persona = None

        return self

    def limits(self) -> ConversationLimits:
        return ConversationLimits(
            max_conversation_steps=self.max_conversation_steps,
            max_conversation_tokens=self.max_conversation_tokens,
            max_history_length=self.max_history_length,
        )

    def setup_logging(self) -> logging.Logger:
        return configure_logging(self.log_level, self.log_file)

    def catalog(self) -> ModelCatalog:
        """Built-in catalog, extended by `model_catalog_path` when set."""
        if self.model_catalog_path is None:
            return DEFAULT_CATALOG
        logger.info(f"Loading model catalog from {self.model_catalog_path}")
        return ModelCatalog.from_json(self.model_catalog_path, base=DEFAULT_CATALOG)
