"""Engine settings with Pydantic validation.

Settings are stored as JSON and validated using Pydantic models.
"""

from pathlib import Path
from typing import Optional

import platformdirs
from pydantic import BaseModel, Field, field_validator


def default_db_path() -> Path:
    """Default location of the SQLite database in the user's data directory."""
    return Path(platformdirs.user_data_dir("Recurra", "Recurra")) / "recurra.db"


class StorageSettings(BaseModel):
    """Storage backend configuration."""

    backend: str = Field(default="sqlite", pattern="^sqlite$")
    db_path: Optional[Path] = None  # None = default_db_path()

    model_config = {"validate_assignment": True}

    def resolve_db_path(self) -> Path:
        """Get the configured database path, falling back to the default."""
        return self.db_path or default_db_path()


class GenerationSettings(BaseModel):
    """Occurrence generation configuration."""

    # Default window length when the caller gives none (about three months)
    horizon_days: int = Field(default=90, ge=1, le=1830)

    # Upper bound on dates walked per expense in a single run
    max_occurrences_per_run: int = Field(default=1000, ge=1, le=100_000)

    model_config = {"validate_assignment": True}


class CompletionSettings(BaseModel):
    """How completed occurrences are recorded as expenses."""

    payment_method: str = Field(default="auto_payment", min_length=1)
    payment_notes_template: str = (
        "Automatically created payment for recurring expense: {item_name}"
    )

    model_config = {"validate_assignment": True}

    @field_validator("payment_notes_template")
    @classmethod
    def _validate_notes_template(cls, v: str) -> str:
        """Reject templates that would fail when formatted with an item name."""
        try:
            v.format(item_name="Rent")
        except KeyError as e:
            raise ValueError(f"unknown placeholder {e}; only {{item_name}} is available") from None
        except (IndexError, ValueError, AttributeError) as e:
            raise ValueError(f"malformed template: {e}") from None
        return v


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")


class AppSettings(BaseModel):
    """Engine settings with validation.

    All settings are validated using Pydantic. Invalid values will raise
    validation errors when loading from JSON.

    Example:
        >>> settings = AppSettings()
        >>> settings.generation.horizon_days = 30
        >>> settings.completion.payment_method = "bank_transfer"
    """

    storage: StorageSettings = Field(default_factory=StorageSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = {
        "validate_assignment": True,  # Validate on attribute assignment
        "extra": "forbid",  # Forbid extra fields
    }
