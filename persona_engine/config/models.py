"""Pydantic models for configuration validation."""

from pathlib import Path
from pydantic import BaseModel, Field, field_validator, ConfigDict


class ImportConfig(BaseModel):
    """Defaults applied to cards as they are loaded."""

    user_placeholder: str = Field(
        default="User",
        description="Placeholder name for the user on freshly loaded cards"
    )
    default_name: str = Field(
        default="Unnamed",
        description="Name given to cards that parse successfully with a blank name"
    )

    @field_validator('default_name')
    @classmethod
    def validate_default_name(cls, v: str) -> str:
        """Card names are never persisted empty."""
        if not v.strip():
            raise ValueError('default_name must not be blank')
        return v.strip()


class ExportConfig(BaseModel):
    """Settings for writing cards and lorebooks."""

    json_indent: int = Field(default=2, ge=0, le=8)
    ensure_ascii: bool = Field(
        default=True,
        description="Escape non-ASCII characters in JSON output"
    )
    atomic_writes: bool = Field(
        default=True,
        description="Write to a temporary file and move it over the destination"
    )


class PngConfig(BaseModel):
    """PNG metadata chunk settings."""

    compress_metadata: bool = Field(
        default=False,
        description="Write card metadata as zTXt instead of tEXt"
    )
    write_ccv3: bool = Field(
        default=False,
        description="Also embed a Tavern V3 copy of the card under the 'ccv3' keyword"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    debug: bool = False
    log_dir: Path = Path("data/logs")

    @field_validator('log_dir')
    @classmethod
    def validate_path(cls, v: Path) -> Path:
        """Ensure paths are cross-platform."""
        return Path(v)


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    import_: ImportConfig = Field(default_factory=ImportConfig, alias="import")
    export: ExportConfig = Field(default_factory=ExportConfig)
    png: PngConfig = Field(default_factory=PngConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
