"""
Configuration management for las-retile.

Provides a typed pydantic model and YAML loader with sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Literal, List, Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_validator
import yaml


# -----------------------
# Typed config structures
# -----------------------


class InputConfig(BaseModel):
    extensions: List[str] = Field(
        default_factory=lambda: ["las", "laz"],
        description="File extensions recognized as point-cloud inputs (case-insensitive, no dot)",
    )

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: List[str]) -> List[str]:
        normalized = [v.lower().lstrip(".") for v in value]
        if not normalized:
            raise ValueError("at least one input extension is required")
        return normalized


class StreamingConfig(BaseModel):
    batch_memory_mb: float = Field(
        default=200.0,
        gt=0,
        description="Memory budget for one batch of buffered point records (MiB)",
    )
    batch_points: Optional[int] = Field(
        default=None,
        gt=0,
        description="Explicit batch size in points; overrides batch_memory_mb when set",
    )


class OutputConfig(BaseModel):
    extension: Literal["laz", "las"] = Field(default="laz")
    delete_incomplete_on_failure: bool = Field(
        default=False,
        description="Delete tiles that were still open when the run failed (default keeps them)",
    )


class ParallelConfig(BaseModel):
    enabled: bool = Field(default=False, description="Read inputs concurrently (single registry owner)")
    n_workers: Optional[int] = Field(default=None, description="Reader threads (None = auto-detect: cpu_count - 1)")
    queue_batches: int = Field(default=4, gt=0, description="Batches that may wait between readers and the writer")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    file: Optional[str] = Field(default=None)


class AppConfig(BaseModel):
    input: InputConfig = Field(default_factory=InputConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    parallel: ParallelConfig = Field(default_factory=ParallelConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# -----------------------
# Loader
# -----------------------


DEFAULT_CONFIG = Path("config") / "default.yaml"


def _project_root() -> Path:
    # src/las_retile/utils/config.py -> checkout root
    return Path(__file__).resolve().parents[3]


def load_config(path: Optional[str | Path] = None, *, allow_missing: bool = True) -> AppConfig:
    """
    Read a YAML file into an AppConfig.

    Without a path, config/default.yaml in the source checkout is used.
    Sections or keys left out of the file keep their model defaults.

    Raises:
        FileNotFoundError: The file is missing and allow_missing is False
        ValueError: The YAML does not validate against AppConfig
    """
    cfg_path = Path(path) if path is not None else _project_root() / DEFAULT_CONFIG

    if not cfg_path.exists():
        if not allow_missing:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return AppConfig()

    with cfg_path.open("r", encoding="utf-8") as f:
        raw: Dict[str, Any] = yaml.safe_load(f) or {}

    try:
        return AppConfig.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {cfg_path}: {e}") from e
