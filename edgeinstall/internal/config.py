"""
Run configuration.

Replaces the shell environment plumbing of the old provisioning scripts
with a single validated structure. Values come from keyword arguments or
from EDGEINSTALL_* environment variables.
"""
import os
import shlex
import sys
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from edgeinstall.internal import paths
from edgeinstall.internal.constants import (
    DEFAULT_CACHE_REFRESH_COMMAND,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_RETRIES,
    DEFAULT_RETRY_DELAY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    ENV_PREFIX,
)


class Settings(BaseModel):
    registry_path: Path = Field(default_factory=paths.get_default_registry_path)
    workspace_root: Optional[Path] = None
    retries: int = Field(default=DEFAULT_RETRIES, ge=1, le=10)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    refresh_cache: bool = True
    cache_refresh_command: list[str] = Field(default_factory=lambda: list(DEFAULT_CACHE_REFRESH_COMMAND))
    python_executable: str = Field(default_factory=lambda: sys.executable)
    log_level: str = "INFO"

    model_config = {"frozen": True}

    @field_validator("cache_refresh_command", mode="before")
    @classmethod
    def _split_command(cls, value):
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "Settings":
        """
        Build settings from EDGEINSTALL_<FIELD> variables, then apply
        explicit keyword overrides (None values are ignored).
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def resolve_workspace_root(self) -> Path:
        if self.workspace_root is not None:
            self.workspace_root.mkdir(parents=True, exist_ok=True)
            return self.workspace_root
        return paths.get_workspace_root()
