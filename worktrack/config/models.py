"""Configuration models for Worktrack."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from ..commit.modes import DEFAULT_CHECKPOINT_PREFIX


class GitConfig(BaseModel):
    """Git access configuration."""

    timeout_sec: float = Field(default=30, description="Timeout per git command")


class CommitConfig(BaseModel):
    """Commit policy defaults and timing."""

    checkpoint_prefix: str = Field(
        default=DEFAULT_CHECKPOINT_PREFIX,
        description="Checkpoint prefix when session settings do not define one",
    )
    structured_timeout_ms: int = Field(
        default=5000, gt=0, description="How long to wait for an agent commit"
    )
    poll_interval_ms: int = Field(
        default=250, gt=0, description="Delay between agent commit checks"
    )


class AgentConfig(BaseModel):
    """Agent command configuration."""

    timeout_sec: float = Field(default=1800, description="Hard timeout for one agent run")


class StoreConfig(BaseModel):
    """Session store configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    path: Path = Field(default=Path(".worktrack/sessions.json"), description="Store file")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    level: str = Field(default="INFO", description="Log level")
    log_dir: Path = Field(default=Path(".worktrack/logs"), description="Log directory")
    rotation_mb: int = Field(default=10, description="Log rotation size (MB)")
    retention_days: int = Field(default=7, description="Log retention days")


class WorktrackConfig(BaseModel):
    """Main configuration model."""

    git: GitConfig = Field(default_factory=GitConfig)
    commit: CommitConfig = Field(default_factory=CommitConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
