"""
Configuration models for agent relevance ranking.

Each concern gets its own pydantic section; AppConfig aggregates them and is
exposed as the module-level ``config`` singleton from the package root.
"""
import os
from typing import Optional

from pydantic import BaseModel, Field


def _default_data_dir() -> str:
    return os.environ.get(
        "AGENT_RELEVANCE_DATA_DIR",
        os.path.join(os.path.expanduser("~"), ".agent_relevance")
    )


def _default_model_cache() -> Optional[str]:
    return os.environ.get("AGENT_RELEVANCE_MODEL_CACHE")


class PathsConfig(BaseModel):
    """Filesystem locations used by the index store."""
    data_dir: str = Field(default_factory=_default_data_dir)
    index_file: str = "agent-capabilities.json"

    @property
    def index_path(self) -> str:
        return os.path.join(self.data_dir, self.index_file)


class FastModelConfig(BaseModel):
    """All-MiniLM model settings."""
    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    cache_dir: Optional[str] = Field(default_factory=_default_model_cache)
    thread_limit: int = Field(default=2, ge=1)


class EmbeddingsConfig(BaseModel):
    """Embedding backend lifecycle and wait windows."""
    fast_model: FastModelConfig = Field(default_factory=FastModelConfig)
    # Background index job waits this long for the model before giving up
    ready_timeout_seconds: float = Field(default=10.0, gt=0)
    # Per-selection wait for the task embedding
    task_timeout_seconds: float = Field(default=3.0, gt=0)
    poll_interval_seconds: float = Field(default=0.1, gt=0)


class IndexConfig(BaseModel):
    """Capability index format and background build settings."""
    # Bump when the record or embedding format changes
    version: str = "2.0.0"
    embedding_batch_size: int = Field(default=10, ge=1)


class HistoryConfig(BaseModel):
    """Usage history aggregation settings."""
    agent_tag: str = "agent"
    recent_window_days: int = Field(default=30, ge=1)


class SelectionConfig(BaseModel):
    """Defaults for the selector."""
    max_agents: int = Field(default=5, ge=1)
    min_score: int = Field(default=20, ge=0, le=100)


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    embeddings: EmbeddingsConfig = Field(default_factory=EmbeddingsConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    selection: SelectionConfig = Field(default_factory=SelectionConfig)
