"""
Application configuration.

Usage:
    from config import config
    config.embeddings.fast_model.model_name
"""
from config.config import (
    AppConfig,
    EmbeddingsConfig,
    FastModelConfig,
    HistoryConfig,
    IndexConfig,
    PathsConfig,
    SelectionConfig,
)

config = AppConfig()

__all__ = [
    'config',
    'AppConfig',
    'EmbeddingsConfig',
    'FastModelConfig',
    'HistoryConfig',
    'IndexConfig',
    'PathsConfig',
    'SelectionConfig',
]
