"""Shared fixtures for the file share test suite."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from fileshare.core.config import StorageConfig
from fileshare.observability.metrics import MetricsCollector
from fileshare.storage.content_store import ContentStore


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def storage_config(tmp_path: Path) -> StorageConfig:
    return StorageConfig(root_dir=tmp_path / "files", chunk_size=16)


@pytest.fixture
def name_store(storage_config: StorageConfig, metrics: MetricsCollector) -> ContentStore:
    return ContentStore.for_names(storage_config, metrics)


@pytest.fixture
def id_store(storage_config: StorageConfig, metrics: MetricsCollector) -> ContentStore:
    return ContentStore.for_ids(storage_config, metrics)


@pytest.fixture
def restore_root_logging():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
