# tests/conftest.py

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from asynctask.config import RuntimeConfig, Settings, clear_settings_cache

from .stores import ChainedTaskStore, FanOutTaskStore, SingleTaskStore


@pytest.fixture(autouse=True)
def _fresh_settings_cache():
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture()
def settings() -> Settings:
    """
    Settings built explicitly rather than loaded from disk, so a stray
    asynctask.yaml in the working directory cannot affect the tests.
    """
    return Settings(runtime=RuntimeConfig(strict_reset=False, history_limit=50))


@pytest.fixture()
def strict_settings() -> Settings:
    return Settings(runtime=RuntimeConfig(strict_reset=True))


@pytest.fixture()
def single_store(settings: Settings) -> SingleTaskStore:
    return SingleTaskStore(settings)


@pytest.fixture()
def chained_store(settings: Settings) -> ChainedTaskStore:
    return ChainedTaskStore(settings)


@pytest.fixture()
def fan_out_store(settings: Settings) -> FanOutTaskStore:
    return FanOutTaskStore(settings)


@pytest.fixture()
def restore_root_logger():
    """Drop the handlers setup_logging() installs on the root logger."""
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if isinstance(handler, (RichHandler, logging.FileHandler)):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
