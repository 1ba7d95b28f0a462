import importlib
import logging

import pytest

import config
from logging_config import LOGGER_NAME, get_logger, setup_logging


@pytest.fixture
def reload_config(monkeypatch):
    def _reload(**env):
        for k, v in env.items():
            monkeypatch.setenv(k, v)
        return importlib.reload(config)

    yield _reload
    monkeypatch.undo()
    importlib.reload(config)


def test_defaults(reload_config):
    cfg = reload_config()
    assert cfg.ZOOM_FACTOR == 1.1
    assert cfg.MIN_SCALE is None
    assert cfg.MAX_SCALE is None
    assert cfg.RECT_CSV_URL.endswith("gid=0&single=true&output=csv")
    assert cfg.IMAGE_CSV_URL.endswith("gid=1925889595&single=true&output=csv")


def test_env_overrides(reload_config):
    cfg = reload_config(
        MAPBOARD_RECT_CSV_URL="/data/rects.csv",
        MAPBOARD_ZOOM_FACTOR="1.25",
        MAPBOARD_MIN_SCALE="0.05",
        MAPBOARD_MAX_SCALE="40",
        MAPBOARD_WORKERS="8",
        MAPBOARD_LOG_LEVEL="debug",
    )
    assert cfg.RECT_CSV_URL == "/data/rects.csv"
    assert cfg.ZOOM_FACTOR == 1.25
    assert cfg.MIN_SCALE == 0.05
    assert cfg.MAX_SCALE == 40.0
    assert cfg.LOADER_WORKERS == 8
    assert cfg.LOG_LEVEL == "DEBUG"


def test_invalid_values_fall_back(reload_config):
    cfg = reload_config(
        MAPBOARD_ZOOM_FACTOR="fast",
        MAPBOARD_MIN_SCALE="-1",
        MAPBOARD_MAX_SCALE="huge",
        MAPBOARD_WORKERS="0",
        MAPBOARD_POLL_MS="x",
        MAPBOARD_IMAGE_CSV_URL="   ",
    )
    assert cfg.ZOOM_FACTOR == 1.1
    assert cfg.MIN_SCALE is None
    assert cfg.MAX_SCALE is None
    assert cfg.LOADER_WORKERS == 1
    assert cfg.POLL_INTERVAL_MS == 30
    assert cfg.IMAGE_CSV_URL.startswith("https://docs.google.com/")


def test_zoom_factor_must_grow(reload_config):
    assert reload_config(MAPBOARD_ZOOM_FACTOR="0.9").ZOOM_FACTOR == 1.1


def test_setup_logging_replaces_handlers(tmp_path):
    log_file = tmp_path / "mapboard.log"
    logger = setup_logging("debug", str(log_file))
    try:
        assert logger.name == LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2

        setup_logging(logging.INFO)
        assert len(logger.handlers) == 1

        get_logger("viewport").info("hello")
        assert get_logger("viewport").name == "mapboard.viewport"
    finally:
        for h in list(logger.handlers):
            h.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)

    assert "Logging initialized." in log_file.read_text(encoding="utf-8")
