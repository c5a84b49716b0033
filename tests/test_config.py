"""
Tests for editor settings persistence and logging setup.
"""
from __future__ import annotations

import logging

import pytest
from PySide6 import QtCore

from label_designer.config import (
    SETTINGS_KEY,
    EditorSettings,
    configure_logging,
    current_settings,
    load_settings,
    save_settings,
)
from label_designer.core import barcodes


@pytest.fixture()
def qsettings(qapp, tmp_path):
    return QtCore.QSettings(str(tmp_path / "settings.ini"), QtCore.QSettings.Format.IniFormat)


@pytest.fixture()
def clean_logger():
    logger = logging.getLogger("label_designer")
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for handler in logger.handlers:
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


class TestSettings:
    def test_defaults_when_empty(self, qsettings):
        settings = load_settings(qsettings)
        assert settings == EditorSettings()
        assert settings.default_dpi == 300
        assert settings.default_unit == "mm"

    def test_save_and_load(self, qsettings):
        custom = EditorSettings(default_dpi=203, history_limit=20, barcode_cache_size=16)
        save_settings(custom, qsettings)
        loaded = load_settings(qsettings)
        assert loaded == custom
        assert current_settings() is loaded
        assert barcodes._CACHE_MAX == 16

    def test_unknown_keys_are_ignored(self):
        settings = EditorSettings.from_dict({"default_dpi": 600, "colour_scheme": "dark"})
        assert settings.default_dpi == 600

    def test_unreadable_json_falls_back(self, qsettings, caplog):
        qsettings.setValue(SETTINGS_KEY, "{not json")
        with caplog.at_level(logging.WARNING):
            settings = load_settings(qsettings)
        assert settings == EditorSettings()
        assert "unreadable" in caplog.text


class TestLogging:
    def test_console_handler_installed_once(self, clean_logger):
        configure_logging("DEBUG")
        configure_logging("DEBUG")
        ours = [h for h in clean_logger.handlers if getattr(h, "_label_designer", False)]
        assert len(ours) == 1
        assert clean_logger.level == logging.DEBUG

    def test_log_file(self, clean_logger, tmp_path):
        path = tmp_path / "label_designer.log"
        configure_logging("INFO", log_file=str(path))
        logging.getLogger("label_designer.printing").info("batch started")
        for handler in clean_logger.handlers:
            handler.flush()
        assert "batch started" in path.read_text(encoding="utf-8")
