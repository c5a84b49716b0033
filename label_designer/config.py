from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, asdict, fields
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from PySide6.QtCore import QSettings

from .core import barcodes

log = logging.getLogger(__name__)

SETTINGS_KEY = "editor_settings"


@dataclass
class EditorSettings:
    """
    Editor / render defaults.

    Lengths are in ``default_unit`` except ``paste_offset`` and
    ``snap_threshold``, which are interpreted in the unit of the template
    being edited.
    """
    default_width: float = 50.0
    default_height: float = 30.0
    default_unit: str = "mm"
    default_dpi: int = 300

    history_limit: int = 50
    paste_offset: float = 2.0
    snap_threshold: float = 1.0
    ruler_min_tick_px: float = 6.0

    barcode_cache_size: int = 128
    asset_dir: str = ""             # base folder for image asset ids
    pdf_title: str = "Label"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EditorSettings":
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in names})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_current = EditorSettings()


def current_settings() -> EditorSettings:
    """Settings in effect for this process (defaults until load_settings runs)."""
    return _current


def set_current_settings(settings: EditorSettings) -> None:
    global _current
    _current = settings
    barcodes.set_cache_size(settings.barcode_cache_size)


def _settings() -> QSettings:
    return QSettings("LabelDesigner", "LabelDesigner")


def load_settings(qsettings: Optional[QSettings] = None) -> EditorSettings:
    """
    Load EditorSettings from QSettings (stored as JSON) and make them current.

    Missing or unreadable data falls back to defaults.
    """
    s = qsettings or _settings()
    raw = s.value(SETTINGS_KEY, "", type=str)

    settings = EditorSettings()
    if raw:
        try:
            settings = EditorSettings.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            log.warning("Ignoring unreadable editor settings: %s", e)

    set_current_settings(settings)
    return settings


def save_settings(settings: EditorSettings, qsettings: Optional[QSettings] = None) -> None:
    """Persist *settings* to QSettings as JSON."""
    s = qsettings or _settings()
    s.setValue(SETTINGS_KEY, json.dumps(settings.to_dict(), indent=2))
    s.sync()


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Console logging for the ``label_designer`` package, plus an optional
    rotating log file.
    """
    level_name = (level or current_settings().log_level or "INFO").upper()
    logger = logging.getLogger("label_designer")
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    if not any(getattr(h, "_label_designer", False) for h in logger.handlers):
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(fmt)
        console._label_designer = True  # type: ignore[attr-defined]
        logger.addHandler(console)

    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
