"""
Shared fixtures. Qt runs offscreen so the suite works in headless CI.
"""
from __future__ import annotations

import os

# Must precede any PySide6 import
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from label_designer.config import EditorSettings, set_current_settings
from label_designer.core import barcodes
from label_designer.core.models import (
    BarcodeElement,
    DataBinding,
    LabelSize,
    QRElement,
    ShapeElement,
    Template,
    TextElement,
    VarDef,
)
from label_designer.core.template_ops import IdAllocator


@pytest.fixture(scope="module")
def qapp():
    """Ensure a QApplication exists for the module (fonts, QPainter, QPdfWriter)."""
    from PySide6 import QtWidgets

    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app


@pytest.fixture(autouse=True)
def default_settings():
    """Every test starts from default editor settings and a cold code cache."""
    set_current_settings(EditorSettings())
    barcodes.clear_cache()
    yield
    set_current_settings(EditorSettings())


@pytest.fixture()
def allocator():
    return IdAllocator()


@pytest.fixture()
def sample_template():
    """A 50x30 mm sample label: name text, code barcode, QR, border."""
    return Template(
        id="tpl_sample",
        name="Sample label",
        size=LabelSize(width=50.0, height=30.0, unit="mm", dpi=300),
        variables=[
            VarDef(key="sample_code", label="Code", source="record-field", field_path="sample.code"),
            VarDef(key="lab", label="Lab", source="manual", sample_value="QC Lab"),
        ],
        elements=[
            ShapeElement(id="border", x=0.5, y=0.5, w=49.0, h=29.0, shape="rectangle"),
            TextElement(
                id="title", x=2, y=2, w=46, h=6, content="{{lab}}: {{sample.name|unnamed}}",
            ),
            BarcodeElement(
                id="code", x=2, y=10, w=30, h=12, symbology="CODE128",
                data_binding=DataBinding(field="sample_code"),
            ),
            QRElement(
                id="qr", x=34, y=10, w=14, h=14,
                data_binding=DataBinding(field="{{sample.url}}", fallback="https://lab.example/"),
            ),
        ],
    )


@pytest.fixture()
def sample_record():
    return {
        "sample": {
            "code": "S-2024-0042",
            "name": "Buffer A",
            "url": "https://lab.example/s/42",
        }
    }
