"""
Tests for scene building: Template + record -> draw instructions.
"""
from __future__ import annotations

import base64
import io

import pytest
import requests
from PIL import Image

from label_designer.core import render
from label_designer.core.errors import RenderFailure
from label_designer.core.models import (
    BarcodeElement,
    ELEMENT_TYPES,
    ImageElement,
    LabelSize,
    QRElement,
    ShapeElement,
    TableColumn,
    TableElement,
    Template,
    TextElement,
)
from label_designer.core import utils
from label_designer.config import EditorSettings, set_current_settings
from label_designer.core.render import (
    PLACEHOLDER_COLOR,
    DrawEllipse,
    DrawImage,
    DrawLine,
    DrawRect,
    DrawTable,
    DrawText,
    build_scene,
    fit_image,
    render_scene,
    resolve_elements,
)
from label_designer.core.template_ops import reorder_element, update_element

PX_PER_MM = 300 / 25.4


def _template(*elements):
    return Template(id="t", size=LabelSize(width=50, height=30, unit="mm", dpi=300), elements=list(elements))


class TestSceneOrder:
    def test_back_to_front(self, sample_template, sample_record):
        scene = build_scene(sample_template, sample_record)
        assert [i.element_id for i in scene] == ["border", "title", "code", "qr"]
        assert [type(i) for i in scene] == [DrawRect, DrawText, DrawImage, DrawImage]

    def test_reorder_changes_paint_order(self, sample_template, sample_record):
        t = reorder_element(sample_template, "border", "front")
        scene = build_scene(t, sample_record)
        assert scene[-1].element_id == "border"

    def test_invisible_elements_are_skipped(self, sample_template, sample_record):
        t = update_element(sample_template, "qr", {"visible": False})
        ids = [i.element_id for i in build_scene(t, sample_record)]
        assert "qr" not in ids

    def test_every_kind_has_a_renderer(self):
        assert set(render._RENDERERS) == set(ELEMENT_TYPES)


class TestGeometry:
    def test_text_in_device_pixels(self, sample_template, sample_record):
        title = build_scene(sample_template, sample_record)[1]
        assert title.text == "QC Lab: Buffer A"
        assert title.x == pytest.approx(2 * PX_PER_MM)
        assert title.w == pytest.approx(46 * PX_PER_MM)
        assert title.font_px == pytest.approx(10 * 300 / 72)

    def test_barcode_raster_matches_box(self, sample_template, sample_record):
        code = build_scene(sample_template, sample_record)[2]
        assert code.image.size == (round(30 * PX_PER_MM), round(12 * PX_PER_MM))

    def test_qr_is_centred_in_its_box(self):
        t = _template(QRElement(id="q", x=0, y=0, w=20, h=10, value="centre"))
        ins = build_scene(t)[0]
        side = round(10 * PX_PER_MM)
        assert ins.image.size == (side, side)
        assert ins.dx == pytest.approx((20 * PX_PER_MM - side) / 2)
        assert ins.dy == pytest.approx((10 * PX_PER_MM - side) / 2)

    def test_element_unit_overrides_template_unit(self):
        t = _template(ShapeElement(id="s", x=1, y=0, w=1, h=1, unit="in"))
        assert build_scene(t)[0].x == pytest.approx(300)

    def test_rotation_and_opacity_carry_through(self):
        t = _template(ShapeElement(id="s", w=10, h=5, rotation=90, opacity=0.5))
        ins = build_scene(t)[0]
        assert (ins.rotation, ins.opacity) == (90, 0.5)

    def test_shapes(self):
        t = _template(
            ShapeElement(id="line", shape="line", w=10, h=0.1),
            ShapeElement(id="circle", shape="circle", w=5, h=5, fill="#00ff00"),
            ShapeElement(id="box", shape="rectangle", w=5, h=5, stroke=None),
        )
        line, circle, box = build_scene(t)
        assert isinstance(line, DrawLine)
        assert isinstance(circle, DrawEllipse) and circle.fill == "#00ff00"
        assert box.stroke_px == 0


class TestFailures:
    def test_strict_raises_with_element_id(self):
        t = _template(BarcodeElement(id="ean", symbology="EAN13", value="4006381333932"))
        with pytest.raises(RenderFailure) as info:
            build_scene(t, strict=True)
        assert info.value.element_id == "ean"

    def test_preview_draws_placeholder(self):
        t = _template(
            BarcodeElement(id="ean", symbology="EAN13", value="4006381333932"),
            ShapeElement(id="after"),
        )
        scene = build_scene(t, strict=False)
        assert isinstance(scene[0], DrawText)
        assert scene[0].color == PLACEHOLDER_COLOR
        assert scene[0].text.startswith("[barcode]")
        assert scene[1].element_id == "after"

    def test_unresolved_code_value_is_empty_and_fails(self, sample_template):
        """No record: the code variable has no value, which cannot be encoded."""
        with pytest.raises(RenderFailure) as info:
            build_scene(sample_template, None, strict=True)
        assert info.value.element_id == "code"

    def test_qr_fallback_used_without_record(self, sample_template):
        scene = build_scene(sample_template, None, strict=False)
        assert isinstance(scene[-1], DrawImage)

    def test_missing_image_file(self, tmp_path):
        t = _template(ImageElement(id="logo", src=str(tmp_path / "nope.png")))
        with pytest.raises(RenderFailure) as info:
            build_scene(t)
        assert info.value.element_id == "logo"

    def test_image_without_source_is_skipped(self):
        assert build_scene(_template(ImageElement(id="logo"))) == []


class TestResolvedValues:
    def test_table_rows_from_record(self):
        table = TableElement(
            id="tests",
            w=40,
            h=20,
            data_source="sample.tests",
            columns=[TableColumn(header="Test", field="name"), TableColumn(header="Result", field="result")],
        )
        record = {"sample": {"tests": [{"name": "pH", "result": 7.0}, {"name": "Brix"}]}}
        assert resolve_elements(_template(table), record)["tests"] == [["pH", "7"], ["Brix", ""]]

        ins = build_scene(_template(table), record)[0]
        assert isinstance(ins, DrawTable)
        assert ins.headers == ["Test", "Result"]

    def test_table_without_source_has_no_rows(self):
        table = TableElement(id="t", columns=[TableColumn(field="x")])
        assert resolve_elements(_template(table), {})["t"] == []

    def test_image_from_file(self, tmp_path):
        path = tmp_path / "logo.png"
        Image.new("RGB", (100, 50), "blue").save(path)
        t = _template(ImageElement(id="logo", w=10, h=10, src=str(path)))
        ins = build_scene(t)[0]
        assert isinstance(ins, DrawImage)
        assert ins.image.width == round(10 * PX_PER_MM)


class TestFitImage:
    def test_contain(self):
        scaled, dx, dy = fit_image(Image.new("RGB", (100, 50)), 40, 40, "contain")
        assert scaled.size == (40, 20)
        assert (dx, dy) == (0, 10)

    def test_cover(self):
        scaled, dx, dy = fit_image(Image.new("RGB", (100, 50)), 40, 40, "cover")
        assert scaled.size == (40, 40)
        assert (dx, dy) == (0, 0)

    def test_fill(self):
        scaled, _, _ = fit_image(Image.new("RGB", (100, 50)), 30, 60, "fill")
        assert scaled.size == (30, 60)


def _png_bytes(size=(20, 10), color="red"):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class _FakeResponse:
    def __init__(self, content=b"", status=200):
        self.content = content
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class TestImageSources:
    def test_data_url(self):
        src = "data:image/png;base64," + base64.b64encode(_png_bytes()).decode("ascii")
        ins = build_scene(_template(ImageElement(id="logo", w=10, h=10, src=src)))[0]
        assert isinstance(ins, DrawImage)
        assert ins.image.getpixel((ins.image.width // 2, ins.image.height // 2))[:3] == (255, 0, 0)

    def test_bad_data_url(self):
        t = _template(ImageElement(id="logo", src="data:image/png;base64,@@not-base64@@"))
        with pytest.raises(RenderFailure) as info:
            build_scene(t)
        assert info.value.element_id == "logo"

    def test_http_url(self, monkeypatch):
        calls = []

        def fake_get(url, timeout):
            calls.append(url)
            return _FakeResponse(_png_bytes(color="blue"))

        monkeypatch.setattr(utils.requests, "get", fake_get)
        t = _template(ImageElement(id="logo", w=10, h=10, src="https://lab.example/logo.png"))
        ins = build_scene(t)[0]
        assert calls == ["https://lab.example/logo.png"]
        assert ins.image.getpixel((ins.image.width // 2, ins.image.height // 2))[:3] == (0, 0, 255)

    def test_http_error(self, monkeypatch):
        monkeypatch.setattr(utils.requests, "get", lambda url, timeout: _FakeResponse(status=404))
        t = _template(ImageElement(id="logo", src="https://lab.example/missing.png"))
        with pytest.raises(RenderFailure) as info:
            build_scene(t)
        assert info.value.element_id == "logo"
        assert "404" in str(info.value)

    def test_http_error_in_preview_is_a_placeholder(self, monkeypatch):
        monkeypatch.setattr(utils.requests, "get", lambda url, timeout: _FakeResponse(status=500))
        t = _template(ImageElement(id="logo", src="https://lab.example/logo.png"))
        (ins,) = build_scene(t, strict=False)
        assert isinstance(ins, DrawText)
        assert ins.color == PLACEHOLDER_COLOR

    def test_asset_id(self, tmp_path):
        (tmp_path / "logos").mkdir()
        (tmp_path / "logos" / "lab.png").write_bytes(_png_bytes())
        set_current_settings(EditorSettings(asset_dir=str(tmp_path)))
        ins = build_scene(_template(ImageElement(id="logo", w=10, h=10, src="logos/lab.png")))[0]
        assert isinstance(ins, DrawImage)

    def test_unsupported_scheme(self):
        t = _template(ImageElement(id="logo", src="ftp://lab.example/logo.png"))
        with pytest.raises(RenderFailure):
            build_scene(t)


class TestRenderSceneDefaults:
    def test_resolves_literals_without_values(self):
        (ins,) = render_scene(_template(TextElement(id="hello", content="Hello")))
        assert ins.text == "Hello"

    def test_uses_fallbacks_without_values(self, sample_template):
        scene = render_scene(sample_template, strict=False)
        title = next(i for i in scene if i.element_id == "title")
        assert title.text == "QC Lab: unnamed"
