from __future__ import annotations

from PIL import Image
from PySide6 import QtCore, QtGui

from ..core.render import (
    DrawEllipse,
    DrawImage,
    DrawInstruction,
    DrawLine,
    DrawRect,
    DrawTable,
    DrawText,
)

_H_ALIGN = {
    "left": QtCore.Qt.AlignLeft,
    "center": QtCore.Qt.AlignHCenter,
    "right": QtCore.Qt.AlignRight,
}
_V_ALIGN = {
    "top": QtCore.Qt.AlignTop,
    "middle": QtCore.Qt.AlignVCenter,
    "bottom": QtCore.Qt.AlignBottom,
}


def pil_to_qimage(img: Image.Image) -> QtGui.QImage:
    rgba = img.convert("RGBA")
    data = rgba.tobytes("raw", "RGBA")
    qimg = QtGui.QImage(
        data, rgba.width, rgba.height, rgba.width * 4, QtGui.QImage.Format.Format_RGBA8888
    )
    # QImage does not own `data`; copy before it goes out of scope.
    return qimg.copy()


def qimage_to_pil(qimg: QtGui.QImage) -> Image.Image:
    """
    Convert a QImage to a Pillow Image.

    PySide6 returns a memoryview from bits()/constBits(); slice it to the
    buffer length and copy.
    """
    if qimg.isNull():
        raise ValueError("Cannot convert a null QImage.")

    qimg = qimg.convertToFormat(QtGui.QImage.Format.Format_RGBA8888)
    width = qimg.width()
    height = qimg.height()
    bytes_per_line = qimg.bytesPerLine()
    raw = bytes(qimg.constBits()[: bytes_per_line * height])

    return Image.frombuffer("RGBA", (width, height), raw, "raw", "RGBA", bytes_per_line, 1)


def _color(value) -> QtGui.QColor:
    return QtGui.QColor(value) if value else QtGui.QColor(QtCore.Qt.transparent)


class QtPainterSurface:
    """
    Paints draw instructions with an active QPainter.

    The painter's device unit must be one template pixel: a QImage of the
    template's pixel size, or a QPdfWriter whose resolution is the template DPI.
    """

    def __init__(self, painter: QtGui.QPainter):
        self.painter = painter
        painter.setRenderHint(QtGui.QPainter.Antialiasing, True)
        painter.setRenderHint(QtGui.QPainter.SmoothPixmapTransform, False)

    # ---------- helpers ----------

    def _begin(self, ins: DrawInstruction) -> None:
        p = self.painter
        p.save()
        p.setOpacity(ins.opacity)
        if ins.rotation:
            cx, cy = ins.x + ins.w / 2.0, ins.y + ins.h / 2.0
            p.translate(cx, cy)
            p.rotate(ins.rotation)
            p.translate(-cx, -cy)

    def _end(self) -> None:
        self.painter.restore()

    def _pen(self, color, width: float) -> QtGui.QPen:
        if not color or width <= 0:
            return QtGui.QPen(QtCore.Qt.NoPen)
        pen = QtGui.QPen(_color(color))
        pen.setWidthF(width)
        return pen

    def _brush(self, color) -> QtGui.QBrush:
        if not color:
            return QtGui.QBrush(QtCore.Qt.NoBrush)
        return QtGui.QBrush(_color(color))

    def _font(self, family: str, px: float, bold: bool = False, italic: bool = False) -> QtGui.QFont:
        font = QtGui.QFont(family)
        font.setPixelSize(max(1, int(round(px))))
        font.setBold(bold)
        font.setItalic(italic)
        return font

    @staticmethod
    def _rect(ins: DrawInstruction) -> QtCore.QRectF:
        return QtCore.QRectF(ins.x, ins.y, ins.w, ins.h)

    # ---------- draw_* ----------

    def draw_text(self, ins: DrawText) -> None:
        p = self.painter
        self._begin(ins)
        try:
            p.setFont(self._font(ins.font_family, ins.font_px, ins.bold, ins.italic))
            p.setPen(_color(ins.color))
            p.setLayoutDirection(QtCore.Qt.RightToLeft if ins.rtl else QtCore.Qt.LeftToRight)
            flags = (
                _H_ALIGN.get(ins.align, QtCore.Qt.AlignLeft)
                | _V_ALIGN.get(ins.valign, QtCore.Qt.AlignTop)
                | QtCore.Qt.TextWordWrap
            )
            p.drawText(self._rect(ins), int(flags), ins.text)
        finally:
            self._end()

    def draw_image(self, ins: DrawImage) -> None:
        if ins.image is None:
            return
        self._begin(ins)
        try:
            self.painter.drawImage(
                QtCore.QPointF(ins.x + ins.dx, ins.y + ins.dy), pil_to_qimage(ins.image)
            )
        finally:
            self._end()

    def draw_rect(self, ins: DrawRect) -> None:
        p = self.painter
        self._begin(ins)
        try:
            p.setPen(self._pen(ins.stroke, ins.stroke_px))
            p.setBrush(self._brush(ins.fill))
            if ins.radius_px > 0:
                p.drawRoundedRect(self._rect(ins), ins.radius_px, ins.radius_px)
            else:
                p.drawRect(self._rect(ins))
        finally:
            self._end()

    def draw_ellipse(self, ins: DrawEllipse) -> None:
        p = self.painter
        self._begin(ins)
        try:
            p.setPen(self._pen(ins.stroke, ins.stroke_px))
            p.setBrush(self._brush(ins.fill))
            p.drawEllipse(self._rect(ins))
        finally:
            self._end()

    def draw_line(self, ins: DrawLine) -> None:
        p = self.painter
        self._begin(ins)
        try:
            p.setPen(self._pen(ins.stroke, ins.stroke_px))
            p.drawLine(QtCore.QLineF(*ins.end_points))
        finally:
            self._end()

    def draw_table(self, ins: DrawTable) -> None:
        p = self.painter
        self._begin(ins)
        try:
            p.setClipRect(self._rect(ins))
            p.setPen(self._pen(ins.stroke, 1.0))
            p.setBrush(QtCore.Qt.NoBrush)

            rows = ([ins.headers] if ins.show_header else []) + ins.rows
            y = ins.y
            for index, row in enumerate(rows):
                is_header = ins.show_header and index == 0
                p.setFont(self._font("Arial", ins.font_px, bold=is_header))
                x = ins.x
                for col, width in enumerate(ins.column_px):
                    cell = QtCore.QRectF(x, y, width, ins.row_px)
                    p.drawRect(cell)
                    text = row[col] if col < len(row) else ""
                    p.drawText(
                        cell.adjusted(2, 0, -2, 0),
                        int(QtCore.Qt.AlignLeft | QtCore.Qt.AlignVCenter),
                        text,
                    )
                    x += width
                y += ins.row_px
                if y >= ins.y + ins.h:
                    break
        finally:
            self._end()
