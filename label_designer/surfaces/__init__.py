from .base import Surface, paint
from .export import (
    instructions_to_pdf,
    instructions_to_png,
    instructions_to_qimage,
    render_template_to_pdf,
    render_template_to_png,
    render_template_to_qimage,
)
from .pil_surface import PillowSurface
from .qt_surface import QtPainterSurface, pil_to_qimage, qimage_to_pil
