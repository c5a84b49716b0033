from __future__ import annotations

from dataclasses import dataclass, field, asdict, fields
from typing import Any, ClassVar, Dict, List, Optional, Type

from .errors import InvalidElement, InvalidTemplate, InvalidUnit
from .units import MM, normalize_unit, to_device_pixels


SYMBOLOGIES = ("CODE128", "EAN13", "EAN8", "UPC", "CODE39", "GS1-128")
ECC_LEVELS = ("L", "M", "Q", "H")
SHAPES = ("rectangle", "circle", "line")
IMAGE_FITS = ("contain", "cover", "fill")
VAR_SOURCES = ("manual", "record-field")


def _known_kwargs(cls, d: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in d.items() if k in names}


# ---------- Size / margins ----------

@dataclass
class LabelSize:
    width: float = 50.0
    height: float = 30.0
    unit: str = MM
    dpi: int = 300

    def __post_init__(self):
        self.unit = normalize_unit(self.unit)
        if self.width <= 0 or self.height <= 0:
            raise InvalidTemplate(
                f"Label size must be positive, got {self.width}x{self.height}"
            )
        if self.dpi <= 0:
            raise InvalidUnit(f"DPI must be positive, got {self.dpi!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "LabelSize":
        return LabelSize(**_known_kwargs(LabelSize, d))


@dataclass
class Margins:
    safe: Optional[float] = None
    bleed: Optional[float] = None
    unit: str = MM

    def __post_init__(self):
        self.unit = normalize_unit(self.unit)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Margins":
        return Margins(**_known_kwargs(Margins, d))


# ---------- Variables / bindings ----------

@dataclass
class DataBinding:
    field: str                       # VarDef key or record path ("{{sample.code}}" accepted)
    format: Optional[str] = None     # identity | upper | lower | date:<pattern>
    fallback: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DataBinding":
        return DataBinding(**_known_kwargs(DataBinding, d))


@dataclass
class VarDef:
    key: str
    label: str = ""
    source: str = "manual"           # manual | record-field
    field_path: Optional[str] = None
    sample_value: Optional[str] = None
    format: Optional[str] = None

    def __post_init__(self):
        if not self.key:
            raise InvalidTemplate("Variable key cannot be empty.")
        if self.source not in VAR_SOURCES:
            raise InvalidTemplate(
                f"Unknown variable source {self.source!r}; expected one of {VAR_SOURCES}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "VarDef":
        return VarDef(**_known_kwargs(VarDef, d))


# ---------- Elements ----------

@dataclass
class Element:
    """
    Fields shared by every element kind.

    Geometry is in the template unit unless ``unit`` is set on the element.
    """
    KIND: ClassVar[str] = ""

    id: str = ""
    x: float = 0.0
    y: float = 0.0
    w: float = 10.0
    h: float = 10.0
    rotation: float = 0.0
    opacity: float = 1.0
    visible: bool = True
    locked: bool = False
    z_index: Optional[int] = None
    data_binding: Optional[DataBinding] = None
    unit: Optional[str] = None
    name: str = ""

    def __post_init__(self):
        if isinstance(self.data_binding, dict):
            self.data_binding = DataBinding.from_dict(self.data_binding)
        if self.unit is not None:
            self.unit = normalize_unit(self.unit)
        if not 0.0 <= float(self.opacity) <= 1.0:
            raise InvalidElement(f"Opacity must be within 0..1, got {self.opacity!r}")

    @property
    def kind(self) -> str:
        return self.KIND

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["type"] = self.KIND
        return d


@dataclass
class TextElement(Element):
    KIND: ClassVar[str] = "text"

    content: str = "Text"
    font_family: str = "Arial"
    font_size: float = 10.0          # points
    font_weight: str = "normal"      # normal | bold
    font_style: str = "normal"       # normal | italic
    color: str = "#000000"
    align: str = "left"              # left | center | right
    valign: str = "top"              # top | middle | bottom
    direction: str = "ltr"           # ltr | rtl


@dataclass
class BarcodeElement(Element):
    KIND: ClassVar[str] = "barcode"

    symbology: str = "CODE128"
    value: str = ""
    display_value: bool = True
    quiet_zone: float = 2.0

    def __post_init__(self):
        super().__post_init__()
        self.symbology = (self.symbology or "").upper()
        if self.symbology not in SYMBOLOGIES:
            raise InvalidElement(
                f"Unknown symbology {self.symbology!r}; expected one of {SYMBOLOGIES}"
            )


@dataclass
class QRElement(Element):
    KIND: ClassVar[str] = "qr"

    value: str = ""
    ecc: str = "M"
    margin: float = 1.0

    def __post_init__(self):
        super().__post_init__()
        self.ecc = (self.ecc or "").upper()
        if self.ecc not in ECC_LEVELS:
            raise InvalidElement(f"Unknown QR error correction level {self.ecc!r}")


@dataclass
class ImageElement(Element):
    KIND: ClassVar[str] = "image"

    src: str = ""                    # URL, file path or asset id
    fit: str = "contain"

    def __post_init__(self):
        super().__post_init__()
        if self.fit not in IMAGE_FITS:
            raise InvalidElement(f"Unknown image fit {self.fit!r}")


@dataclass
class ShapeElement(Element):
    KIND: ClassVar[str] = "shape"

    shape: str = "rectangle"
    fill: Optional[str] = None
    stroke: Optional[str] = "#000000"
    stroke_width: float = 0.3
    corner_radius: float = 0.0

    def __post_init__(self):
        super().__post_init__()
        if self.shape not in SHAPES:
            raise InvalidElement(f"Unknown shape {self.shape!r}; expected one of {SHAPES}")


@dataclass
class TableColumn:
    header: str = ""
    field: str = ""
    width: float = 10.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TableElement(Element):
    KIND: ClassVar[str] = "table"

    data_source: str = "items"
    columns: List[TableColumn] = field(default_factory=list)
    row_height: float = 4.0
    font_size: float = 7.0
    show_header: bool = True

    def __post_init__(self):
        super().__post_init__()
        self.columns = [
            TableColumn(**_known_kwargs(TableColumn, c)) if isinstance(c, dict) else c
            for c in self.columns
        ]


ELEMENT_TYPES: Dict[str, Type[Element]] = {
    cls.KIND: cls
    for cls in (TextElement, BarcodeElement, QRElement, ImageElement, ShapeElement, TableElement)
}


def element_from_dict(d: Dict[str, Any]) -> Element:
    kind = d.get("type") or d.get("kind")
    cls = ELEMENT_TYPES.get(kind)
    if cls is None:
        raise InvalidElement(f"Unknown element type: {kind!r}")
    return cls(**_known_kwargs(cls, d))


# ---------- Template ----------

@dataclass
class Template:
    id: str
    name: str = "Untitled"
    category: str = ""
    size: LabelSize = field(default_factory=LabelSize)
    margins: Optional[Margins] = None
    variables: List[VarDef] = field(default_factory=list)
    elements: List[Element] = field(default_factory=list)

    # metadata
    version: int = 1
    created_at: str = ""
    updated_at: str = ""

    # ---- convenience ----
    @property
    def unit(self) -> str:
        return self.size.unit

    @property
    def dpi(self) -> int:
        return self.size.dpi

    @property
    def width_px(self) -> float:
        return to_device_pixels(self.size.width, self.size.unit, self.size.dpi)

    @property
    def height_px(self) -> float:
        return to_device_pixels(self.size.height, self.size.unit, self.size.dpi)

    def element_ids(self) -> List[str]:
        return [e.id for e in self.elements]

    def find_element(self, element_id: str) -> Optional[Element]:
        for e in self.elements:
            if e.id == element_id:
                return e
        return None

    def find_variable(self, key: str) -> Optional[VarDef]:
        for v in self.variables:
            if v.key == key:
                return v
        return None

    def element_unit(self, element: Element) -> str:
        return element.unit or self.size.unit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "size": self.size.to_dict(),
            "margins": self.margins.to_dict() if self.margins else None,
            "variables": [v.to_dict() for v in self.variables],
            "elements": [e.to_dict() for e in self.elements],
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Template":
        m = d.get("margins")
        t = Template(
            id=d.get("id", ""),
            name=d.get("name", "Untitled"),
            category=d.get("category", ""),
            size=LabelSize.from_dict(d.get("size") or {}),
            margins=Margins.from_dict(m) if m else None,
            version=int(d.get("version", 1)),
            created_at=d.get("created_at", ""),
            updated_at=d.get("updated_at", ""),
        )
        t.variables = [VarDef.from_dict(x) for x in d.get("variables", [])]
        t.elements = [element_from_dict(x) for x in d.get("elements", [])]
        return t


def validate_template(template: Template) -> List[str]:
    """
    Collect human readable problems; an empty list means the template is sound.
    """
    problems: List[str] = []
    if not (template.name or "").strip():
        problems.append("Template name is required")

    seen: set[str] = set()
    for index, e in enumerate(template.elements):
        if not e.id:
            problems.append(f"Element {index + 1} is missing an ID")
        elif e.id in seen:
            problems.append(f"Duplicate element id {e.id!r}")
        seen.add(e.id)
        if e.w <= 0 or e.h <= 0:
            if not (isinstance(e, ShapeElement) and e.shape == "line"):
                problems.append(f"Element {e.id} has invalid dimensions")

    keys: set[str] = set()
    for v in template.variables:
        if v.key in keys:
            problems.append(f"Duplicate variable key {v.key!r}")
        keys.add(v.key)
        if v.source == "record-field" and not v.field_path:
            problems.append(f"Variable {v.key!r} reads a record field but has no field path")
    return problems
