# maplib.py
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from PIL import Image

from logging_config import get_logger

logger = get_logger("maplib")

Point = Tuple[float, float]


# -----------------------------
# World model
# -----------------------------

@dataclass(frozen=True)
class WorldSpace:
    width: float = 9000.0
    height: float = 9000.0
    grid_size: float = 100.0
    origin: Point = (0.0, 0.0)

    @property
    def center(self) -> Point:
        ox, oy = self.origin
        return (ox + self.width / 2.0, oy + self.height / 2.0)


WORLD = WorldSpace()

DEFAULT_MARKER_SIZE = 100.0
DEFAULT_RECT_COLOR = "skyblue"


# -----------------------------
# Marker records
# -----------------------------

@dataclass(frozen=True)
class RectRecord:
    x: float
    y: float
    width: float = DEFAULT_MARKER_SIZE
    height: float = DEFAULT_MARKER_SIZE
    color: str = DEFAULT_RECT_COLOR
    name: str = ""


@dataclass(frozen=True)
class ImageRecord:
    x: float
    y: float
    image_url: str
    width: float = DEFAULT_MARKER_SIZE
    height: float = DEFAULT_MARKER_SIZE


def _field(row: Mapping[str, Any], key: str) -> str:
    v = row.get(key)
    if v is None:
        return ""
    return str(v).strip()


def parse_number(raw: Optional[str]) -> Optional[float]:
    """
    Parse a spreadsheet cell as a number.

    Returns None for blank, missing, non-numeric and non-finite values.
    Zero is a number and is returned as 0.0.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    return v


def with_default(value: Optional[float], default: float = DEFAULT_MARKER_SIZE) -> float:
    # an explicit 0 is kept; only blank or non-numeric sizes fall back,
    # unlike a "falsy means default" rule
    return default if value is None else value


def parse_rect_row(row: Mapping[str, Any]) -> Optional[RectRecord]:
    """Rectangle feed row -> RectRecord, or None when x/y is missing."""
    x = parse_number(_field(row, "x"))
    y = parse_number(_field(row, "y"))
    if x is None or y is None:
        return None

    return RectRecord(
        x=x,
        y=y,
        width=with_default(parse_number(_field(row, "width"))),
        height=with_default(parse_number(_field(row, "height"))),
        color=_field(row, "color") or DEFAULT_RECT_COLOR,
        name=_field(row, "name"),
    )


def parse_image_row(row: Mapping[str, Any]) -> Optional[ImageRecord]:
    """Image feed row -> ImageRecord, or None when x/y/imageUrl is missing."""
    x = parse_number(_field(row, "x"))
    y = parse_number(_field(row, "y"))
    url = _field(row, "imageUrl")
    if x is None or y is None or not url:
        return None

    return ImageRecord(
        x=x,
        y=y,
        image_url=url,
        width=with_default(parse_number(_field(row, "width"))),
        height=with_default(parse_number(_field(row, "height"))),
    )


# -----------------------------
# Scene items (world coordinates)
# -----------------------------

@dataclass(frozen=True)
class GridLine:
    x0: float
    y0: float
    x1: float
    y1: float
    stroke: str = "#ccc"
    stroke_width: float = 1.0


@dataclass(frozen=True)
class ArcShape:
    """
    Annular sector. Angles are degrees, clockwise from +x (y grows down),
    so rotation=45/angle=90 covers the lower quarter of the ring.
    """
    cx: float
    cy: float
    inner_radius: float
    outer_radius: float
    angle: float
    rotation: float
    stroke: str = "black"
    stroke_width: float = 2.0

    def outline_points(self, segments: int = 48) -> List[Point]:
        segments = max(2, int(segments))
        start = math.radians(self.rotation)
        sweep = math.radians(self.angle)

        outer = []
        inner = []
        for i in range(segments + 1):
            t = start + sweep * (i / segments)
            c, s = math.cos(t), math.sin(t)
            outer.append((self.cx + self.outer_radius * c, self.cy + self.outer_radius * s))
            inner.append((self.cx + self.inner_radius * c, self.cy + self.inner_radius * s))
        inner.reverse()
        return outer + inner


@dataclass(frozen=True)
class RectMarker:
    x: float
    y: float
    width: float
    height: float
    fill: str
    label: str = ""
    stroke: str = "black"
    stroke_width: float = 2.0
    font_family: str = "Arial"
    font_size: float = 18.0
    label_padding: float = 5.0

    @property
    def label_anchor(self) -> Point:
        # label sits under the rectangle
        return (self.x + self.label_padding, self.y + self.height + self.label_padding)


@dataclass(frozen=True)
class ImageMarker:
    x: float
    y: float
    width: float
    height: float
    source: str
    image: Image.Image = field(compare=False, repr=False)


SceneItem = Union[GridLine, ArcShape, RectMarker, ImageMarker]


def rect_marker_from_record(rec: RectRecord) -> RectMarker:
    return RectMarker(
        x=rec.x,
        y=rec.y,
        width=rec.width,
        height=rec.height,
        fill=rec.color,
        label=rec.name,
    )


def image_marker_from_record(rec: ImageRecord, image: Image.Image) -> ImageMarker:
    return ImageMarker(
        x=rec.x,
        y=rec.y,
        width=rec.width,
        height=rec.height,
        source=rec.image_url,
        image=image,
    )


# -----------------------------
# Static content
# -----------------------------

def build_grid(world: WorldSpace = WORLD) -> List[GridLine]:
    ox, oy = world.origin
    cols = int(world.width // world.grid_size)
    rows = int(world.height // world.grid_size)

    lines: List[GridLine] = []
    for i in range(cols + 1):
        x = ox + i * world.grid_size
        lines.append(GridLine(x, oy, x, oy + world.height))
    for j in range(rows + 1):
        y = oy + j * world.grid_size
        lines.append(GridLine(ox, y, ox + world.width, y))
    return lines


def build_ring(world: WorldSpace = WORLD) -> ArcShape:
    cx, cy = world.center
    return ArcShape(cx=cx, cy=cy, inner_radius=1000.0, outer_radius=1200.0, angle=90.0, rotation=45.0)


# -----------------------------
# Scene
# -----------------------------

class Scene:
    """
    Append-only, ordered list of world-space items.

    Insertion order is render order. Listeners get (index, item) after
    each append. Only the UI thread appends.
    """

    def __init__(self):
        self._items: List[SceneItem] = []
        self._listeners: List[Callable[[int, SceneItem], None]] = []

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def __getitem__(self, idx: int) -> SceneItem:
        return self._items[idx]

    @property
    def items(self) -> Tuple[SceneItem, ...]:
        return tuple(self._items)

    def subscribe(self, listener: Callable[[int, SceneItem], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[int, SceneItem], None]) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def add(self, item: SceneItem) -> int:
        idx = len(self._items)
        self._items.append(item)
        for cb in list(self._listeners):
            cb(idx, item)
        return idx

    def extend(self, items) -> None:
        for it in items:
            self.add(it)

    def count(self, kind: type) -> int:
        return sum(1 for it in self._items if isinstance(it, kind))

    def counts(self) -> Dict[str, int]:
        return {
            "rects": self.count(RectMarker),
            "images": self.count(ImageMarker),
        }


def build_static_scene(world: WorldSpace = WORLD) -> Scene:
    scene = Scene()
    scene.extend(build_grid(world))
    scene.add(build_ring(world))
    logger.debug("Static scene built: %d items", len(scene))
    return scene
