# view_transform.py
import enum
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from logging_config import get_logger

logger = get_logger("view_transform")

Point = Tuple[float, float]
Size = Tuple[float, float]


class ZoomDirection(enum.Enum):
    IN = 1
    OUT = -1

    @classmethod
    def from_wheel_delta(cls, delta_y: float) -> "ZoomDirection":
        # Web wheel convention: positive deltaY scrolls down -> zoom out
        return cls.OUT if delta_y > 0 else cls.IN


@dataclass(frozen=True)
class ViewState:
    offset: Point = (0.0, 0.0)
    scale: float = 1.0


class ViewTransform:
    """
    Owns the ViewState (pan offset + uniform scale) of the map viewport.

      screen = world * scale + offset
      world  = (screen - offset) / scale

    Every mutation builds a new ViewState and swaps it in with a single
    assignment, then notifies listeners, so nobody sees a half-updated
    offset/scale pair.
    """

    def __init__(
        self,
        zoom_factor: float = 1.1,
        min_scale: Optional[float] = None,
        max_scale: Optional[float] = None,
    ):
        if zoom_factor <= 1.0:
            raise ValueError("zoom_factor must be > 1")
        if min_scale is not None and min_scale <= 0.0:
            raise ValueError("min_scale must be > 0")
        if min_scale is not None and max_scale is not None and max_scale < min_scale:
            raise ValueError("max_scale must be >= min_scale")

        self.zoom_factor = float(zoom_factor)
        self.min_scale = min_scale
        self.max_scale = max_scale

        self._state = ViewState()
        self._screen_size: Size = (0.0, 0.0)
        self._initialized = False
        self._listeners: List[Callable[[ViewState], None]] = []

    # -----------------------------
    # State access
    # -----------------------------
    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def offset(self) -> Point:
        return self._state.offset

    @property
    def scale(self) -> float:
        return self._state.scale

    @property
    def screen_size(self) -> Size:
        return self._screen_size

    @property
    def initialized(self) -> bool:
        return self._initialized

    def subscribe(self, listener: Callable[[ViewState], None]) -> None:
        self._listeners.append(listener)

    def _commit(self, state: ViewState) -> None:
        self._state = state
        for cb in list(self._listeners):
            cb(state)

    # -----------------------------
    # Setup
    # -----------------------------
    def initialize(self, screen_size: Size, world_center: Point) -> None:
        sw, sh = float(screen_size[0]), float(screen_size[1])
        wx, wy = world_center
        self._screen_size = (sw, sh)
        self._initialized = True
        self._commit(ViewState(offset=(sw / 2.0 - wx, sh / 2.0 - wy), scale=1.0))
        logger.debug("View initialized: screen=%sx%s offset=%s", sw, sh, self._state.offset)

    def reset(self, world_center: Point) -> None:
        """Re-centre on world_center at scale 1 using the current screen size."""
        self.initialize(self._screen_size, world_center)

    def on_viewport_resize(self, screen_size: Size) -> None:
        # Pan/zoom are preserved across resizes
        self._screen_size = (float(screen_size[0]), float(screen_size[1]))

    # -----------------------------
    # Conversion
    # -----------------------------
    def screen_to_world(self, p: Point, state: Optional[ViewState] = None) -> Point:
        st = state or self._state
        ox, oy = st.offset
        return ((p[0] - ox) / st.scale, (p[1] - oy) / st.scale)

    def world_to_screen(self, p: Point, state: Optional[ViewState] = None) -> Point:
        st = state or self._state
        ox, oy = st.offset
        return (p[0] * st.scale + ox, p[1] * st.scale + oy)

    def visible_world_rect(self) -> Tuple[float, float, float, float]:
        sw, sh = self._screen_size
        st = self._state
        l, t = self.screen_to_world((0.0, 0.0), st)
        r, b = self.screen_to_world((sw, sh), st)
        return l, t, r, b

    # -----------------------------
    # Interaction
    # -----------------------------
    def _clamp_scale(self, s: float) -> float:
        if self.min_scale is not None and s < self.min_scale:
            s = self.min_scale
        if self.max_scale is not None and s > self.max_scale:
            s = self.max_scale
        return s

    def zoom_at_pointer(self, pointer: Point, direction: ZoomDirection) -> ViewState:
        st = self._state
        wx, wy = self.screen_to_world(pointer, st)

        if direction is ZoomDirection.IN:
            new_scale = st.scale * self.zoom_factor
        else:
            new_scale = st.scale / self.zoom_factor
        new_scale = self._clamp_scale(new_scale)

        px, py = pointer
        new_offset = (px - wx * new_scale, py - wy * new_scale)
        self._commit(ViewState(offset=new_offset, scale=new_scale))
        return self._state

    def pan(self, delta: Point) -> ViewState:
        st = self._state
        ox, oy = st.offset
        self._commit(ViewState(offset=(ox + delta[0], oy + delta[1]), scale=st.scale))
        return self._state
