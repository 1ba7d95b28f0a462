# viewport.py
import tkinter as tk
from tkinter import ttk
from typing import Dict, List, Optional, Tuple

from PIL import Image, ImageTk

from logging_config import get_logger
from maplib import (
    WORLD, DEFAULT_RECT_COLOR,
    ArcShape, GridLine, ImageMarker, RectMarker, Scene, SceneItem, WorldSpace,
)
from view_transform import ViewState, ViewTransform, ZoomDirection

logger = get_logger("viewport")


def image_target(view: ViewTransform, item: ImageMarker, st: ViewState, canvas_w: int, canvas_h: int, max_side_px: int):
    """
    Where and how big an image marker is drawn for view state `st`.

    Returns (crop_box, size_px, screen_xy) or None when nothing is visible.
    crop_box is in source-image pixels; when the marker is larger than
    max_side_px on screen, only the part inside the canvas is cropped.
    """
    sx0, sy0 = view.world_to_screen((item.x, item.y), st)
    sx1, sy1 = view.world_to_screen((item.x + item.width, item.y + item.height), st)
    tw = sx1 - sx0
    th = sy1 - sy0
    iw, ih = item.image.size
    if tw < 1.0 or th < 1.0 or iw <= 0 or ih <= 0:
        return None

    cap = float(max_side_px)
    if tw <= cap and th <= cap:
        return (0, 0, iw, ih), (int(round(tw)), int(round(th))), (sx0, sy0)

    vl = max(sx0, 0.0)
    vt = max(sy0, 0.0)
    vr = min(sx1, float(canvas_w))
    vb = min(sy1, float(canvas_h))
    if vr <= vl or vb <= vt:
        return None

    # source px per screen px
    kx = iw / tw
    ky = ih / th
    crop_l = max(0, int((vl - sx0) * kx))
    crop_t = max(0, int((vt - sy0) * ky))
    crop_r = min(iw, max(crop_l + 1, int((vr - sx0) * kx + 0.999)))
    crop_b = min(ih, max(crop_t + 1, int((vb - sy0) * ky + 0.999)))

    # canvases wider/taller than the cap: crop less source instead of
    # shrinking the output, so the drawn scale stays exact
    crop_r = min(crop_r, crop_l + max(1, int(cap * kx)))
    crop_b = min(crop_b, crop_t + max(1, int(cap * ky)))

    # place the crop where its source pixels land on screen
    px = sx0 + crop_l / kx
    py = sy0 + crop_t / ky
    w = max(1, int(round((crop_r - crop_l) / kx)))
    h = max(1, int(round((crop_b - crop_t) / ky)))
    return (crop_l, crop_t, crop_r, crop_b), (w, h), (px, py)


class MapCanvas(ttk.Frame):
    """
    Pan/zoom map surface drawing a world-space Scene on a tk.Canvas.

      - Every scene item gets canvas item(s) once, in scene order
      - A view change re-projects all coordinates immediately (cheap)
      - Image markers are resampled on a deferred pass, cropped to the
        visible area when their on-screen size gets large

    All pan/zoom math lives in ViewTransform; this widget only projects.
    """

    def __init__(self, parent, view: ViewTransform, world: WorldSpace = WORLD, max_image_side_px: int = 4096):
        super().__init__(parent)
        self.rowconfigure(0, weight=1)
        self.columnconfigure(0, weight=1)

        self.canvas = tk.Canvas(self, bg="white", highlightthickness=0)
        self.canvas.grid(row=0, column=0, sticky="nsew")

        self.view = view
        self.world = world
        self._max_image_side_px = int(max_image_side_px)

        self._scene: Optional[Scene] = None
        # (item, canvas ids) in scene order
        self._drawn: List[Tuple[SceneItem, Tuple[int, ...]]] = []

        # Image marker render cache: canvas id -> (render key, PhotoImage, world anchor)
        self._img_cache: Dict[int, Tuple[tuple, ImageTk.PhotoImage, Tuple[float, float]]] = {}

        # Drag state
        self._is_dragging = False
        self._last_drag: Optional[Tuple[int, int]] = None

        # Deferred image resample
        self._hq_after_id = None
        self._hq_delay_ms = 60

        self.view.subscribe(self._on_view_changed)

    # -----------------------------
    # Public API
    # -----------------------------
    def set_scene(self, scene: Scene):
        if self._scene is not None:
            self._scene.unsubscribe(self._on_scene_add)

        self.canvas.delete("all")
        self._drawn = []
        self._img_cache = {}

        self._scene = scene
        for item in scene:
            self._draw_item(item)
        scene.subscribe(self._on_scene_add)

    def resize(self, width: int, height: int):
        w = max(1, int(width))
        h = max(1, int(height))
        if not self.view.initialized:
            # First real size: centre the world
            self.view.initialize((w, h), self.world.center)
        else:
            self.view.on_viewport_resize((w, h))
            self.schedule_image_pass()

    def reset_view(self):
        if not self.view.initialized:
            return
        self.view.reset(self.world.center)

    def wheel_zoom(self, canvas_x: int, canvas_y: int, direction: ZoomDirection):
        if not self.view.initialized:
            return
        self.view.zoom_at_pointer((float(canvas_x), float(canvas_y)), direction)

    def pointer_world(self, canvas_x: int, canvas_y: int) -> Tuple[float, float]:
        return self.view.screen_to_world((float(canvas_x), float(canvas_y)))

    # -----------------------------
    # Pan
    # -----------------------------
    def pan_begin(self, x: int, y: int):
        self._is_dragging = True
        self._last_drag = (x, y)

    def pan_move(self, x: int, y: int):
        if not self._is_dragging or self._last_drag is None:
            return
        lx, ly = self._last_drag
        self._last_drag = (x, y)
        if x == lx and y == ly:
            return
        self.view.pan((float(x - lx), float(y - ly)))

    def pan_end(self):
        if not self._is_dragging:
            return
        self._is_dragging = False
        self._last_drag = None
        self.schedule_image_pass(0)

    # -----------------------------
    # Scheduling
    # -----------------------------
    def schedule_image_pass(self, delay_ms: Optional[int] = None):
        if self._hq_after_id is not None:
            try:
                self.after_cancel(self._hq_after_id)
            except tk.TclError:
                pass
        delay = self._hq_delay_ms if delay_ms is None else delay_ms
        self._hq_after_id = self.after(delay, self._image_pass_now)

    def _image_pass_now(self):
        self._hq_after_id = None
        st = self.view.state
        vl, vt, vr, vb = self.view.visible_world_rect()
        for item, ids in self._drawn:
            if not isinstance(item, ImageMarker):
                continue
            if item.x > vr or item.y > vb or item.x + item.width < vl or item.y + item.height < vt:
                # off screen: keep the last rendering, skip the resample
                continue
            self._render_image(item, ids[0], st)

    # -----------------------------
    # Listeners
    # -----------------------------
    def _on_scene_add(self, _idx: int, item: SceneItem):
        self._draw_item(item)

    def _on_view_changed(self, st: ViewState):
        for item, ids in self._drawn:
            self._project(item, ids, st)
        if not self._is_dragging:
            self.schedule_image_pass()

    # -----------------------------
    # Item creation
    # -----------------------------
    def _draw_item(self, item: SceneItem):
        c = self.canvas
        if isinstance(item, GridLine):
            ids = (c.create_line(0, 0, 0, 0, fill=item.stroke, width=item.stroke_width),)
        elif isinstance(item, ArcShape):
            pts = [0.0] * (len(item.outline_points()) * 2)
            ids = (c.create_polygon(*pts, outline=item.stroke, fill="", width=item.stroke_width),)
        elif isinstance(item, RectMarker):
            ids = (self._create_rect(item), c.create_text(0, 0, text=item.label, anchor="nw", fill="black"))
        elif isinstance(item, ImageMarker):
            ids = (c.create_image(0, 0, anchor="nw"),)
        else:
            raise TypeError(f"Unsupported scene item: {type(item).__name__}")

        self._drawn.append((item, ids))
        st = self.view.state
        self._project(item, ids, st)
        if isinstance(item, ImageMarker):
            self._render_image(item, ids[0], st)

    def _create_rect(self, item: RectMarker) -> int:
        try:
            return self.canvas.create_rectangle(0, 0, 0, 0, fill=item.fill, outline=item.stroke)
        except tk.TclError:
            logger.warning("Unknown colour %r for marker at (%s, %s); using %s", item.fill, item.x, item.y, DEFAULT_RECT_COLOR)
            return self.canvas.create_rectangle(0, 0, 0, 0, fill=DEFAULT_RECT_COLOR, outline=item.stroke)

    # -----------------------------
    # Projection
    # -----------------------------
    @staticmethod
    def _stroke_px(width: float, scale: float) -> float:
        return max(1.0, width * scale)

    def _project(self, item: SceneItem, ids: Tuple[int, ...], st: ViewState):
        c = self.canvas
        to_screen = self.view.world_to_screen
        s = st.scale

        if isinstance(item, GridLine):
            x0, y0 = to_screen((item.x0, item.y0), st)
            x1, y1 = to_screen((item.x1, item.y1), st)
            c.coords(ids[0], x0, y0, x1, y1)
            c.itemconfigure(ids[0], width=self._stroke_px(item.stroke_width, s))

        elif isinstance(item, ArcShape):
            flat: List[float] = []
            for p in item.outline_points():
                flat.extend(to_screen(p, st))
            c.coords(ids[0], *flat)
            c.itemconfigure(ids[0], width=self._stroke_px(item.stroke_width, s))

        elif isinstance(item, RectMarker):
            x0, y0 = to_screen((item.x, item.y), st)
            x1, y1 = to_screen((item.x + item.width, item.y + item.height), st)
            c.coords(ids[0], x0, y0, x1, y1)
            c.itemconfigure(ids[0], width=self._stroke_px(item.stroke_width, s))

            tx, ty = to_screen(item.label_anchor, st)
            font_px = int(round(item.font_size * s))
            c.coords(ids[1], tx, ty)
            if font_px < 4 or not item.label:
                c.itemconfigure(ids[1], state="hidden")
            else:
                # negative size = pixels
                c.itemconfigure(ids[1], state="normal", font=(item.font_family, -font_px))

        elif isinstance(item, ImageMarker):
            cached = self._img_cache.get(ids[0])
            if cached is not None:
                # keep last rendering pinned to its world anchor until resampled
                ax, ay = to_screen(cached[2], st)
                c.coords(ids[0], ax, ay)

    # -----------------------------
    # Image rendering
    # -----------------------------
    def _render_image(self, item: ImageMarker, cid: int, st: ViewState):
        c = self.canvas
        cw = max(1, c.winfo_width())
        ch = max(1, c.winfo_height())

        target = image_target(self.view, item, st, cw, ch, self._max_image_side_px)
        if target is None:
            c.itemconfigure(cid, state="hidden")
            return

        crop_box, size, (px, py) = target
        key = (crop_box, size)
        anchor = self.view.screen_to_world((px, py), st)

        cached = self._img_cache.get(cid)
        if cached is not None and cached[0] == key:
            self._img_cache[cid] = (key, cached[1], anchor)
            c.coords(cid, px, py)
            c.itemconfigure(cid, state="normal")
            return

        src = item.image
        if crop_box != (0, 0, src.width, src.height):
            src = src.crop(crop_box)
        resample = Image.BILINEAR if size[0] < src.width else Image.NEAREST
        photo = ImageTk.PhotoImage(src.resize(size, resample=resample))

        self._img_cache[cid] = (key, photo, anchor)
        c.itemconfigure(cid, image=photo, state="normal")
        c.coords(cid, px, py)
