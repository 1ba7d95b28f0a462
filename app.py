# app.py
import functools
import tkinter as tk
from concurrent.futures import ThreadPoolExecutor
from tkinter import ttk
from typing import Optional

import actions
import config
import ui_controls
from input_controller import InputController
from loader import fetch_rows, load_image
from logging_config import get_logger, setup_logging
from maplib import WORLD, Scene, build_static_scene
from pipeline import MarkerPipeline
from view_transform import ViewState, ViewTransform
from viewport import MapCanvas

logger = get_logger("app")


class MapBoardApp(tk.Tk):
    def __init__(self):
        super().__init__()
        self.title("Map Board Viewer")
        self.geometry(config.WINDOW_GEOMETRY)

        self.world = WORLD
        self.view = ViewTransform(
            zoom_factor=config.ZOOM_FACTOR,
            min_scale=config.MIN_SCALE,
            max_scale=config.MAX_SCALE,
        )
        self.scene: Scene = build_static_scene(self.world)

        self._executor = ThreadPoolExecutor(max_workers=config.LOADER_WORKERS, thread_name_prefix="mapboard-io")
        self.pipeline = MarkerPipeline(
            executor=self._executor,
            fetch_rows=functools.partial(fetch_rows, timeout=config.HTTP_TIMEOUT_S),
            load_image=functools.partial(load_image, timeout=config.HTTP_TIMEOUT_S),
            rect_url=config.RECT_CSV_URL,
            image_url=config.IMAGE_CSV_URL,
        )

        self._poll_after_id: Optional[str] = None
        self._controls_win: Optional[tk.Toplevel] = None

        # Build UI (widgets + viewport)
        ui_controls.build_ui(self)
        self.viewport.set_scene(self.scene)
        self.view.subscribe(self._on_view_changed)

        # Install input controller (all bindings live there)
        self.input = InputController(self, self.viewport)
        self.input.install()

        self.protocol("WM_DELETE_WINDOW", self.on_close)

        self.pipeline.start(self.scene)
        self._poll_pipeline()

    # -------------------------------------------------
    # Viewport creation hook (used by ui_controls)
    # -------------------------------------------------
    def _create_viewport(self, parent):
        return MapCanvas(parent, self.view, world=self.world, max_image_side_px=config.MAX_IMAGE_SIDE_PX)

    # -----------------------------
    # Actions (delegated)
    # -----------------------------
    def reload_data(self):
        actions.reload_data(self)

    def reset_view(self):
        actions.reset_view(self)

    def copy_world_coords(self, canvas_x: int, canvas_y: int):
        actions.copy_world_coords(self, canvas_x, canvas_y)

    def show_controls(self):
        # Re-focus existing window if already open
        if self._controls_win is not None:
            if self._controls_win.winfo_exists():
                self._controls_win.deiconify()
                self._controls_win.lift()
                self._controls_win.focus_force()
                return
            self._controls_win = None

        win = tk.Toplevel(self)
        self._controls_win = win
        win.title("Controls")
        win.resizable(False, False)
        win.transient(self)

        def _on_close():
            win.destroy()
            self._controls_win = None

        win.protocol("WM_DELETE_WINDOW", _on_close)

        frm = ttk.Frame(win, padding=12)
        frm.pack(fill="both", expand=True)

        ttk.Label(frm, text="Controls", font=("Segoe UI", 11, "bold")).pack(anchor="w")
        ttk.Separator(frm).pack(fill="x", pady=(8, 10))

        lines = [
            "Pan: Left-click + drag",
            "Zoom: Mouse wheel (zooms at the pointer)",
            "Copy map position: Right-click (pastes as x,y)",
            "Reload data: re-reads both spreadsheet feeds",
            "Reset view: map centre at 100%",
        ]
        ttk.Label(frm, text="\n".join(lines), justify="left").pack(anchor="w")

        ttk.Separator(frm).pack(fill="x", pady=(10, 10))

        btn_row = ttk.Frame(frm)
        btn_row.pack(fill="x")
        ttk.Button(btn_row, text="Close", command=_on_close).pack(side="right")

        # Position near the main window
        self.update_idletasks()
        x = self.winfo_rootx() + 40
        y = self.winfo_rooty() + 40
        win.geometry(f"+{x}+{y}")

        win.lift()
        win.focus_force()

    # -----------------------------
    # Status helpers
    # -----------------------------
    def set_status(self, extra: str = ""):
        counts = self.scene.counts()
        state = "loading…" if self.pipeline.busy else "ready"
        failed = ""
        if self.pipeline.failed_feeds:
            failed = " | failed: " + ", ".join(sorted(k.value for k in self.pipeline.failed_feeds))
        self.info_var.set(f"{counts['rects']} rect(s) | {counts['images']} image(s) | {state}{failed}{extra}")

    def show_pointer(self, canvas_x: int, canvas_y: int):
        if not self.view.initialized:
            return
        wx, wy = self.viewport.pointer_world(canvas_x, canvas_y)
        self.pointer_var.set(f"x {wx:.0f}  y {wy:.0f}")

    def _on_view_changed(self, st: ViewState):
        self.zoom_var.set(f"Zoom {st.scale * 100.0:.0f}%")

    # -----------------------------
    # Marker loading
    # -----------------------------
    def _poll_pipeline(self):
        try:
            if self.pipeline.drain():
                self.set_status()
        finally:
            # keep polling even if one result blew up
            self._poll_after_id = self.after(config.POLL_INTERVAL_MS, self._poll_pipeline)

    def on_close(self):
        if self._poll_after_id is not None:
            self.after_cancel(self._poll_after_id)
            self._poll_after_id = None
        # In-flight downloads are not cancellable; don't wait for them
        self._executor.shutdown(wait=False, cancel_futures=True)
        self.destroy()


def main():
    setup_logging(config.LOG_LEVEL, config.LOG_FILE)
    app = MapBoardApp()
    app.mainloop()


if __name__ == "__main__":
    main()
