# input_controller.py
import tkinter as tk

from view_transform import ZoomDirection


class InputController:
    """
    Dumb input layer:
      - Translates wheel / drag / resize events into MapCanvas calls
      - Reports the pointer's world position to the app status bar
      - Right-click copies the pointer's world position to the clipboard

    No math here. All pan/zoom behavior is in view_transform.py.
    """

    def __init__(self, app, viewport):
        self.app = app
        self.viewport = viewport
        self.canvas = viewport.canvas

    def install(self):
        # Drag panning
        self.canvas.bind("<ButtonPress-1>", self._on_pan_press)
        self.canvas.bind("<B1-Motion>", self._on_pan_move)
        self.canvas.bind("<ButtonRelease-1>", self._on_pan_release)

        # Wheel zoom
        self.canvas.bind("<MouseWheel>", self._on_mousewheel_zoom)  # Windows/macOS
        self.canvas.bind("<Button-4>", self._on_linux_wheel_up)     # Linux
        self.canvas.bind("<Button-5>", self._on_linux_wheel_down)   # Linux

        # Pointer readout + copy
        self.canvas.bind("<Motion>", self._on_motion)
        self.canvas.bind("<ButtonPress-3>", self._on_copy_coords)

        self.canvas.bind("<Configure>", self._on_configure)

        # Make sure canvas can receive events
        self.canvas.bind("<Enter>", lambda e: self.canvas.focus_set())
        self.canvas.bind("<Button-1>", lambda e: self.canvas.focus_set(), add=True)

    # -----------------------------
    # Resize
    # -----------------------------
    def _on_configure(self, e):
        self.viewport.resize(e.width, e.height)

    # -----------------------------
    # Panning
    # -----------------------------
    def _on_pan_press(self, e):
        self.viewport.pan_begin(e.x, e.y)
        try:
            self.canvas.configure(cursor="fleur")
        except tk.TclError:
            pass

    def _on_pan_move(self, e):
        self.viewport.pan_move(e.x, e.y)
        self.app.show_pointer(e.x, e.y)

    def _on_pan_release(self, _e):
        self.viewport.pan_end()
        try:
            self.canvas.configure(cursor="")
        except tk.TclError:
            pass

    # -----------------------------
    # Wheel zoom
    # -----------------------------
    def _zoom(self, x, y, direction):
        self.viewport.wheel_zoom(x, y, direction)
        self.app.show_pointer(x, y)
        # suppress default scrolling
        return "break"

    def _on_linux_wheel_up(self, e):
        return self._zoom(e.x, e.y, ZoomDirection.IN)

    def _on_linux_wheel_down(self, e):
        return self._zoom(e.x, e.y, ZoomDirection.OUT)

    def _on_mousewheel_zoom(self, e):
        # Tk reports wheel-up as positive delta; the web convention is the opposite
        if not e.delta:
            return "break"
        return self._zoom(e.x, e.y, ZoomDirection.from_wheel_delta(-e.delta))

    # -----------------------------
    # Pointer readout
    # -----------------------------
    def _on_motion(self, e):
        self.app.show_pointer(e.x, e.y)

    def _on_copy_coords(self, e):
        self.app.copy_world_coords(e.x, e.y)
        return "break"
