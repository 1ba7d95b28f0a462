# actions.py
import tkinter as tk

from logging_config import get_logger
from maplib import build_static_scene

logger = get_logger("actions")


def format_world_coords(wx: float, wy: float) -> str:
    # spreadsheet-ready "x,y"
    return f"{int(round(wx))},{int(round(wy))}"


def reload_data(app):
    # Fresh scene so markers removed from the sheet disappear too
    scene = build_static_scene(app.world)
    app.scene = scene
    app.viewport.set_scene(scene)
    app.pipeline.start(scene)
    app.set_status()


def reset_view(app):
    app.viewport.reset_view()


def copy_world_coords(app, canvas_x: int, canvas_y: int):
    wx, wy = app.viewport.pointer_world(canvas_x, canvas_y)
    text = format_world_coords(wx, wy)
    try:
        app.clipboard_clear()
        app.clipboard_append(text)
    except tk.TclError as e:
        logger.warning("Clipboard unavailable: %s", e)
        return

    logger.info("Copied world coordinates %s", text)
    app.set_status(extra=f" | Copied {text}")
