# ui_controls.py
import tkinter as tk
from tkinter import ttk


def build_ui(app):
    app.columnconfigure(0, weight=1)
    app.rowconfigure(1, weight=1)

    # Top bar
    topbar = ttk.Frame(app, padding=(8, 6))
    topbar.grid(row=0, column=0, sticky="ew")
    topbar.columnconfigure(3, weight=1)

    ttk.Button(topbar, text="Reload data", command=app.reload_data).grid(row=0, column=0, sticky="w", padx=(0, 4))
    ttk.Button(topbar, text="Reset view", command=app.reset_view).grid(row=0, column=1, sticky="w", padx=(4, 4))
    ttk.Button(topbar, text="Controls", command=app.show_controls).grid(row=0, column=2, sticky="w", padx=(4, 0))

    app.zoom_var = tk.StringVar(value="Zoom 100%")
    ttk.Label(topbar, textvariable=app.zoom_var, width=14, anchor="e").grid(row=0, column=4, sticky="e")

    # Viewport
    app.viewport = app._create_viewport(app)
    app.viewport.grid(row=1, column=0, sticky="nsew")

    # Status bar
    statusbar = ttk.Frame(app, padding=(8, 4))
    statusbar.grid(row=2, column=0, sticky="ew")
    statusbar.columnconfigure(0, weight=1)

    app.info_var = tk.StringVar(value="Loading markers…")
    ttk.Label(statusbar, textvariable=app.info_var).grid(row=0, column=0, sticky="w")

    app.pointer_var = tk.StringVar(value="")
    ttk.Label(statusbar, textvariable=app.pointer_var, width=24, anchor="e").grid(row=0, column=1, sticky="e")
