"""
Open Spray Sim.

Copyright (c) 2026 Shuoqi Chen
SPDX-License-Identifier: MIT OR Apache-2.0
"""
import time
from dataclasses import fields

import numpy as np
import taichi as ti

from .brush import Material, SprayEngine, SprayParams
from .cli import DEFAULT_COLOR, build_arg_parser, params_from_args

NOZZLE_PRESETS = {str(i + 1): size for i, size in enumerate((4, 8, 12, 18, 25, 35, 50, 75, 110))}
GOLD = "#eac677"
BLACK = DEFAULT_COLOR


def _to_gui_image(rgb8: np.ndarray) -> np.ndarray:
    """(h, w, 3) top-down uint8 -> (w, h, 3) bottom-up float32 for GGUI."""
    return np.ascontiguousarray(rgb8[::-1].transpose(1, 0, 2), dtype=np.float32) / 255.0


def _save_screenshot(engine):
    import PIL.Image

    path = f"spray_{int(time.time())}.png"
    PIL.Image.fromarray(engine.canvas.to_rgb8()).save(path)
    print(f"[SprayViewer] Saved screenshot: {path}")


def _param_sliders(gui, engine, category):
    for f in fields(SprayParams):
        if f.metadata.get("category") != category or f.name == "pressure":
            continue
        display_name = f.name.replace("_", " ").title()
        val = getattr(engine.p, f.name)
        if f.type is bool:
            new_val = gui.checkbox(display_name, val)
        elif f.type is int:
            new_val = gui.slider_int(display_name, val, int(f.metadata["min"]), int(f.metadata["max"]))
        else:
            new_val = gui.slider_float(display_name, val, f.metadata["min"], f.metadata["max"])
        if new_val != val:
            engine.update_params(**{f.name: new_val})


def launch_viewer():
    args = build_arg_parser().parse_args()
    W, H = args.width, args.height

    print(f"\n[SprayViewer] Starting Spray Paint")
    print(f" - Canvas:  {W}x{H}")
    print(f" - FPS Cap: {args.fps}")
    print(f" - Seed:    {args.seed if args.seed is not None else 'random'}")
    print(f"--------------------------------")

    ti.init(arch=ti.cpu)
    engine = SprayEngine(W, H, seed=args.seed)
    engine.update_params(**params_from_args(args))
    if not engine.set_color(args.color):
        print(f"[SprayViewer] Ignoring invalid colour {args.color!r}")

    window = ti.ui.Window("Spray Paint (Drips)", (W, H))
    canvas = window.get_canvas()
    gui = window.get_gui()

    print("\n[Controls]")
    print(" - Mouse Left (LMB): Spray")
    print(" - 1-9: Nozzle size presets")
    print(" - Space: Toggle drips")
    print(" - C: Clear canvas")
    print(" - G / K: Gold / black paint")
    print(" - S: Save screenshot")
    print(" - Tab: Toggle UI | Hold Shift: move without spraying")

    show_ui = True
    show_advanced = False
    fps_limit = args.fps
    last_frame = time.perf_counter()
    last_stat_time = last_frame
    stamps_at_stat = 0

    while window.running:
        frame_start = time.perf_counter()
        dt = frame_start - last_frame
        last_frame = frame_start

        for e in window.get_events(ti.ui.PRESS):
            if e.key in NOZZLE_PRESETS:
                engine.set_nozzle_size(NOZZLE_PRESETS[e.key])
                print(f"[SprayViewer] Nozzle: {engine.p.nozzle_size:.0f}px")
            elif e.key == ti.ui.SPACE:
                enabled = engine.toggle_drips()
                print(f"[SprayViewer] Drips {'ON' if enabled else 'OFF'}")
            elif e.key == 'c':
                engine.clear()
            elif e.key == 'g':
                engine.set_color(GOLD)
            elif e.key == 'k':
                engine.set_color(BLACK)
            elif e.key == 's':
                _save_screenshot(engine)
            elif e.key == ti.ui.TAB:
                show_ui = not show_ui
            elif e.key == ti.ui.ESCAPE:
                window.running = False

        # GGUI cursor coordinates are [0,1] with origin at BOTTOM-LEFT.
        spraying = window.is_pressed(ti.ui.LMB) and not window.is_pressed(ti.ui.SHIFT)
        if spraying:
            mx, my = window.get_cursor_pos()
            px, py = mx * W, (1.0 - my) * H
            if engine.is_drawing:
                engine.draw(px, py)
            else:
                engine.start_drawing(px, py)
        elif engine.is_drawing:
            engine.stop_drawing()

        if show_ui:
            with gui.sub_window("Controls", 0.02, 0.02, 0.3, 0.9):
                gui.text(f"Drips: {'ON' if engine.drips_enabled else 'OFF'} [Space]")
                gui.text(f"Live drips: {len(engine.drips)}")
                if gui.button("Clear Canvas"):
                    engine.clear()
                metallic = engine.material is Material.METALLIC
                if gui.button("Black" if metallic else "Gold"):
                    engine.set_color(BLACK if metallic else GOLD)

                for category in ("Spray", "Drips", "Dynamics"):
                    gui.text(f"--- {category} ---")
                    _param_sliders(gui, engine, category)

                show_advanced = gui.checkbox("Advanced Settings", show_advanced)
                if show_advanced:
                    for category in ("Physics", "Shape", "Advanced"):
                        gui.text(f"--- {category} ---")
                        _param_sliders(gui, engine, category)

                if gui.button("Save Screenshot"):
                    _save_screenshot(engine)

        # Sampler first, then decay and drips.
        engine.scheduler.run_pending()
        engine.tick(dt)

        canvas.set_image(_to_gui_image(engine.canvas.to_rgb8()))
        window.show()

        now = time.perf_counter()
        if now - last_stat_time > 2.0:
            stats = engine.stats
            rate = (stats.stamps - stamps_at_stat) / (now - last_stat_time)
            fps_val = 1.0 / dt if dt > 0 else 0.0
            print(f"[Stats] Stamps/sec: {rate:.0f} | Drips: {stats.live_drips} | FPS: {fps_val:.1f}")
            stamps_at_stat = stats.stamps
            last_stat_time = now

        # Enforce FPS cap to prevent resource hogging
        elapsed = time.perf_counter() - frame_start
        if elapsed < 1.0 / fps_limit:
            time.sleep(1.0 / fps_limit - elapsed)


if __name__ == "__main__":
    launch_viewer()
