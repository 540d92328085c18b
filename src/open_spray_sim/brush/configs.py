import math
from dataclasses import dataclass, field, fields
from enum import Enum


class Material(Enum):
    """Rendering recipe family, decided once when the colour is set."""

    STANDARD = "standard"
    METALLIC = "metallic"


# Metallic gold, the one colour rendered with the metallic recipe.
METALLIC_COLORS = frozenset({"#eac677"})

# Reference nozzle diameter (px) used by the spray physics.
D_REF = 40.0


@dataclass
class SprayParams:
    """User-adjustable parameters for the spray and drip simulation."""

    # --- [SPRAY] Nozzle & paint ---
    nozzle_size: float = field(default=25.0, metadata={"help": "Nozzle diameter in pixels.", "category": "Spray", "min": 2.0, "max": 120.0})
    softness: float = field(default=0.95, metadata={"help": "Fraction of the grain radius kept fully opaque.", "category": "Spray", "min": 0.7, "max": 0.95})
    opacity: float = field(default=1.0, metadata={"help": "Base paint opacity.", "category": "Spray", "min": 0.8, "max": 1.0})
    flow: float = field(default=1.2, metadata={"help": "Paint flow rate.", "category": "Spray", "min": 0.8, "max": 1.2})
    scatter_radius_mult: float = field(default=2.0, metadata={"help": "Multiplier on the projected spray radius.", "category": "Spray", "min": 0.1, "max": 4.0})
    scatter_amount_mult: float = field(default=1.0, metadata={"help": "Multiplier on the grain count.", "category": "Spray", "min": 0.1, "max": 3.0})
    scatter_size_mult: float = field(default=1.5, metadata={"help": "Multiplier on the grain size.", "category": "Spray", "min": 0.1, "max": 4.0})
    overspray_mult: float = field(default=1.0, metadata={"help": "Strength of the airborne mist halo.", "category": "Spray", "min": 0.0, "max": 1.0})
    distance: float = field(default=6.0, metadata={"help": "Simulated nozzle-to-wall distance in pixels.", "category": "Spray", "min": 2.0, "max": 400.0})
    pressure: float = field(default=1.0, metadata={"help": "Smoothed trigger pressure.", "category": "Spray", "min": 0.0, "max": 1.0})

    # --- [DRIPS] Pooling & spawning ---
    drip_threshold: float = field(default=0.55, metadata={"help": "Pooled wetness needed at the centre cell.", "category": "Drips", "min": 0.1, "max": 0.8})
    drip_hysteresis: float = field(default=0.12, metadata={"help": "Wetness drained around a freshly spawned drip.", "category": "Drips", "min": 0.0, "max": 0.5})
    pool_threshold: float = field(default=0.72, metadata={"help": "Weighted 3x3 pooled wetness needed.", "category": "Drips", "min": 0.1, "max": 3.0})
    wet_cap: float = field(default=0.9, metadata={"help": "Per-cell wetness cap.", "category": "Drips", "min": 0.1, "max": 1.0})
    wet_evaporation: float = field(default=0.26, metadata={"help": "Wetness evaporation rate (1/s).", "category": "Drips", "min": 0.05, "max": 1.0})
    max_drips: int = field(default=90, metadata={"help": "Maximum number of live drips.", "category": "Drips", "min": 0, "max": 400})
    min_drip_spacing: float = field(default=22.0, metadata={"help": "Spacing in pixels under which seeds merge into a live drip.", "category": "Drips", "min": 4.0, "max": 120.0})
    min_spawn_interval_ms: float = field(default=1000.0, metadata={"help": "Minimum time between spawns from one neighbourhood.", "category": "Drips", "min": 0.0, "max": 10000.0})
    spawn_cooldown_frames: int = field(default=40, metadata={"help": "Frames a neighbourhood stays locked after a spawn.", "category": "Drips", "min": 0, "max": 600})

    # --- [DRIPS] Physics ---
    gravity: float = field(default=1580.0, metadata={"help": "Drip gravity (px/s^2).", "category": "Physics", "min": 500.0, "max": 5000.0})
    viscosity: float = field(default=4.2, metadata={"help": "Viscous damping of drip velocity (1/s).", "category": "Physics", "min": 0.5, "max": 15.0})
    deposit_per_px: float = field(default=1.25, metadata={"help": "Drip volume lost per 60 px of travel.", "category": "Physics", "min": 0.0, "max": 10.0})
    lateral_spread: float = field(default=0.6, metadata={"help": "Lateral wobble amplitude.", "category": "Physics", "min": 0.0, "max": 4.0})
    drip_length_cap: float = field(default=70.0, metadata={"help": "Travel length at which a drip ends.", "category": "Physics", "min": 10.0, "max": 1000.0})
    drip_volume_floor: float = field(default=0.08, metadata={"help": "Volume at which a drip ends.", "category": "Physics", "min": 0.01, "max": 0.5})

    # --- [DRIPS] Shape ---
    global_trail_cap: float = field(default=26.0, metadata={"help": "Absolute maximum trail stamp radius.", "category": "Shape", "min": 2.0, "max": 64.0})
    base_radius_hard_max: float = field(default=12.0, metadata={"help": "Maximum drip base radius.", "category": "Shape", "min": 2.0, "max": 32.0})
    merge_damp: float = field(default=0.35, metadata={"help": "How far a merge moves toward the area-conserving radius.", "category": "Shape", "min": 0.0, "max": 1.0})
    tail_taper_min: float = field(default=0.35, metadata={"help": "Thinnest tail tip as a fraction of the base radius.", "category": "Shape", "min": 0.05, "max": 1.0})
    tail_taper_max: float = field(default=0.85, metadata={"help": "Upper bound of the tail taper factor.", "category": "Shape", "min": 0.05, "max": 1.0})
    tail_cap_steps: int = field(default=7, metadata={"help": "Stamps used to round off a drip tip.", "category": "Shape", "min": 1, "max": 32})
    tail_hook_strength: float = field(default=0.6, metadata={"help": "Curvature of the drip tail.", "category": "Shape", "min": 0.0, "max": 1.0})
    tail_bead_chance: float = field(default=0.35, metadata={"help": "Chance of a bead at the drip tip.", "category": "Shape", "min": 0.0, "max": 1.0})
    shape_noise_amp: float = field(default=0.22, metadata={"help": "Radius noise along the trail.", "category": "Shape", "min": 0.0, "max": 0.3})

    # --- [DYNAMICS] Speed references & line thickness ---
    v_ref: float = field(default=160.0, metadata={"help": "Normal hand speed (px/s).", "category": "Dynamics", "min": 20.0, "max": 2000.0})
    v_slow: float = field(default=70.0, metadata={"help": "Speed under which paint pools (px/s).", "category": "Dynamics", "min": 10.0, "max": 1000.0})
    line_dynamics_enabled: bool = field(default=True, metadata={"help": "Thicken slow strokes and thin fast ones.", "category": "Dynamics"})
    thin_fast_scale: float = field(default=0.7, metadata={"help": "Thickness scale at full speed.", "category": "Dynamics", "min": 0.4, "max": 1.0})
    thick_slow_scale: float = field(default=1.3, metadata={"help": "Thickness scale when holding still.", "category": "Dynamics", "min": 1.0, "max": 2.0})
    speed_curve: float = field(default=1.3, metadata={"help": "Ease-in exponent of the speed response.", "category": "Dynamics", "min": 0.5, "max": 3.0})
    v_fast: float = field(default=3200.0, metadata={"help": "Speed at which thinning saturates (px/s).", "category": "Dynamics", "min": 24.0, "max": 20000.0})
    overspray_time_step_ms: float = field(default=70.0, metadata={"help": "Overspray cadence while dwelling.", "category": "Dynamics", "min": 10.0, "max": 1000.0})

    # --- [ADVANCED] Metallic rendering ---
    drip_highlight_gain: float = field(default=0.6, metadata={"help": "Highlight strength of metallic drips.", "category": "Advanced", "min": 0.0, "max": 1.0})
    metallic_shimmer_spray: bool = field(default=False, metadata={"help": "Screen-blended shimmer on metallic grains.", "category": "Advanced"})
    metallic_shimmer_drip: bool = field(default=False, metadata={"help": "Screen-blended shimmer on metallic drips.", "category": "Advanced"})


@dataclass
class PaintColor:
    """Current paint colour with its material class resolved up front."""

    hex: str = "#000000"
    material: Material = Material.STANDARD

    def set(self, color: str) -> bool:
        """Accepts '#rrggbb' / '#rgb' (leading '#' optional); False if invalid."""
        c = str(color).strip().lower().lstrip("#")
        if len(c) == 3:
            c = "".join(ch * 2 for ch in c)
        if len(c) != 6 or any(ch not in "0123456789abcdef" for ch in c):
            return False
        self.hex = "#" + c
        self.material = Material.METALLIC if self.hex in METALLIC_COLORS else Material.STANDARD
        return True

    @property
    def is_metallic(self) -> bool:
        return self.material is Material.METALLIC


_FIELDS = {f.name: f for f in fields(SprayParams)}


def param_range(name):
    """Returns the (min, max) range of a numeric parameter, or None for flags."""
    meta = _FIELDS[name].metadata
    if "min" not in meta:
        return None
    return float(meta["min"]), float(meta["max"])


def clamp_param(name, value, current=None):
    """Clamps `value` into the documented range of parameter `name`.

    NaN keeps `current` (or the lower bound when there is none); infinities
    land on the matching bound. Integer fields are rounded.
    """
    f = _FIELDS[name]
    if f.type in (bool, "bool"):
        return bool(value)
    lo, hi = param_range(name)
    v = float(value)
    if math.isnan(v):
        v = lo if current is None else float(current)
    v = min(hi, max(lo, v))
    if f.type in (int, "int"):
        return int(round(v))
    return v


def is_param(name):
    return name in _FIELDS
