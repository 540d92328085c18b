import math
from dataclasses import dataclass

from .configs import D_REF, SprayParams

THETA0 = 0.2   # ~11.5 deg base half-angle
K_THETA = 0.1
K_PRESSURE = 0.08
SIGMA_MIN = 0.6


@dataclass(frozen=True)
class DerivedParams:
    """Per-stamp physical quantities derived from the current parameters."""

    cone_angle: float
    projected_radius: float
    grain_sigma: float
    alpha_scale: float
    scatter_radius: float


def derive_spray_params(p: SprayParams) -> DerivedParams:
    """Computes the cone geometry and intensity falloff for one stamp.

    The half-angle widens logarithmically with nozzle size and mildly with
    pressure; intensity falls off with the square of the distance.
    """
    nozzle = p.nozzle_size
    z = p.distance
    pressure = p.pressure

    theta = THETA0 + K_THETA * math.log(1.0 + nozzle / D_REF) + K_PRESSURE * math.log(1.0 + pressure)
    rz = z * math.tan(theta)
    sigma = max(SIGMA_MIN, (z / 15.0) * (nozzle / D_REF) * 1.5)
    alpha_scale = (p.opacity * pressure) / (0.02 * z * z + 1.0)
    return DerivedParams(
        cone_angle=theta,
        projected_radius=rz,
        grain_sigma=sigma,
        alpha_scale=alpha_scale,
        scatter_radius=rz * p.scatter_radius_mult,
    )


def overspray_step(p: SprayParams) -> float:
    """Distance between overspray emissions along a moving stroke."""
    z_scale = 1.0 + 0.015 * max(0.0, p.distance - 10.0)
    nozzle_scale = 0.9 * max(10.0, p.nozzle_size)
    knob_scale = 1.2 - 0.7 * p.overspray_mult
    return max(12.0, nozzle_scale * knob_scale * z_scale)
