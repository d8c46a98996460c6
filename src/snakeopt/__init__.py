import jax

jax.config.update("jax_enable_x64", True)

from . import (
    contour,
    control,
    coupled,
    energies,
    energy,
    errors,
    geometry,
    greedy,
    intensity,
    optimizer,
    raster,
    render,
    stepsize,
    termination,
    varcalc,
)

__all__ = [
    "contour",
    "control",
    "coupled",
    "energies",
    "energy",
    "errors",
    "geometry",
    "greedy",
    "intensity",
    "optimizer",
    "raster",
    "render",
    "stepsize",
    "termination",
    "varcalc",
]
