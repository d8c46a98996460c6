from __future__ import annotations

import argparse
from typing import Protocol, TypedDict, cast

import numpy as np
from PIL import Image

from .snakeopt.contour import Contour, ContourSet
from .snakeopt.energies import DistanceEnergy, GradientEnergy, KassCurvature, KassLength
from .snakeopt.energy import EnergyTerm
from .snakeopt.greedy import GreedyOptimizer
from .snakeopt.intensity import IntensityNormalization
from .snakeopt.optimizer import OptimizerSettings
from .snakeopt.single import SingleContourOptimizer
from .snakeopt.termination import MotionDiff
from .snakeopt.varcalc import VariationalOptimizer
from .utils import debug, debug_helpers


class CliArgs(Protocol):
    input: str
    output: str
    mode: str
    external: str
    center: list[float] | None
    radius: float | None
    n_points: int
    alpha: float
    beta: float
    w_length: float
    w_curv: float
    w_ext: float
    gamma: float
    seg_len: float
    no_resample: bool
    max_iter: int
    motion_fraction: float
    log_every: int
    verbose: bool


class CliArgsDict(TypedDict):
    input: str
    output: str
    mode: str
    external: str
    center: list[float] | None
    radius: float | None
    n_points: int
    alpha: float
    beta: float
    w_length: float
    w_curv: float
    w_ext: float
    gamma: float
    seg_len: float
    no_resample: bool
    max_iter: int
    motion_fraction: float
    log_every: int
    verbose: bool


def circle_contour(cx: float, cy: float, radius: float, n_points: int) -> Contour:
    """Counter-clockwise circle (positive shoelace area in image coordinates)."""
    t = np.linspace(0.0, 2.0 * np.pi, n_points, endpoint=False)
    pts = np.stack([cx + radius * np.cos(t), cy + radius * np.sin(t)], axis=1)
    return Contour(pts, closed=True)


def build_optimizer(args: CliArgs) -> SingleContourOptimizer:
    terms: list[EnergyTerm] = [
        KassLength(alpha=args.alpha, weight=args.w_length),
        KassCurvature(beta=args.beta, weight=args.w_curv),
    ]
    if args.external == "gradient":
        terms.append(GradientEnergy(weight=args.w_ext))
    else:
        terms.append(DistanceEnergy(weight=args.w_ext))

    settings = OptimizerSettings(
        initial_gamma=args.gamma,
        resample=not args.no_resample,
        resample_segment_length=args.seg_len,
        log_every=args.log_every,
    )
    termination = MotionDiff(motion_fraction=args.motion_fraction, max_iterations=args.max_iter)
    if args.mode == "greedy":
        return GreedyOptimizer(
            terms,
            termination=termination,
            intensity_normalization=IntensityNormalization.THEORETIC_RANGE,
            settings=settings,
        )
    return VariationalOptimizer(
        terms,
        termination=termination,
        intensity_normalization=IntensityNormalization.THEORETIC_RANGE,
        settings=settings,
    )


def main() -> None:
    ap = argparse.ArgumentParser(description="Fit a closed snake to a grayscale image")
    ap.add_argument("--input", required=True, help="Input image (converted to grayscale)")
    ap.add_argument("--output", required=True, help="Output PNG with the contour overlay")
    ap.add_argument("--mode", choices=["variational", "greedy"], default="variational")
    ap.add_argument(
        "--external",
        choices=["gradient", "distance"],
        default="gradient",
        help="Image energy term",
    )
    ap.add_argument(
        "--center",
        type=float,
        nargs=2,
        default=None,
        metavar=("X", "Y"),
        help="Initial circle center in pixels (default: image center)",
    )
    ap.add_argument(
        "--radius",
        type=float,
        default=None,
        help="Initial circle radius in pixels (default: 40%% of the smaller side)",
    )
    ap.add_argument("--n_points", type=int, default=40)
    ap.add_argument("--alpha", type=float, default=1.0)
    ap.add_argument("--beta", type=float, default=1.0)
    ap.add_argument("--w_length", type=float, default=1.0)
    ap.add_argument("--w_curv", type=float, default=1.0)
    ap.add_argument("--w_ext", type=float, default=1.0)
    ap.add_argument("--gamma", type=float, default=0.5, help="Initial step size")
    ap.add_argument("--seg_len", type=float, default=5.0, help="Resampling spacing (px)")
    ap.add_argument("--no_resample", action="store_true")
    ap.add_argument("--max_iter", type=int, default=200)
    ap.add_argument("--motion_fraction", type=float, default=0.9)
    ap.add_argument("--log_every", type=int, default=10)
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logs")

    args = cast(CliArgs, ap.parse_args())
    debug.set_verbose(args.verbose)

    if args.n_points < 3:
        raise ValueError("n_points must be >= 3")
    if args.radius is not None and args.radius <= 0:
        raise ValueError("radius must be positive")

    cli_args_raw = vars(args)
    expected_cli = set(CliArgsDict.__annotations__.keys())
    actual_cli = set(cli_args_raw.keys())
    if actual_cli != expected_cli:
        missing = sorted(expected_cli - actual_cli)
        extra = sorted(actual_cli - expected_cli)
        raise ValueError(
            "CliArgsDict mismatch. Update CliArgsDict. "
            f"missing={missing} extra={extra}"
        )

    image = np.asarray(Image.open(args.input).convert("L"))
    debug_helpers.log_array("image", image)
    height, width = image.shape

    if args.center is None:
        cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
    else:
        cx, cy = args.center
    radius = args.radius if args.radius is not None else 0.4 * min(width, height)
    initial = ContourSet([circle_contour(cx, cy, radius, args.n_points)], width, height)

    optimizer = build_optimizer(args)
    optimizer.initialize(image, initial)
    result = optimizer.run_to_completion()

    if result.overlay is not None:
        Image.fromarray(result.overlay).save(args.output)
    points = len(result.contours[0]) if len(result.contours) else 0
    print(
        f"Saved: {args.output}  outcome={result.outcome.value} "
        f"iterations={result.iterations} points={points}"
    )


if __name__ == "__main__":
    main()
