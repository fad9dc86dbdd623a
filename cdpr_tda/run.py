#!/usr/bin/env python3
"""
Offline demo runner: 8-cable crossed robot following a horizontal circle.

Every cycle builds W from the platform pose, asks for the gravity +
feed-forward wrench, runs the distributor and (optionally) logs a CSV row and
publishes barycenter telemetry over LCM.
"""

from __future__ import annotations

import argparse
import csv
import logging
import math
import os
import time
from datetime import datetime

import numpy as np

from .config import Mode, RobotParameters, TDAConfig
from .core import TensionDistributor
from .geometry import default_anchors, gravity_wrench, wrench_matrix
from .result import Status
from .telemetry import LCMTelemetry, LCMTelemetryConfig, NullTelemetry


def _csv_header(n: int) -> list[str]:
    return (
        ["t_s", "px", "py", "pz", "status", "n_diag", "alpha", "kp", "kd", "tau_min", "tau_max", "solve_ms"]
        + [f"tau{i}" for i in range(n)]
        + [f"w{i}" for i in range(6)]
        + [f"wr{i}" for i in range(6)]
    )


def _opt(v: float | None) -> str:
    return "" if v is None else f"{float(v):.6g}"


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        description="Tension distribution demo on an 8-cable crossed robot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Barycenter, 10 s at 100 Hz, CSV log in ./logs
  cdpr-tda-run --mode barycenter --duration 10 --log-dir ./logs

  # Rate-limited min-norm QP, print every cycle
  cdpr-tda-run --mode min_norm --max-delta 2.0 --print-hz 0

  # Publish barycenter projection data over LCM
  cdpr-tda-run --mode barycenter --lcm --lcm-url "udpm://239.255.76.67:7667?ttl=1"
        """,
    )
    ap.add_argument("--mode", type=str, default="min_norm", help=f"One of: {', '.join(m.value for m in Mode)}. Default: min_norm")
    ap.add_argument("--mass", type=float, default=10.0, help="Platform mass (kg). Default: 10.0")
    ap.add_argument("--tau-min", type=float, default=5.0, help="Min cable tension (N). Default: 5.0")
    ap.add_argument("--tau-max", type=float, default=300.0, help="Max cable tension (N). Default: 300.0")
    ap.add_argument("--duration", type=float, default=5.0, help="Simulated time (s). Default: 5.0")
    ap.add_argument("--rate", type=float, default=100.0, help="Control rate (Hz). Default: 100")
    ap.add_argument("--radius", type=float, default=0.4, help="Circle radius (m). Default: 0.4")
    ap.add_argument("--period", type=float, default=4.0, help="Circle period (s). Default: 4.0")
    ap.add_argument(
        "--max-delta",
        type=float,
        default=None,
        help="Enable rate limiting with this max tension change per cycle (N). Default: disabled.",
    )
    ap.add_argument("--no-warm-start", action="store_true", help="Re-create the QP workspace every cycle.")
    ap.add_argument(
        "--print-hz",
        type=float,
        default=2.0,
        help="Print frequency (simulated Hz). <=0 means print every cycle. Default: 2",
    )
    ap.add_argument("--log-dir", type=str, default=None, help="Write tda_YYYYmmdd_HHMMSS.csv into this folder.")
    ap.add_argument("--lcm", action="store_true", help="Publish telemetry over LCM (needs the `lcm` package).")
    ap.add_argument("--lcm-url", type=str, default=LCMTelemetryConfig.lcm_url, help="LCM URL. Default: %(default)s")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log solver diagnostics (DEBUG).")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    frame_anchors, platform_anchors = default_anchors()
    n = int(frame_anchors.shape[0])
    robot = RobotParameters(n_cables=n, mass=float(args.mass), tau_min=float(args.tau_min), tau_max=float(args.tau_max))
    cfg = TDAConfig(mode=Mode.parse(args.mode), warm_start=not bool(args.no_warm_start))
    if args.max_delta is not None:
        cfg.rate_limit = True
        cfg.max_delta = float(args.max_delta)

    telemetry = LCMTelemetry(LCMTelemetryConfig(lcm_url=str(args.lcm_url))) if args.lcm else NullTelemetry()
    tda = TensionDistributor(robot, cfg, telemetry=telemetry)

    dt = 1.0 / max(1e-6, float(args.rate))
    steps = int(round(float(args.duration) / dt))
    omega = 2.0 * math.pi / max(1e-6, float(args.period))
    r = float(args.radius)

    writer = None
    fp = None
    path = None
    if args.log_dir is not None:
        os.makedirs(os.path.expanduser(args.log_dir), exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(os.path.expanduser(args.log_dir), f"tda_{ts}.csv")
        fp = open(path, "w", newline="")
        writer = csv.writer(fp)
        writer.writerow(_csv_header(n))
        print(f"[cdpr_tda] LOG START: {path}")

    print(f"[cdpr_tda] mode={cfg.mode.value} n={n} m={robot.mass:g}kg tau=[{robot.tau_min:g},{robot.tau_max:g}] steps={steps}")
    counts = {s: 0 for s in Status}
    print_dt = 0.0 if float(args.print_hz) <= 0.0 else 1.0 / float(args.print_hz)
    last_print_t = -1e9

    try:
        for k in range(steps):
            t = k * dt
            pos = np.array([r * math.cos(omega * t), r * math.sin(omega * t), 0.0], dtype=float)
            acc = -omega * omega * np.array([pos[0], pos[1], 0.0], dtype=float)
            rpy = np.array([0.0, 0.0, 0.05 * math.sin(omega * t)], dtype=float)

            W = wrench_matrix(frame_anchors, platform_anchors, pos, rpy)
            w = gravity_wrench(robot.mass)
            w[0:3] += robot.mass * acc
            # Synthetic tracking error for the gain-augmented mode.
            pe = 0.01 * np.array([math.sin(3.0 * t), math.cos(3.0 * t), 0.0, 0.0, 0.0, 0.0], dtype=float)
            ve = 0.02 * np.array([math.cos(3.0 * t), -math.sin(3.0 * t), 0.0, 0.0, 0.0, 0.0], dtype=float)

            t0 = time.perf_counter()
            res = tda.compute(W, w, ve=ve, pe=pe)
            solve_ms = 1e3 * (time.perf_counter() - t0)
            counts[res.status] += 1
            wr = W @ res.tau

            if writer is not None:
                row = [
                    f"{t:.6f}",
                    f"{pos[0]:.6g}",
                    f"{pos[1]:.6g}",
                    f"{pos[2]:.6g}",
                    res.status.value,
                    len(res.diagnostics),
                    _opt(res.alpha),
                    _opt(res.kp),
                    _opt(res.kd),
                    f"{robot.tau_min:.6g}",
                    f"{robot.tau_max:.6g}",
                    f"{solve_ms:.4f}",
                ]
                row += [f"{v:.6g}" for v in res.tau]
                row += [f"{v:.6g}" for v in w]
                row += [f"{v:.6g}" for v in wr]
                writer.writerow(row)

            if (print_dt <= 0.0) or (t - last_print_t >= print_dt) or (not res.ok):
                last_print_t = t
                tau_s = " ".join(f"{v:6.1f}" for v in res.tau)
                extra = ""
                if res.alpha is not None:
                    extra = f" alpha={res.alpha:.3f}"
                if res.kp is not None:
                    extra = f" kp={res.kp:.2f} kd={res.kd:.2f}"
                print(
                    f"[cdpr_tda] t={t:6.2f} status={res.status.value:13s} |W.tau-w|={np.linalg.norm(wr - w):.2e} "
                    f"solve={solve_ms:.2f}ms tau=[{tau_s}]{extra}"
                )
                for d in res.diagnostics:
                    print(f"[cdpr_tda] WARN: {d.kind.value}: {d.message}")
    except KeyboardInterrupt:
        print("[cdpr_tda] interrupted")
    finally:
        if fp is not None:
            fp.close()
            print(f"[cdpr_tda] LOG STOP: {path}")

    summary = " ".join(f"{s.value}={c}" for s, c in counts.items())
    print(f"[cdpr_tda] done: {summary}")
    return 0 if counts[Status.OK] == sum(counts.values()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
