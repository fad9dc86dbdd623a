#!/usr/bin/env python3

"""
Summarize a CSV log written by `cdpr-tda-run --log-dir ...`.

With no --log, the newest `tda_*.csv` in --log-dir (or CDPR_TDA_LOG_DIR, or
./tda_logs) is read. The report covers the status histogram, per-cable
tensions, the worst margin to each bound and the realized-wrench residual.
"""

from __future__ import annotations

import argparse
import csv
import glob
import os
import sys
from collections import Counter
from typing import Dict, List

import numpy as np


def load_rows(path: str) -> List[Dict[str, str]]:
    with open(path, "r", newline="") as fp:
        return list(csv.DictReader(fp))


def cable_count(rows: List[Dict[str, str]]) -> int:
    if not rows:
        return 0
    n = 0
    while f"tau{n}" in rows[0]:
        n += 1
    return n


def _column(rows: List[Dict[str, str]], key: str) -> np.ndarray:
    # blank cells (alpha/kp/kd outside their modes) read as NaN
    return np.array([float(r.get(key) or "nan") for r in rows], dtype=float)


def summarize(rows: List[Dict[str, str]]) -> dict:
    """
    Numbers behind the printed report.

    Per-row series: tau (n, rows), margin_lo / margin_hi (min over cables,
    negative when a bound was crossed), residual |W.tau - w|, solve_ms,
    alpha, kp, kd. `stats` maps each scalar series to (mean, std, min, max)
    over its finite entries, or None when it has none.
    """
    n = cable_count(rows)
    tau = np.array([_column(rows, f"tau{i}") for i in range(n)]).reshape(n, len(rows))
    w = np.array([_column(rows, f"w{i}") for i in range(6)])
    wr = np.array([_column(rows, f"wr{i}") for i in range(6)])

    out = {
        "rows": len(rows),
        "n_cables": n,
        "status_counts": dict(Counter(str(r.get("status", "")) for r in rows)),
        "tau": tau,
        "margin_lo": (tau - _column(rows, "tau_min")).min(axis=0, initial=np.inf),
        "margin_hi": (_column(rows, "tau_max") - tau).min(axis=0, initial=np.inf),
        "residual": np.linalg.norm(wr - w, axis=0),
    }
    for key in ("solve_ms", "alpha", "kp", "kd"):
        out[key] = _column(rows, key)

    stats = {}
    for key in ("margin_lo", "margin_hi", "residual", "solve_ms", "alpha", "kp", "kd"):
        x = out[key][np.isfinite(out[key])]
        stats[key] = None if x.size == 0 else (float(x.mean()), float(x.std()), float(x.min()), float(x.max()))
    out["stats"] = stats
    return out


def _line(label: str, s, unit: str = "") -> str:
    if s is None:
        return f"- {label}: n=0"
    mean, std, lo, hi = s
    return f"- {label:<22s} mean={mean:+10.4f}{unit}  std={std:9.4f}{unit}  min={lo:+10.4f}{unit}  max={hi:+10.4f}{unit}"


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Analyze tension distribution CSV logs.")
    ap.add_argument("--log", type=str, default=None, help="Path to a specific tda_*.csv file.")
    ap.add_argument(
        "--log-dir",
        type=str,
        default=os.environ.get("CDPR_TDA_LOG_DIR", "./tda_logs"),
        help="Directory to search for the newest log. Default: CDPR_TDA_LOG_DIR or ./tda_logs",
    )
    args = ap.parse_args(argv)

    log_path = args.log
    if log_path is None:
        log_dir = os.path.expanduser(args.log_dir)
        found = glob.glob(os.path.join(log_dir, "tda_*.csv"))
        if not found:
            print(f"[TDA CSV] no tda_*.csv in {log_dir}; run `cdpr-tda-run --log-dir <dir>` first.")
            return 2
        log_path = max(found, key=os.path.getmtime)
    log_path = os.path.expanduser(log_path)
    if not os.path.isfile(log_path):
        print(f"[TDA CSV] log not found: {log_path}")
        return 2

    rows = load_rows(log_path)
    if not rows:
        print(f"[TDA CSV] empty log: {log_path}")
        return 2

    s = summarize(rows)
    st = s["stats"]
    t_s = _column(rows, "t_s")
    dur = float(t_s[-1] - t_s[0])

    print("=" * 70)
    print("[TDA CSV] log analysis")
    print("=" * 70)
    print(f"- file: {log_path}")
    print(f"- rows: {s['rows']}  cables: {s['n_cables']}")
    if np.isfinite(dur) and dur > 0.0:
        print(f"- duration: {dur:.3f} s  (~{(len(rows) - 1) / dur:.1f} Hz)")
    print("- status: " + "  ".join(f"{k}={v}" for k, v in sorted(s["status_counts"].items())))

    print("\n[tensions]")
    for i, row in enumerate(s["tau"]):
        x = row[np.isfinite(row)]
        print(_line(f"tau{i}", (x.mean(), x.std(), x.min(), x.max()) if x.size else None, "N"))

    print("\n[bounds]")
    print(_line("margin to tau_min", st["margin_lo"], "N"))
    print(_line("margin to tau_max", st["margin_hi"], "N"))
    crossed = int(np.count_nonzero((s["margin_lo"] < 0.0) | (s["margin_hi"] < 0.0)))
    if crossed:
        print(f"- WARN: {crossed} row(s) with a tension outside [tau_min, tau_max]")

    print("\n[wrench]")
    print(_line("|W.tau - w|", st["residual"]))
    print(_line("solve time", st["solve_ms"], "ms"))
    for key in ("alpha", "kp", "kd"):
        if st[key] is not None:
            print(_line(key, st[key]))
    return 0


if __name__ == "__main__":
    sys.exit(main())
