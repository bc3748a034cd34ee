"""
Tracelab – Cost Model Report
Reads trace results (CSV tables with opcode, <metric>, cost columns) and
produces figure-ready tables:
- results/derived/opcode_summary.csv
- results/derived/mispriced.csv
- results/derived/same_price_pairs.csv

Also prints a compact console report.
"""

from __future__ import annotations
import argparse, io, itertools, json
from pathlib import Path
from typing import List, Tuple, Union
import numpy as np
import pandas as pd

RESULTS = Path("results")
OUTDIR = RESULTS / "derived"

METRICS = ("cycles", "time")

def load_result(source: Union[str, Path]) -> pd.DataFrame:
    """Load a result CSV file, or a JSON-wrapped result payload string."""
    if isinstance(source, Path) or (isinstance(source, str) and not source.lstrip().startswith('"')):
        return pd.read_csv(source)
    return pd.read_csv(io.StringIO(json.loads(source)))

def pick_metric(df: pd.DataFrame) -> str:
    for m in METRICS:
        if m in df.columns:
            return m
    raise ValueError(f"no measurement column among {METRICS} in {list(df.columns)}")

def cliffs_delta(x: np.ndarray, y: np.ndarray) -> float:
    """δ = P(x>y) - P(x<y), robust, non-parametric."""
    n_pairs = len(x) * len(y)
    if n_pairs == 0:
        return float("nan")
    gt = lt = 0
    for xi in x:
        gt += np.sum(xi > y)
        lt += np.sum(xi < y)
    return (gt - lt) / n_pairs

def _pairs(seq: List[str]) -> List[Tuple[str, str]]:
    return [p for p in itertools.combinations(sorted(seq), 2)]

def opcode_summary(df: pd.DataFrame, metric: str) -> pd.DataFrame:
    df = df.dropna(subset=["opcode", metric, "cost"])
    out = (
        df.groupby("opcode", as_index=False)
          .agg(n=(metric, "size"),
               median_metric=(metric, "median"),
               iqr_metric=(metric, lambda s: s.quantile(0.75) - s.quantile(0.25)),
               median_cost=("cost", "median"))
    )
    cost = out["median_cost"].astype(float)
    out["metric_per_cost"] = np.where(cost > 0, out["median_metric"] / cost.where(cost > 0, np.nan), np.nan)
    return out.sort_values("metric_per_cost", ascending=False, na_position="last").reset_index(drop=True)

def flag_mispriced(summary: pd.DataFrame, tolerance: float = 2.0) -> pd.DataFrame:
    """Opcodes whose metric-per-cost is off the overall median ratio by more than tolerance×."""
    ratios = summary["metric_per_cost"].dropna()
    if ratios.empty:
        return summary.iloc[0:0].assign(deviation=pd.Series(dtype=float))
    ref = float(np.median(ratios))
    if ref <= 0:
        return summary.iloc[0:0].assign(deviation=pd.Series(dtype=float))
    dev = summary["metric_per_cost"] / ref
    flagged = summary.assign(deviation=dev)
    mask = (dev > tolerance) | (dev < 1.0 / tolerance)
    return flagged[mask.fillna(False)].sort_values("deviation", ascending=False).reset_index(drop=True)

def same_price_pairs(df: pd.DataFrame, metric: str) -> pd.DataFrame:
    """Cliff's delta between opcodes charged the same median cost."""
    med_cost = df.groupby("opcode")["cost"].median()
    rows = []
    for cost, ops in med_cost.groupby(med_cost):
        for a, b in _pairs(list(ops.index)):
            xa = df.loc[df["opcode"] == a, metric].dropna().to_numpy(dtype=float)
            xb = df.loc[df["opcode"] == b, metric].dropna().to_numpy(dtype=float)
            rows.append({"cost": cost, "A": a, "B": b, "cliffs_delta": cliffs_delta(xa, xb),
                         "A_n": xa.size, "B_n": xb.size})
    return pd.DataFrame(rows, columns=["cost", "A", "B", "cliffs_delta", "A_n", "B_n"])

def main(argv=None) -> None:
    ap = argparse.ArgumentParser(description="Summarise instruction traces against their cost schedule.")
    ap.add_argument("files", nargs="*", help="result CSVs (default: results/*.csv)")
    ap.add_argument("--tolerance", type=float, default=2.0)
    args = ap.parse_args(argv)

    files = [Path(f) for f in args.files] or sorted(RESULTS.glob("*.csv"))
    frames = []
    for f in files:
        d = load_result(f)
        if "opcode" in d.columns and "cost" in d.columns:
            frames.append(d.assign(source=f.name))
    if not frames:
        print("No instruction traces found. Run a cycleTracer or timingTracer first.")
        return
    df = pd.concat(frames, ignore_index=True)
    metric = pick_metric(df)

    OUTDIR.mkdir(parents=True, exist_ok=True)
    summary = opcode_summary(df, metric)
    summary.to_csv(OUTDIR / "opcode_summary.csv", index=False)
    bad = flag_mispriced(summary, args.tolerance)
    bad.to_csv(OUTDIR / "mispriced.csv", index=False)
    pairs = same_price_pairs(df, metric)
    pairs.to_csv(OUTDIR / "same_price_pairs.csv", index=False)

    print("\n# Tracelab: Cost Model Summary")
    print(f"Rows: {len(df):,} | Traces: {len(frames)} | Opcodes: {df['opcode'].nunique()} | Metric: {metric}")
    print(f"\n## Median {metric} per unit cost (first 12 rows):")
    print(summary.head(12).to_string(index=False))
    print(f"\n## Off the median ratio by more than {args.tolerance}x:")
    print(bad.to_string(index=False) if not bad.empty else "(none)")
    print("\nOutputs written to results/derived/*.csv")

if __name__ == "__main__":
    main()
