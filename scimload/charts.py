from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

LOGGER = logging.getLogger("scimload.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 200
plt.rcParams["font.size"] = 10
plt.rcParams["axes.titlesize"] = 13

STATUS_COLORS = {
    "success": "#2E86AB",
    "failed": "#C73E1D",
}

KIND_NAMES = {
    "role": "Role",
    "user": "User",
}


def render_outcome_charts(outcomes: pd.DataFrame, output_dir: Path) -> list[Path]:
    """Write the per-worker outcome and latency charts, returning the files written."""
    if outcomes.empty:
        LOGGER.warning("No outcomes recorded; skipping charts")
        return []

    output_dir.mkdir(parents=True, exist_ok=True)
    df = outcomes.copy()
    df["status"] = np.where(df["success"].astype(bool), "success", "failed")

    paths = [
        _render_worker_outcomes(df, output_dir / "worker_outcomes.png"),
        _render_latency_boxplot(df, output_dir / "operation_latency.png"),
    ]
    return [path for path in paths if path is not None]


def _render_worker_outcomes(df: pd.DataFrame, chart_path: Path) -> Path:
    """Stacked bar of successes and failures per worker, one panel per kind."""
    kinds = [kind for kind in KIND_NAMES if kind in set(df["kind"])]
    fig, axes = plt.subplots(1, len(kinds), figsize=(6 * len(kinds), 5), squeeze=False)

    for ax, kind in zip(axes[0], kinds):
        counts = (
            df[df["kind"] == kind]
            .groupby(["worker_id", "status"])
            .size()
            .unstack(fill_value=0)
            .reindex(columns=list(STATUS_COLORS), fill_value=0)
            .sort_index()
        )
        positions = np.arange(len(counts.index))
        bottom = np.zeros(len(counts.index))
        for status, color in STATUS_COLORS.items():
            values = counts[status].to_numpy()
            ax.bar(positions, values, bottom=bottom, color=color, label=status.title(), width=0.6)
            bottom += values

        ax.set_xticks(positions)
        ax.set_xticklabels([str(worker) for worker in counts.index])
        ax.set_xlabel("Worker", fontweight="semibold")
        ax.set_ylabel("Operations", fontweight="semibold")
        ax.set_title(f"{KIND_NAMES[kind]} Outcomes per Worker", fontweight="bold")
        ax.legend(frameon=True)

    fig.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_latency_boxplot(df: pd.DataFrame, chart_path: Path) -> Path | None:
    df = df[df["duration_s"].notna() & (df["duration_s"] >= 0)]
    if df.empty:
        LOGGER.warning("No latency data available for latency chart")
        return None

    df = df.assign(kind_display=df["kind"].map(lambda k: KIND_NAMES.get(k, k.title())))
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.boxplot(
        data=df,
        x="kind_display",
        y="duration_s",
        hue="status",
        hue_order=[s for s in STATUS_COLORS if s in set(df["status"])],
        palette=STATUS_COLORS,
        ax=ax,
    )
    ax.set_xlabel("Operation", fontweight="semibold")
    ax.set_ylabel("Latency (seconds)", fontweight="semibold")
    ax.set_title("Remote Call Latency by Operation & Status", fontweight="bold")

    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def latency_summary(outcomes: pd.DataFrame) -> pd.DataFrame:
    """Median / p95 latency and success counts per operation kind."""
    if outcomes.empty:
        return pd.DataFrame(columns=["kind", "count", "succeeded", "median_s", "p95_s"])
    grouped = outcomes.groupby("kind")
    summary = pd.DataFrame(
        {
            "count": grouped.size(),
            "succeeded": grouped["success"].sum().astype(int),
            "median_s": grouped["duration_s"].median(),
            "p95_s": grouped["duration_s"].quantile(0.95),
        }
    )
    return summary.reset_index()


__all__ = ["render_outcome_charts", "latency_summary"]
