# tests/test_charts.py
import pandas as pd
import pytest

from scimload.charts import latency_summary, render_outcome_charts
from scimload.collector import OUTCOME_COLUMNS


def _frame():
    rows = []
    for worker in range(2):
        for i in range(5):
            rows.append(
                {
                    "kind": "user",
                    "tenant_index": 1,
                    "user_index": i,
                    "username": f"u_{i}",
                    "worker_id": worker,
                    "success": i != 0,
                    "remote_id": None,
                    "failure_reason": None,
                    "timestamp": 0.0,
                    "duration_s": 0.1 * (i + 1),
                }
            )
    rows.append(dict(rows[0], kind="role", success=True, duration_s=0.05))
    return pd.DataFrame(rows, columns=OUTCOME_COLUMNS)


def test_latency_summary_per_kind():
    summary = latency_summary(_frame()).set_index("kind")
    assert summary.loc["user", "count"] == 10
    assert summary.loc["user", "succeeded"] == 8
    assert summary.loc["user", "median_s"] == pytest.approx(0.3)
    assert summary.loc["role", "count"] == 1


def test_latency_summary_empty():
    assert latency_summary(pd.DataFrame(columns=OUTCOME_COLUMNS)).empty


def test_render_writes_png_files(tmp_path):
    paths = render_outcome_charts(_frame(), tmp_path / "charts")
    assert [p.name for p in paths] == ["worker_outcomes.png", "operation_latency.png"]
    assert all(p.stat().st_size > 0 for p in paths)


def test_render_skips_empty_frame(tmp_path):
    assert render_outcome_charts(pd.DataFrame(columns=OUTCOME_COLUMNS), tmp_path) == []
