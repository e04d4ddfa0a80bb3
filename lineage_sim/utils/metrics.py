"""Prometheus 指标：推进耗时、推进天数与决策次数。"""

from __future__ import annotations

import prometheus_client as prom

ADVANCE_DURATION = prom.Histogram(
    "lineage_sim_advance_duration_seconds",
    "Wall time of one advance request (seconds)",
)
DAYS_ADVANCED = prom.Counter(
    "lineage_sim_days_advanced_total", "Total simulated days advanced"
)
CHOICES_RESOLVED = prom.Counter(
    "lineage_sim_choices_resolved_total", "Total resolved decision gates", ["gate"]
)
GAMES_OVER = prom.Counter(
    "lineage_sim_games_over_total", "Games that reached an ending", ["reason"]
)


def render_latest() -> str:
    return prom.generate_latest().decode("utf-8")
