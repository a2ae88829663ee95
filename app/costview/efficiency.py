import logging
from typing import List, Iterable, Optional

import numpy as np

from .models import EfficiencyRecord, EfficiencyScore, EfficiencySummary, ClusterSavingsSummary

logger = logging.getLogger(__name__)

GOOD_THRESHOLD = 0.8
MARGINAL_THRESHOLD = 0.5


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))


def blend(cpu_cost: float, ram_cost: float, cpu_efficiency: float, ram_efficiency: float) -> float:
    """
    Cost-weighted average of CPU and memory efficiency (0-1).

    The more expensive resource dominates the score. No compute cost means no
    demonstrated efficiency, so the result is 0. Usage above the request can
    report efficiencies over 1; the blend is clamped to 0-1.
    """
    cpu_cost = cpu_cost or 0.0
    ram_cost = ram_cost or 0.0
    compute_cost = cpu_cost + ram_cost
    if compute_cost == 0:
        return 0.0
    blended = (cpu_cost * (cpu_efficiency or 0.0) + ram_cost * (ram_efficiency or 0.0)) / compute_cost
    return clamp(blended)


def classify(score: float) -> str:
    if score >= GOOD_THRESHOLD:
        return "good"
    if score >= MARGINAL_THRESHOLD:
        return "marginal"
    return "poor"


def score_entity(record: EfficiencyRecord) -> EfficiencyScore:
    blended = blend(record.cpu_cost, record.ram_cost, record.cpu_efficiency, record.memory_efficiency)
    return EfficiencyScore(
        name=record.name,
        blended_efficiency=blended,
        compute_cost=(record.cpu_cost or 0.0) + (record.ram_cost or 0.0),
        rating=classify(blended),
    )


def score_entities(records: Optional[Iterable[EfficiencyRecord]]) -> List[EfficiencyScore]:
    return [score_entity(record) for record in records or []]


def total_compute_cost(records: Optional[Iterable[EfficiencyRecord]]) -> float:
    return sum((r.cpu_cost or 0.0) + (r.ram_cost or 0.0) for r in records or [])


def fleet_efficiency(records: Optional[Iterable[EfficiencyRecord]]) -> float:
    """
    Cluster-wide efficiency: CPU and memory costs are summed across all
    entities first and then blended, so big spenders weigh in proportionally.
    """
    records = list(records or [])
    if not records:
        return 0.0

    cpu_costs = np.array([r.cpu_cost or 0.0 for r in records], dtype=float)
    ram_costs = np.array([r.ram_cost or 0.0 for r in records], dtype=float)
    cpu_effs = np.array([r.cpu_efficiency or 0.0 for r in records], dtype=float)
    ram_effs = np.array([r.memory_efficiency or 0.0 for r in records], dtype=float)

    compute_cost = float(cpu_costs.sum() + ram_costs.sum())
    if compute_cost == 0:
        return 0.0

    weighted = float(np.dot(cpu_costs, cpu_effs) + np.dot(ram_costs, ram_effs))
    return clamp(weighted / compute_cost)


def below_target_count(records: Optional[Iterable[EfficiencyRecord]]) -> int:
    """Number of entities whose blended efficiency is poor"""
    return sum(1 for score in score_entities(records) if score.blended_efficiency < MARGINAL_THRESHOLD)


def summarize_efficiency(records: Optional[Iterable[EfficiencyRecord]],
                         cluster_summary: Optional[ClusterSavingsSummary] = None) -> EfficiencySummary:
    records = list(records or [])
    cluster_efficiency = fleet_efficiency(records)
    total_savings = sum(r.cost_savings or 0.0 for r in records)

    summary = EfficiencySummary(
        total_savings=total_savings,
        cluster_efficiency=cluster_efficiency,
        rating=classify(cluster_efficiency),
        below_target_count=below_target_count(records),
        cluster_savings_summary=cluster_summary,
    )
    logger.debug(f"Summarized efficiency of {len(records)} entities: {cluster_efficiency:.3f}")
    return summary
