from typing import Dict, Iterable, Set

from prometheus_client import Gauge, Counter

from .models import ComparisonRow, EfficiencyScore, EfficiencySummary

# Basic API metrics
finops_http_requests_total = Counter(
    'finops_http_requests_total',
    'Total number of HTTP requests to the cost insights API',
    ['method', 'endpoint', 'status']
)

# Period comparison metrics
finops_period_cost = Gauge(
    'finops_period_cost',
    'Cost of an entity in the current and prior window ($)',
    ['aggregate', 'entity', 'period']
)

finops_period_cost_change_percent = Gauge(
    'finops_period_cost_change_percent',
    'Percent change of cost against the prior equivalent window (0 when there was no prior cost)',
    ['aggregate', 'entity']
)

# Efficiency metrics
finops_blended_efficiency = Gauge(
    'finops_blended_efficiency',
    'Cost-weighted CPU and memory efficiency of an entity (0-1, higher is better)',
    ['aggregate', 'entity']
)

finops_cluster_efficiency = Gauge(
    'finops_cluster_efficiency',
    'Cost-weighted CPU and memory efficiency of the whole cluster (0-1, higher is better)'
)

finops_below_target_count = Gauge(
    'finops_below_target_count',
    'Number of entities with a blended efficiency below 0.5',
    ['aggregate']
)

finops_potential_savings = Gauge(
    'finops_potential_savings',
    'Total estimated savings reported by the efficiency backend ($)',
    ['aggregate']
)


# Entities last exported per aggregate, so departed ones can be removed
_comparison_entities: Dict[str, Set[str]] = {}
_efficiency_entities: Dict[str, Set[str]] = {}


def record_comparison(aggregate: str, rows: Iterable[ComparisonRow]) -> None:
    rows = list(rows)
    current = {row.name for row in rows}
    for name in _comparison_entities.get(aggregate, set()) - current:
        for period in ("current", "prior"):
            finops_period_cost.remove(aggregate, name, period)
        finops_period_cost_change_percent.remove(aggregate, name)
    _comparison_entities[aggregate] = current

    for row in rows:
        finops_period_cost.labels(aggregate=aggregate, entity=row.name, period="current").set(row.current_cost)
        finops_period_cost.labels(aggregate=aggregate, entity=row.name, period="prior").set(row.prior_cost)
        finops_period_cost_change_percent.labels(aggregate=aggregate, entity=row.name).set(row.change_pct)


def record_efficiency(aggregate: str, scores: Iterable[EfficiencyScore], summary: EfficiencySummary) -> None:
    scores = list(scores)
    current = {score.name for score in scores}
    for name in _efficiency_entities.get(aggregate, set()) - current:
        finops_blended_efficiency.remove(aggregate, name)
    _efficiency_entities[aggregate] = current

    for score in scores:
        finops_blended_efficiency.labels(aggregate=aggregate, entity=score.name).set(score.blended_efficiency)
    finops_cluster_efficiency.set(summary.cluster_efficiency)
    finops_below_target_count.labels(aggregate=aggregate).set(summary.below_target_count)
    finops_potential_savings.labels(aggregate=aggregate).set(summary.total_savings)
