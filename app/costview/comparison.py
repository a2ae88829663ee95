import logging
from typing import Dict, List, Mapping, Optional, Iterable

from .models import CostRecord, EfficiencyRecord, ComparisonRow, ComparisonTotals, CostDriverRow
from .efficiency import blend

logger = logging.getLogger(__name__)

IDLE_KEY = "__idle__"
UNALLOCATED_KEY = "__unallocated__"
SYNTHETIC_KEYS = frozenset([IDLE_KEY, UNALLOCATED_KEY])

# Changes within a cent either way are shown as flat
CHANGE_EPSILON = 0.01


def is_synthetic(name: str) -> bool:
    """Idle and unallocated buckets are bookkeeping rows, not workloads"""
    return name in SYNTHETIC_KEYS


def percent_change(current: float, prior: float) -> float:
    """
    Percent change from prior to current. A zero prior reports 0 rather than
    an infinite increase.
    """
    if prior == 0:
        return 0.0
    return (current - prior) / prior * 100


def change_direction(change: float) -> str:
    if change > CHANGE_EPSILON:
        return "up"
    if change < -CHANGE_EPSILON:
        return "down"
    return "flat"


def _cost_of(dataset: Optional[Mapping[str, CostRecord]], name: str) -> float:
    if not dataset or name not in dataset or dataset[name] is None:
        return 0.0
    return dataset[name].total_cost or 0.0


def merge_periods(current: Optional[Mapping[str, CostRecord]],
                  prior: Optional[Mapping[str, CostRecord]]) -> List[ComparisonRow]:
    """
    Merge two cumulative datasets into one comparison row per entity found in
    either of them. An entity missing from one side costs 0 there. Rank the
    result before display.
    """
    current = current or {}
    prior = prior or {}

    # Current-period entities first, then those only seen in the prior period
    names = list(current.keys()) + [name for name in prior.keys() if name not in current]

    rows = []
    for name in names:
        if is_synthetic(name):
            continue
        current_cost = _cost_of(current, name)
        prior_cost = _cost_of(prior, name)
        change = current_cost - prior_cost
        rows.append(
            ComparisonRow(
                name=name,
                current_cost=current_cost,
                prior_cost=prior_cost,
                change=change,
                change_pct=percent_change(current_cost, prior_cost),
                direction=change_direction(change),
            )
        )

    logger.debug(f"Merged {len(current)} current and {len(prior)} prior entities into {len(rows)} rows")
    return rows


def comparison_totals(rows: Iterable[ComparisonRow]) -> ComparisonTotals:
    """Aggregate comparison rows into a single totals row"""
    current_cost = 0.0
    prior_cost = 0.0
    change = 0.0
    for row in rows:
        current_cost += row.current_cost
        prior_cost += row.prior_cost
        change += row.change

    change_pct = change / prior_cost * 100 if prior_cost != 0 else 0.0

    return ComparisonTotals(
        current_cost=current_cost,
        prior_cost=prior_cost,
        change=change,
        change_pct=change_pct,
        direction=change_direction(change),
    )


def cost_drivers(current: Optional[Mapping[str, CostRecord]],
                 prior: Optional[Mapping[str, CostRecord]],
                 efficiencies: Optional[Iterable[EfficiencyRecord]] = None) -> List[CostDriverRow]:
    """
    Build one row per workload in the current dataset, annotated with its
    change against the prior dataset and its blended efficiency. Entities
    only present in the prior dataset are not cost drivers and are left out.
    """
    current = current or {}

    efficiency_by_name: Dict[str, float] = {}
    for item in efficiencies or []:
        efficiency_by_name[item.name] = blend(
            item.cpu_cost, item.ram_cost, item.cpu_efficiency, item.memory_efficiency
        )

    rows = []
    for name, record in current.items():
        if is_synthetic(name) or record is None:
            continue
        cost = record.total_cost or 0.0
        prior_cost = _cost_of(prior, name)
        change = cost - prior_cost

        if name in efficiency_by_name:
            efficiency = efficiency_by_name[name]
        elif record.total_efficiency is not None:
            efficiency = record.total_efficiency
        else:
            efficiency = 0.0

        rows.append(
            CostDriverRow(
                name=name,
                total_cost=cost,
                cost_change=change,
                cost_change_pct=percent_change(cost, prior_cost),
                efficiency=efficiency,
                direction=change_direction(change),
            )
        )

    return rows


def total_cost(dataset: Optional[Mapping[str, CostRecord]]) -> float:
    """Sum of attributable cost in a cumulative dataset"""
    if not dataset:
        return 0.0
    return sum(record.total_cost or 0.0 for name, record in dataset.items()
               if record is not None and not is_synthetic(name))


def allocation_efficiency(dataset: Optional[Mapping[str, CostRecord]]) -> float:
    """
    Cost-weighted total efficiency reported on the allocations themselves.
    Records without an efficiency are left out; no weight at all gives 0.
    """
    weighted = 0.0
    weight = 0.0
    for name, record in (dataset or {}).items():
        if record is None or is_synthetic(name) or record.total_efficiency is None:
            continue
        cost = record.total_cost or 0.0
        weighted += cost * record.total_efficiency
        weight += cost
    return weighted / weight if weight > 0 else 0.0
