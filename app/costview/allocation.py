import logging
import os
from typing import Dict, Any, List, Optional, Tuple

import requests
from pydantic import ValidationError

from .models import CostRecord, EfficiencyRecord, ClusterSavingsSummary

logger = logging.getLogger(__name__)

# Environment variables with default values
COST_API_URL = os.getenv("COST_API_URL", "http://opencost.opencost.svc.cluster.local:9003")
COST_API_TIMEOUT = float(os.getenv("COST_API_TIMEOUT", "30"))

SUMMED_FIELDS = ("total_cost", "cpu_cost", "ram_cost")


class CostApiError(Exception):
    """Raised when the cost backend cannot be reached or answers with an error"""


def _get(path: str, params: Dict[str, Any]) -> Dict[str, Any]:
    url = f"{COST_API_URL.rstrip('/')}{path}"
    try:
        response = requests.get(url, params=params, timeout=COST_API_TIMEOUT)
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as e:
        logger.error(f"Error querying cost API {path} with {params}: {e}")
        raise CostApiError(f"Failed to query {path}: {e}") from e
    except ValueError as e:
        logger.error(f"Invalid JSON from cost API {path}: {e}")
        raise CostApiError(f"Invalid response from {path}") from e

    if not isinstance(payload, dict):
        raise CostApiError(f"Unexpected response from {path}")

    code = payload.get("code")
    if code is not None and code != 200:
        message = payload.get("message", "")
        logger.error(f"Cost API {path} returned code {code}: {message}")
        raise CostApiError(message or f"Cost API returned code {code}")

    return payload


def _weighted_efficiency(a: CostRecord, b: CostRecord) -> Optional[float]:
    """Cost-weighted efficiency of two folded records, None unless both carry one"""
    if a.total_efficiency is None or b.total_efficiency is None:
        return None
    cost = a.total_cost + b.total_cost
    if cost == 0:
        return None
    return (a.total_cost * a.total_efficiency + b.total_cost * b.total_efficiency) / cost


def accumulate_sets(allocation_sets: Optional[List[Dict[str, Any]]]) -> Dict[str, CostRecord]:
    """
    Fold a range of allocation sets into one cumulative record per entity.
    With accumulate=true the backend already returns a single set.
    """
    cumulative: Dict[str, CostRecord] = {}

    for allocation_set in allocation_sets or []:
        if not allocation_set:
            continue
        for name, item in allocation_set.items():
            if not isinstance(item, dict):
                continue
            try:
                record = CostRecord.model_validate({**item, "name": name})
            except ValidationError as e:
                logger.warning(f"Skipping malformed allocation {name!r}: {e}")
                continue

            if name not in cumulative:
                cumulative[name] = record
                continue

            existing = cumulative[name]
            updates = {field: getattr(existing, field) + getattr(record, field) for field in SUMMED_FIELDS}
            updates["total_efficiency"] = _weighted_efficiency(existing, record)
            cumulative[name] = existing.model_copy(update=updates)

    return cumulative


def fetch_allocation(window: str, aggregate: str, accumulate: bool = True,
                     include_idle: bool = False) -> Dict[str, CostRecord]:
    """
    Fetch the cumulative cost per entity for a window, aggregated by the given key
    """
    payload = _get("/allocation", {
        "window": window,
        "aggregate": aggregate,
        "accumulate": str(accumulate).lower(),
        "includeIdle": str(include_idle).lower(),
    })

    data = payload.get("data") or []
    result = accumulate_sets(data)
    logger.info(f"Fetched {len(result)} {aggregate} allocations for window {window}")
    return result


def fetch_efficiency(window: str, aggregate: str, min_savings: Optional[float] = None,
                     min_savings_percent: Optional[float] = None,
                     exclude_system: Optional[bool] = None
                     ) -> Tuple[List[EfficiencyRecord], Optional[ClusterSavingsSummary]]:
    """
    Fetch per-entity efficiency records and the optional cluster savings summary
    """
    params: Dict[str, Any] = {"window": window, "aggregate": aggregate}
    if min_savings is not None:
        params["minSavings"] = min_savings
    if min_savings_percent is not None:
        params["minSavingsPercent"] = min_savings_percent
    if exclude_system is not None:
        params["excludeSystem"] = str(exclude_system).lower()

    payload = _get("/allocation/efficiency", params)
    data = payload.get("data") or {}

    records = []
    for item in data.get("efficiencies") or []:
        try:
            records.append(EfficiencyRecord.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed efficiency record: {e}")

    summary = None
    if data.get("clusterSavingsSummary"):
        try:
            summary = ClusterSavingsSummary.model_validate(data["clusterSavingsSummary"])
        except ValidationError as e:
            logger.warning(f"Ignoring malformed cluster savings summary: {e}")

    logger.info(f"Fetched {len(records)} {aggregate} efficiency records for window {window}")
    return records, summary
