from datetime import datetime, timedelta
from typing import Optional, List, Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

WINDOW_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Window(BaseModel):
    """Resolved [start, end) bounds of a window specifier, in UTC"""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def __str__(self) -> str:
        return f"{self.start.strftime(WINDOW_TIME_FORMAT)},{self.end.strftime(WINDOW_TIME_FORMAT)}"


class CostRecord(CamelModel):
    """Cumulative cost of one entity over a whole window"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str = ""
    total_cost: float = 0.0
    cpu_cost: float = 0.0
    ram_cost: float = 0.0
    total_efficiency: Optional[float] = None


class EfficiencyRecord(CamelModel):
    """Per-entity efficiency as reported by the cost backend"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str = ""
    cpu_cost: float = 0.0
    ram_cost: float = 0.0
    cpu_efficiency: float = 0.0
    memory_efficiency: float = 0.0
    cost_savings: float = 0.0
    current_total_cost: float = 0.0
    ram_bytes_requested: float = 0.0
    ram_bytes_used: float = 0.0
    recommended_ram_request: float = 0.0


class ClusterSavingsSummary(CamelModel):
    scale_down_likely: bool = False
    estimated_nodes_freed: float = 0
    bottleneck_resource: str = ""
    node_savings_estimate_msg: Optional[str] = None


class ComparisonRow(FrozenCamelModel):
    """One entity's cost in the current window against the prior window"""
    name: str
    current_cost: float
    prior_cost: float
    change: float
    change_pct: float
    direction: str = "flat"


class ComparisonTotals(FrozenCamelModel):
    current_cost: float = 0.0
    prior_cost: float = 0.0
    change: float = 0.0
    change_pct: float = 0.0
    direction: str = "flat"


class CostDriverRow(FrozenCamelModel):
    name: str
    total_cost: float
    cost_change: float
    cost_change_pct: float
    efficiency: float
    direction: str = "flat"


class EfficiencyScore(FrozenCamelModel):
    """Cost-weighted CPU/memory efficiency of one entity"""
    name: str
    blended_efficiency: float
    compute_cost: float
    rating: str


class EfficiencySummary(CamelModel):
    total_savings: float = 0.0
    cluster_efficiency: float = 0.0
    rating: str = "poor"
    below_target_count: int = 0
    cluster_savings_summary: Optional[ClusterSavingsSummary] = None


class Page(CamelModel):
    """A ranked, paginated slice of table rows"""
    total: int
    page: int
    page_size: int
    page_count: int
    order_by: str
    direction: str
    rows: List[Any]


class Notice(CamelModel):
    """A non-fatal problem surfaced alongside a result"""
    primary: str
    secondary: str = ""
