import logging
import os
from typing import List, Literal
from datetime import datetime

from fastapi import FastAPI, HTTPException, Query
import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator
from costview.metrics import finops_http_requests_total

# Setup logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_WINDOW = os.getenv("DEFAULT_WINDOW", "7d")
DEFAULT_AGGREGATE = os.getenv("DEFAULT_AGGREGATE", "namespace")
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "25"))
TOP_DRIVERS_LIMIT = int(os.getenv("TOP_DRIVERS_LIMIT", "10"))

# Create the FastAPI app
app = FastAPI(title="Cost Insights API", description="Period comparison and efficiency insights for Kubernetes costs")

# Initialize and apply instrumentation BEFORE defining routes
instrumentator = Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/metrics"],
    inprogress_name="finops_api_inprogress",
    inprogress_labels=True,
)
instrumentator.instrument(app).expose(app)
logger.info("Application instrumented with Prometheus metrics at /metrics")

# Import our modules (AFTER instrumenting the app)
from costview import allocation
from costview.allocation import CostApiError
from costview.models import Notice
from costview.windows import WINDOW_PRESETS, is_valid_window, prior_window
from costview.comparison import (
    allocation_efficiency, merge_periods, comparison_totals, cost_drivers, total_cost, percent_change
)
from costview.efficiency import score_entities, summarize_efficiency, total_compute_cost
from costview.ranking import PAGE_SIZE_OPTIONS, paginate, rank
from costview.metrics import record_comparison, record_efficiency

Direction = Literal["asc", "desc"]


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


# API version
@app.get("/version")
def version():
    """Return API version information"""
    return {"version": "0.1.0", "api": "Kubernetes Cost Insights"}


# Error handling wrapper for cost API calls
def handle_errors(func, *args, **kwargs):
    """Wrapper to turn cost API failures into a 502 response"""
    try:
        return func(*args, **kwargs)
    except CostApiError as e:
        logger.error(f"Error in {func.__name__}: {str(e)}")
        raise HTTPException(status_code=502, detail=f"Error fetching cost data: {str(e)}")


def fetch_or_empty(warnings: List[Notice], label: str, func, *args, **kwargs):
    """Call a cost API function, degrading to None with a warning when it fails"""
    try:
        return func(*args, **kwargs)
    except CostApiError as e:
        logger.error(f"Error fetching {label}, continuing without it: {str(e)}")
        warnings.append(Notice(primary=f"Failed to load {label}", secondary=str(e)))
        return None


def check_window(window: str) -> None:
    if not is_valid_window(window):
        presets = ", ".join(name for name, _ in WINDOW_PRESETS)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid window {window!r}: use one of {presets} or '<ISO8601 start>,<ISO8601 end>'",
        )


def check_page_size(page_size: int) -> None:
    if page_size not in PAGE_SIZE_OPTIONS:
        raise HTTPException(status_code=422, detail=f"page_size must be one of {list(PAGE_SIZE_OPTIONS)}")


def fetch_periods(window: str, agg: str, warnings: List[Notice]):
    """Current and prior cumulative datasets; only the current one is required"""
    prior = prior_window(window)
    current_data = handle_errors(allocation.fetch_allocation, window, agg, accumulate=True, include_idle=False)
    prior_data = fetch_or_empty(warnings, "prior period data", allocation.fetch_allocation,
                                prior, agg, accumulate=True, include_idle=False)
    return prior, current_data or {}, prior_data or {}


@app.get("/windows")
def list_windows():
    """List the window presets"""
    return [{"name": label, "value": value} for value, label in WINDOW_PRESETS]


@app.get("/windows/prior")
def get_prior_window(window: str = Query(DEFAULT_WINDOW)):
    """Resolve the prior equivalent window of a window specifier"""
    return {"window": window, "priorWindow": prior_window(window)}


# Endpoint to compare the current window against the prior equivalent window
@app.get("/comparison")
def get_comparison(
    window: str = Query(DEFAULT_WINDOW),
    agg: str = Query(DEFAULT_AGGREGATE),
    order_by: str = Query("currentCost"),
    direction: Direction = Query("desc"),
    page: int = Query(0, ge=0),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
):
    """Get period-over-period cost changes per entity"""
    check_window(window)
    check_page_size(page_size)

    warnings: List[Notice] = []
    prior, current_data, prior_data = fetch_periods(window, agg, warnings)

    rows = merge_periods(current_data, prior_data)
    record_comparison(agg, rows)

    return {
        "window": window,
        "priorWindow": prior,
        "aggregate": agg,
        "totals": comparison_totals(rows),
        "table": paginate(rows, order_by, direction, page, page_size),
        "warnings": warnings,
    }


# Endpoint to get efficiency scores
@app.get("/efficiency")
def get_efficiency(
    window: str = Query(DEFAULT_WINDOW),
    agg: str = Query(DEFAULT_AGGREGATE),
    order_by: str = Query("costSavings"),
    direction: Direction = Query("desc"),
    page: int = Query(0, ge=0),
    page_size: int = Query(DEFAULT_PAGE_SIZE),
    show_small: bool = Query(False),
    show_system: bool = Query(False),
):
    """Get cost-weighted efficiency per entity and for the whole cluster"""
    check_window(window)
    check_page_size(page_size)

    options = {}
    if show_small:
        options["min_savings"] = 0
        options["min_savings_percent"] = 0
    if show_system:
        options["exclude_system"] = False

    records, cluster_summary = handle_errors(allocation.fetch_efficiency, window, agg, **options)

    scores = score_entities(records)
    summary = summarize_efficiency(records, cluster_summary)
    record_efficiency(agg, scores, summary)

    return {
        "window": window,
        "aggregate": agg,
        "summary": summary,
        "scores": rank(scores, "blended_efficiency", "asc"),
        "table": paginate(records, order_by, direction, page, page_size),
        "warnings": [],
    }


# Endpoint to get the overview in one call
@app.get("/overview")
def get_overview(
    window: str = Query(DEFAULT_WINDOW),
    agg: str = Query(DEFAULT_AGGREGATE),
):
    """Get total spend, cluster efficiency and the top cost drivers"""
    check_window(window)

    warnings: List[Notice] = []
    prior, current_data, prior_data = fetch_periods(window, agg, warnings)

    efficiency = fetch_or_empty(warnings, "efficiency data", allocation.fetch_efficiency, window, agg)
    records, cluster_summary = efficiency if efficiency else ([], None)

    total_spend = total_cost(current_data)
    prior_spend = total_cost(prior_data)
    summary = summarize_efficiency(records, cluster_summary)

    # Without measured compute cost, use the efficiency reported on the allocations
    cluster_efficiency = summary.cluster_efficiency
    if total_compute_cost(records) == 0:
        cluster_efficiency = allocation_efficiency(current_data)

    drivers = rank(cost_drivers(current_data, prior_data, records), "total_cost", "desc")

    return {
        "window": window,
        "priorWindow": prior,
        "aggregate": agg,
        "totalSpend": total_spend,
        "priorSpend": prior_spend,
        "change": total_spend - prior_spend,
        "changePct": percent_change(total_spend, prior_spend),
        "clusterEfficiency": cluster_efficiency,
        "totalSavings": summary.total_savings,
        "topCostDrivers": drivers[:TOP_DRIVERS_LIMIT],
        "warnings": warnings,
    }


@app.middleware("http")
async def metrics_middleware(request, call_next):
    response = await call_next(request)

    # Update request metrics
    finops_http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code
    ).inc()

    return response


if __name__ == "__main__":
    uvicorn.run("app:app", host="0.0.0.0", port=8000, log_level="info")
