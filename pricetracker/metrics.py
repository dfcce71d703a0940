"""Prometheus metrics for the pricing tracker."""

from prometheus_client import Counter, Gauge, Histogram, Info

app_info = Info("pricetracker", "Bare-metal pricing tracker application info")
app_info.info({"version": "0.1.0", "name": "metal-price-tracker"})

# Fetch metrics
provider_fetches_total = Counter(
    "provider_fetches_total",
    "Total number of provider catalog fetch units attempted",
    ["provider", "status"],
)

provider_fetch_errors_total = Counter(
    "provider_fetch_errors_total",
    "Total number of provider fetch units that returned no data",
    ["provider", "error_type"],
)

provider_fetch_duration_seconds = Histogram(
    "provider_fetch_duration_seconds",
    "Time spent fetching a provider catalog",
    ["provider"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

# Ingestion metrics
products_ingested = Gauge(
    "competitor_products_ingested",
    "Competitor products persisted by the last ingestion run",
    ["provider"],
)

entries_skipped_total = Counter(
    "catalog_entries_skipped_total",
    "Catalog entries skipped during normalization",
    ["provider", "reason"],
)

cpu_core_fallbacks_total = Counter(
    "cpu_core_fallbacks_total",
    "CPU descriptors whose core count fell back to the default",
)

# Matching metrics
comparisons_generated = Gauge(
    "comparisons_generated",
    "Comparison rows produced by the last matching run",
)

# Price change metrics
price_changes_total = Counter(
    "competitor_price_changes_total",
    "Significant competitor price changes detected",
    ["provider", "direction"],
)

alerts_sent_total = Counter(
    "price_alert_emails_total",
    "Price alert emails attempted",
    ["status"],
)

# Scheduler metrics
pipeline_runs_total = Counter(
    "pipeline_runs_total",
    "Total number of pipeline runs",
    ["status"],
)

pipeline_last_run_timestamp = Gauge(
    "pipeline_last_run_timestamp",
    "Timestamp of the last completed pipeline run",
)
