from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

REQUESTS = Counter("tabletasks_requests_total", "Total API requests", ["route"])
JOBS_CLAIMED = Counter("tabletasks_jobs_claimed_total", "Jobs claimed by a runner")
JOBS_FINISHED = Counter("tabletasks_jobs_finished_total", "Jobs reaching a terminal state", ["status"])
DATA_ROWS = Gauge("tabletasks_data_rows", "Rows in the last profiled input")

def increment_counter(name: str, labels: dict | None = None):
    if name == "requests_total":
        REQUESTS.labels(**(labels or {})).inc()
    elif name == "jobs_claimed_total":
        JOBS_CLAIMED.inc()
    elif name == "jobs_finished_total":
        JOBS_FINISHED.labels(**(labels or {})).inc()

def set_gauge(name: str, value: float):
    if name == "data_rows":
        DATA_ROWS.set(value)

def render_latest() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
