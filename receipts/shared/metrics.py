"""Prometheus metrics for the ingestion pipeline.

Exposes key metrics for monitoring:
- Intake outcomes (ingested, duplicate, rejected, storage errors)
- Ingested file sizes
- OCR requests and durations per engine
- Inbox state transitions

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Intake metrics
intake_files_total = Counter(
    "intake_files_total",
    "Total files seen by intake",
    ["outcome"],  # ingested, duplicate, not_ready, storage_error
)

intake_file_size_bytes = Histogram(
    "intake_file_size_bytes",
    "Size of ingested files in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

# OCR processing metrics
ocr_requests_total = Counter(
    "ocr_requests_total",
    "Total OCR extraction requests",
    ["engine", "status"],  # success, failed
)

ocr_processing_duration_seconds = Histogram(
    "ocr_processing_duration_seconds",
    "OCR processing duration in seconds",
    ["engine"],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

# Inbox lifecycle metrics
inbox_transitions_total = Counter(
    "inbox_transitions_total",
    "Total inbox item state transitions",
    ["to_state"],
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
