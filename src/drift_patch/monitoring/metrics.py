"""
Prometheus metrics for drift detection and patch lifecycle monitoring.
"""

from typing import TYPE_CHECKING

import structlog
from prometheus_client import Counter, Gauge, Histogram, start_http_server

from ..config.constants import METRIC_NAMESPACE

if TYPE_CHECKING:
    from ..models import DriftResult

logger = structlog.get_logger(__name__)

NAMESPACE = METRIC_NAMESPACE

# -----------------------------------------------------------------------------
# Detection Metrics
# -----------------------------------------------------------------------------

DETECTION_RUNS_TOTAL = Counter(
    f"{NAMESPACE}_detection_runs_total",
    "Total number of drift detection runs",
    ["model_id", "drift_type"],  # drift_type: 'none', 'prior', 'concept', 'covariate'
)

DETECTION_DURATION_SECONDS = Histogram(
    f"{NAMESPACE}_detection_duration_seconds",
    "Time spent detecting drift",
    ["model_id"],
)

DRIFT_SCORE = Gauge(
    f"{NAMESPACE}_drift_score",
    "Aggregate drift score of the last detection run (0-1 scale)",
    ["model_id"],
)

FEATURE_PSI_SCORE = Gauge(
    f"{NAMESPACE}_feature_psi_score",
    "Per-feature PSI of the last detection run",
    ["model_id", "feature_name"],
)

# -----------------------------------------------------------------------------
# Patch Lifecycle Metrics
# -----------------------------------------------------------------------------

PATCH_TRANSITIONS_TOTAL = Counter(
    f"{NAMESPACE}_patch_transitions_total",
    "Total number of patch status transitions",
    ["model_id", "from_status", "to_status"],
)

VALIDATION_OUTCOMES_TOTAL = Counter(
    f"{NAMESPACE}_validation_outcomes_total",
    "Total number of patch validations by gate tier",
    ["patch_type", "tier"],  # tier: 'standard', 'fast_track', 'lenient', 'rejected', 'error'
)

ROLLBACKS_TOTAL = Counter(
    f"{NAMESPACE}_rollbacks_total",
    "Total number of patch rollbacks",
    ["model_id", "status"],  # status: 'success' or 'failed'
)

MODEL_BUSY_REJECTIONS_TOTAL = Counter(
    f"{NAMESPACE}_model_busy_rejections_total",
    "Total number of operations rejected because the model lock was held",
    ["model_id", "operation"],
)


def setup_prometheus_metrics(port: int = 9092) -> None:
    """
    Start Prometheus metrics server for drift patch.

    Args:
        port: Port number for metrics server (default: 9092)
    """
    try:
        start_http_server(port)
        logger.info("prometheus_metrics_server_started", port=port, module="drift_patch")
    except Exception as e:
        logger.error("prometheus_server_start_failed", error=str(e), module="drift_patch")


def record_detection(drift_result: "DriftResult", duration: float) -> None:
    """
    Record a completed detection run.

    Args:
        drift_result: Result of the run
        duration: Duration in seconds
    """
    model_id = drift_result.model_id
    DETECTION_RUNS_TOTAL.labels(
        model_id=model_id, drift_type=drift_result.drift_type.value
    ).inc()
    DETECTION_DURATION_SECONDS.labels(model_id=model_id).observe(duration)
    DRIFT_SCORE.labels(model_id=model_id).set(drift_result.drift_score)
    for fd in drift_result.feature_drifts:
        FEATURE_PSI_SCORE.labels(model_id=model_id, feature_name=fd.feature_name).set(
            fd.psi_score
        )
    logger.debug(
        "detection_metrics_recorded",
        model_id=model_id,
        drift_score=drift_result.drift_score,
        duration=duration,
    )


def record_transition(model_id: str, from_status: str, to_status: str) -> None:
    """Record a patch status transition."""
    PATCH_TRANSITIONS_TOTAL.labels(
        model_id=model_id, from_status=from_status, to_status=to_status
    ).inc()


def record_validation(patch_type: str, tier: str) -> None:
    """Record the gate tier a validated patch landed in."""
    VALIDATION_OUTCOMES_TOTAL.labels(patch_type=patch_type, tier=tier).inc()


def record_rollback(model_id: str, success: bool) -> None:
    """Record a rollback attempt."""
    ROLLBACKS_TOTAL.labels(
        model_id=model_id, status="success" if success else "failed"
    ).inc()


def record_model_busy(model_id: str, operation: str) -> None:
    """Record an operation rejected by the per-model lock."""
    MODEL_BUSY_REJECTIONS_TOTAL.labels(model_id=model_id, operation=operation).inc()
