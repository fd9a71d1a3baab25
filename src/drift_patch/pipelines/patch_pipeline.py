"""
Drift patch pipeline.

This pipeline runs, for one model:
1. Drift detection and attribution
2. Candidate patch synthesis
3. Validation of every candidate
4. Optionally, application of the safest accepted patch
"""

import time
from typing import Any, Callable, Dict, Optional, Sequence

import structlog

from ..config.constants import DEFAULT_DECISION_THRESHOLD
from ..config.settings import Settings
from ..models import DriftType, Patch, PatchStatus, compute_feature_stats
from ..patching.lifecycle import PatchLifecycleEngine
from ..patching.synthesizer import PatchSynthesizer
from ..patching.validator import PatchValidator
from ..utils import DriftPatchException, ModelBusyError, OperationCancelledError
from ..utils.helpers import format_timestamp, utcnow

logger = structlog.get_logger(__name__)


def select_best_patch(patches: Sequence[Patch]) -> Optional[Patch]:
    """
    Safest VALIDATED patch; ties go to the larger drift reduction.

    Args:
        patches: Patches after validation

    Returns:
        Best patch, or None when nothing was accepted
    """
    accepted = [p for p in patches if p.status == PatchStatus.VALIDATED]
    if not accepted:
        return None
    return max(
        accepted,
        key=lambda p: (
            p.safety_score,
            p.validation_result.drift_reduction if p.validation_result else 0.0,
        ),
    )


def run_patch_pipeline(
    model_id: str,
    reference,
    current,
    feature_names: Sequence[str],
    validation_inputs,
    validation_labels,
    predict_fn: Callable,
    engine: PatchLifecycleEngine,
    settings: Optional[Settings] = None,
    auto_apply: bool = False,
    cancel_token=None
) -> Dict[str, Any]:
    """
    Main entry point of the drift patch pipeline.

    Args:
        model_id: Monitored model
        reference: Raw reference matrix
        current: Raw current matrix
        feature_names: Column names
        validation_inputs: Raw validation matrix
        validation_labels: Binary validation labels
        predict_fn: predict_fn(inputs, configuration_or_None) -> outputs
        engine: Lifecycle engine owning the store, live states and locks
        settings: Configuration settings
        auto_apply: Apply the best accepted patch
        cancel_token: Optional CancellationToken

    Returns:
        Dictionary with pipeline execution results
    """
    logger.info("starting_patch_pipeline", model_id=model_id, auto_apply=auto_apply)

    settings = settings or Settings()
    start = time.perf_counter()

    try:
        # 1. Detect and rank drift
        drift_result = engine.run_detection(
            model_id,
            reference,
            current,
            feature_names,
            settings.drift_config(),
            cancel_token=cancel_token,
        )

        if not drift_result.is_drift_detected or drift_result.drift_type == DriftType.NONE:
            logger.info("patch_pipeline_no_drift", model_id=model_id, drift_score=drift_result.drift_score)
            return {
                "status": "no_drift",
                "timestamp": format_timestamp(utcnow()),
                "drift_result": drift_result.to_dict(),
                "patches": [],
                "best_patch_id": None,
                "applied_patch_id": None,
            }

        # 2. Synthesize candidates
        base_state = engine.live_states.get(model_id) if model_id in engine.live_states else None
        decision_threshold = base_state.decision_threshold if base_state else DEFAULT_DECISION_THRESHOLD
        candidates = PatchSynthesizer().synthesize(
            drift_result,
            top_k_features=settings.synthesis_top_k,
            reference_stats=compute_feature_stats(reference, feature_names),
            current_stats=compute_feature_stats(current, feature_names),
            decision_threshold=decision_threshold,
            cancel_token=cancel_token,
        )

        # 3. Validate every candidate
        validator = PatchValidator(
            reference,
            current,
            feature_names,
            drift_config=settings.drift_config(),
            validation_config=settings.validation_config(),
            base_state=base_state,
        )
        validated = []
        for candidate in candidates:
            engine.store.save(candidate)
            validated.append(engine.validate(
                candidate,
                validator,
                validation_inputs,
                validation_labels,
                predict_fn,
                drift_result.drift_score,
                cancel_token=cancel_token,
            ))

        # 4. Apply the best accepted patch
        best = select_best_patch(validated)
        applied_patch_id = None
        if best is not None and auto_apply:
            applied = engine.apply(best)
            applied_patch_id = applied.id
            validated = [applied if p.id == applied.id else p for p in validated]

        duration = time.perf_counter() - start
        result = {
            "status": "success",
            "timestamp": format_timestamp(utcnow()),
            "drift_result": drift_result.to_dict(),
            "patches": [p.to_dict() for p in validated],
            "best_patch_id": best.id if best else None,
            "applied_patch_id": applied_patch_id,
            "duration_seconds": duration,
        }

        logger.info(
            "patch_pipeline_complete",
            model_id=model_id,
            drift_type=drift_result.drift_type.value,
            n_candidates=len(validated),
            n_accepted=sum(1 for p in validated if p.status != PatchStatus.FAILED),
            applied_patch_id=applied_patch_id,
        )
        return result

    except ModelBusyError as e:
        logger.warning("patch_pipeline_model_busy", model_id=model_id, error=e.message)
        return {"status": "model_busy", "timestamp": format_timestamp(utcnow()), "error": e.message}

    except OperationCancelledError as e:
        logger.warning("patch_pipeline_cancelled", model_id=model_id)
        return {"status": "cancelled", "timestamp": format_timestamp(utcnow()), "error": e.message}

    except DriftPatchException as e:
        logger.error(
            "patch_pipeline_failed",
            model_id=model_id,
            error=e.message,
            error_code=e.error_code,
        )
        return {
            "status": "failed",
            "timestamp": format_timestamp(utcnow()),
            "error": e.message,
            "error_code": e.error_code,
        }
