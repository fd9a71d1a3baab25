"""
Patch lifecycle engine.

Owns the per-model lock, validation, apply with snapshots, and rollback.
Every status change goes through `state_machine.advance` and is saved to the
store before the call returns.
"""
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, Optional, Sequence

from ..config import DriftConfig, get_logger, settings
from ..detection.attribution import AttributionRanker
from ..detection.drift_detector import DriftDetector
from ..detection.normalizer import DistributionNormalizer
from ..models import DriftResult, Patch, PatchSnapshot, PatchStatus
from ..monitoring.metrics import record_model_busy, record_rollback
from ..storage.interface import PatchStore
from ..utils import (
    InvalidTransitionError,
    ModelBusyError,
    PatchApplicationError,
    SnapshotCorruptionError,
    StorageException,
)
from ..utils.helpers import utcnow
from .state_machine import PatchEvent, advance, transition
from .transforms import LiveStateRegistry
from .validator import PatchValidator

logger = get_logger(__name__)


class ModelLockRegistry:
    """
    One mutual-exclusion lock per model id.

    With timeout 0 a held lock fails fast with ModelBusyError; a positive
    timeout blocks up to that many seconds first. The default timeout comes
    from settings.model_lock_timeout_seconds.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.model_lock_timeout_seconds if timeout is None else timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, model_id: str) -> threading.Lock:
        with self._guard:
            if model_id not in self._locks:
                self._locks[model_id] = threading.Lock()
            return self._locks[model_id]

    def is_locked(self, model_id: str) -> bool:
        return self._lock_for(model_id).locked()

    @contextmanager
    def hold(self, model_id: str, operation: str) -> Iterator[None]:
        lock = self._lock_for(model_id)
        if self.timeout > 0:
            acquired = lock.acquire(timeout=self.timeout)
        else:
            acquired = lock.acquire(blocking=False)

        if not acquired:
            record_model_busy(model_id, operation)
            logger.warning("model_busy", model_id=model_id, operation=operation)
            raise ModelBusyError(
                f"Model '{model_id}' is busy",
                details={"model_id": model_id, "operation": operation}
            )
        try:
            yield
        finally:
            lock.release()


class PatchLifecycleEngine:
    """
    Drives patches through CREATED -> VALIDATED -> APPLIED -> ROLLED_BACK.
    """

    def __init__(
        self,
        store: PatchStore,
        live_states: LiveStateRegistry,
        locks: Optional[ModelLockRegistry] = None
    ):
        """
        Initialize lifecycle engine.

        Args:
            store: Durable record store
            live_states: Live transform state per model
            locks: Per-model lock registry (fail-fast by default)
        """
        self.store = store
        self.live_states = live_states
        self.locks = locks or ModelLockRegistry()
        self.normalizer = DistributionNormalizer()
        self.detector = DriftDetector()
        self.ranker = AttributionRanker()
        self.logger = logger

    def _stored(self, patch: Patch, event: PatchEvent, allow_unsaved: bool = False) -> Patch:
        """
        Current record of patch, checked against event.

        Must be called under the model lock. The stored record wins over the
        caller's copy, so a stale copy cannot replay a transition. A patch
        with no record is accepted only when allow_unsaved is set.

        Raises:
            InvalidTransitionError: No stored record, or its status does not
                allow event
        """
        stored = self.store.load(patch.id)
        if stored is None and allow_unsaved:
            stored = patch
        elif not isinstance(stored, Patch):
            raise InvalidTransitionError(
                f"Patch {patch.id} has no stored record",
                details={"patch_id": patch.id, "event": event.value}
            )
        transition(stored.status, event)
        return stored

    def run_detection(
        self,
        model_id: str,
        reference,
        current,
        feature_names: Sequence[str],
        config: DriftConfig,
        cancel_token=None
    ) -> DriftResult:
        """
        Normalize, detect and rank under the model lock, then save the result.

        Raises:
            ModelBusyError: Another operation holds the model lock
            InsufficientDataError: Empty or mismatched matrices
            OperationCancelledError: Cancellation requested
        """
        with self.locks.hold(model_id, "detect"):
            normalized_reference, normalized_current = self.normalizer.normalize(reference, current)
            result = self.detector.detect(
                normalized_reference,
                normalized_current,
                feature_names,
                config,
                model_id,
                cancel_token=cancel_token,
            )
            ranked = self.ranker.rank_result(result)
            self.store.save(ranked)
        return ranked

    def validate(
        self,
        patch: Patch,
        validator: PatchValidator,
        validation_inputs,
        validation_labels,
        predict_fn: Callable,
        drift_score_before: float,
        cancel_token=None
    ) -> Patch:
        """
        CREATED -> VALIDATED or FAILED.

        A rejected patch is a normal outcome: it is returned FAILED with the
        reasons in validation_result.errors. A candidate that was never saved
        gets its first record here.

        Raises:
            InvalidTransitionError: Patch is not CREATED
            ModelBusyError: Another operation holds the model lock
        """
        transition(patch.status, PatchEvent.VALIDATION_PASSED)

        with self.locks.hold(patch.model_id, "validate"):
            current = self._stored(patch, PatchEvent.VALIDATION_PASSED, allow_unsaved=True)
            result = validator.validate(
                current,
                validation_inputs,
                validation_labels,
                predict_fn,
                drift_score_before,
                cancel_token=cancel_token,
            )
            event = PatchEvent.VALIDATION_PASSED if result.is_valid else PatchEvent.VALIDATION_FAILED
            validated = advance(
                current,
                event,
                validation_result=result,
                safety_score=result.safety_score,
            )
            self.store.save(validated)

        self.logger.info(
            "patch_validation_recorded",
            patch_id=patch.id,
            model_id=patch.model_id,
            status=validated.status.value,
            errors=list(result.errors),
        )
        return validated

    def _undo_apply(self, patch: Patch, snapshot: PatchSnapshot, live_state_changed: bool) -> None:
        """
        Restore the pre-apply state and discard the snapshot.

        Cleanup errors are logged, not raised, so the caller's
        PatchApplicationError is the error that surfaces.
        """
        steps = [("delete_snapshot", lambda: self.store.delete(snapshot.id))]
        if live_state_changed:
            steps.insert(0, (
                "restore_state",
                lambda: self.live_states.restore(patch.model_id, snapshot.pre_apply_state),
            ))
        for step, action in steps:
            try:
                action()
            except Exception as e:
                self.logger.error(
                    "patch_apply_cleanup_failed",
                    patch_id=patch.id,
                    model_id=patch.model_id,
                    snapshot_id=snapshot.id,
                    step=step,
                    error=str(e),
                )

    def apply(self, patch: Patch) -> Patch:
        """
        VALIDATED -> APPLIED.

        The pre-apply snapshot is saved before the live state changes, and the
        post-apply state is saved before the status changes. If applying the
        configuration or saving the APPLIED record fails, the live state is
        restored, the snapshot is discarded and the patch stays VALIDATED.

        Raises:
            InvalidTransitionError: Stored patch is not VALIDATED
            ModelBusyError: Another operation holds the model lock
            PatchApplicationError: Configuration could not be applied or recorded
        """
        transition(patch.status, PatchEvent.APPLY)

        with self.locks.hold(patch.model_id, "apply"):
            current = self._stored(patch, PatchEvent.APPLY)
            pre_apply_state = self.live_states.serialize(current.model_id)
            snapshot = PatchSnapshot(
                patch_id=current.id,
                model_id=current.model_id,
                pre_apply_state=pre_apply_state,
            )
            self.store.save(snapshot)

            live_state_changed = False
            try:
                patched_state = self.live_states.get(current.model_id).with_configuration(
                    current.configuration
                )
                self.live_states.set(current.model_id, patched_state)
                live_state_changed = True
                snapshot = replace(snapshot, post_apply_state=patched_state.to_bytes())
                self.store.save(snapshot)
                applied = advance(current, PatchEvent.APPLY, applied_at=utcnow())
                self.store.save(applied)
            except Exception as e:
                self._undo_apply(current, snapshot, live_state_changed)
                self.logger.error(
                    "patch_apply_failed",
                    patch_id=current.id,
                    model_id=current.model_id,
                    error=str(e),
                )
                raise PatchApplicationError(
                    f"Failed to apply patch {current.id}",
                    details={"patch_id": current.id, "model_id": current.model_id, "error": str(e)}
                ) from e

        self.logger.info(
            "patch_applied",
            patch_id=applied.id,
            model_id=applied.model_id,
            patch_type=applied.patch_type.value,
            snapshot_id=snapshot.id,
        )
        return applied

    def _latest_snapshot(self, patch: Patch) -> PatchSnapshot:
        try:
            snapshot = self.store.latest_snapshot(patch.id)
        except (StorageException, ValueError, KeyError, TypeError) as e:
            raise SnapshotCorruptionError(
                f"Snapshot of patch {patch.id} cannot be read",
                details={"patch_id": patch.id, "error": str(e)}
            ) from e
        if snapshot is None:
            raise SnapshotCorruptionError(
                f"No snapshot found for patch {patch.id}",
                details={"patch_id": patch.id}
            )
        return snapshot

    def rollback(self, patch: Patch) -> Patch:
        """
        APPLIED -> ROLLED_BACK, restoring the pre-apply live state.

        Raises:
            InvalidTransitionError: Stored patch is not APPLIED
            ModelBusyError: Another operation holds the model lock
            SnapshotCorruptionError: Snapshot missing or undecodable
        """
        transition(patch.status, PatchEvent.ROLLBACK)

        with self.locks.hold(patch.model_id, "rollback"):
            current = self._stored(patch, PatchEvent.ROLLBACK)
            try:
                snapshot = self._latest_snapshot(current)
                self.live_states.restore(current.model_id, snapshot.pre_apply_state)
            except SnapshotCorruptionError as e:
                record_rollback(current.model_id, success=False)
                self.logger.error(
                    "patch_rollback_failed",
                    patch_id=current.id,
                    model_id=current.model_id,
                    error=e.message,
                    details=e.details,
                )
                raise

            rolled_back = advance(current, PatchEvent.ROLLBACK, rolled_back_at=utcnow())
            self.store.save(rolled_back)

        record_rollback(patch.model_id, success=True)
        self.logger.info(
            "patch_rolled_back",
            patch_id=patch.id,
            model_id=patch.model_id,
            snapshot_id=snapshot.id,
        )
        return rolled_back

    def fail(self, patch: Patch, reason: str) -> Patch:
        """
        CREATED or VALIDATED -> FAILED.

        The reason is appended to the validation errors when the patch has a
        validation result.

        Raises:
            InvalidTransitionError: Stored patch is APPLIED, already terminal
                or missing
        """
        transition(patch.status, PatchEvent.FAIL)

        with self.locks.hold(patch.model_id, "fail"):
            current = self._stored(patch, PatchEvent.FAIL)
            fields = {}
            if current.validation_result is not None:
                fields["validation_result"] = replace(
                    current.validation_result,
                    is_valid=False,
                    errors=current.validation_result.errors + (reason,),
                )
            failed = advance(current, PatchEvent.FAIL, **fields)
            self.store.save(failed)

        self.logger.warning("patch_failed", patch_id=patch.id, model_id=patch.model_id, reason=reason)
        return failed

    def load_patch(self, patch_id: str) -> Optional[Patch]:
        record = self.store.load(patch_id)
        return record if isinstance(record, Patch) else None

    @staticmethod
    def is_terminal(patch: Patch) -> bool:
        return patch.status in (PatchStatus.FAILED, PatchStatus.ROLLED_BACK)
