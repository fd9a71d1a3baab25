"""
Patch synthesis, validation and lifecycle module.
"""
from .lifecycle import ModelLockRegistry, PatchLifecycleEngine
from .state_machine import ALLOWED_TRANSITIONS, PatchEvent, advance, transition, transition_to
from .synthesizer import PatchSynthesizer
from .transforms import LiveStateRegistry, TransformState, configuration_magnitude, make_predict_fn
from .validator import PatchValidator, apply_gate, labels_from_outputs

__all__ = [
    "PatchSynthesizer",
    "PatchValidator",
    "PatchLifecycleEngine",
    "ModelLockRegistry",
    "PatchEvent",
    "ALLOWED_TRANSITIONS",
    "advance",
    "transition",
    "transition_to",
    "apply_gate",
    "labels_from_outputs",
    "TransformState",
    "LiveStateRegistry",
    "configuration_magnitude",
    "make_predict_fn",
]
