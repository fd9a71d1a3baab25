"""
Pipelines module for drift patch.
"""
from .patch_pipeline import run_patch_pipeline, select_best_patch

__all__ = ["run_patch_pipeline", "select_best_patch"]
