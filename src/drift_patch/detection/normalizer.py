"""
Reference-anchored standardization of feature matrices.

Both matrices are standardized with the reference statistics only, so a shift
in the current data stays visible after normalization.
"""
from typing import Optional, Tuple

import numpy as np

from ..config import get_logger
from ..config.constants import STD_FLOOR
from ..utils import InsufficientDataError

logger = get_logger(__name__)


def as_matrix(data, name: str = "matrix") -> np.ndarray:
    """
    Convert an array-like or DataFrame to a 2-D float matrix.

    Raises:
        InsufficientDataError: Not 2-D or zero rows
    """
    matrix = np.asarray(data, dtype=float)
    if matrix.ndim != 2:
        raise InsufficientDataError(
            f"{name} must be 2-dimensional",
            details={"ndim": int(matrix.ndim)}
        )
    if matrix.shape[0] == 0:
        raise InsufficientDataError(f"{name} has no rows", details={"shape": list(matrix.shape)})
    return matrix


class DistributionNormalizer:
    """
    Standardize reference and current matrices column by column.
    """

    def __init__(self, std_floor: float = STD_FLOOR):
        self.std_floor = std_floor
        self.reference_means: Optional[np.ndarray] = None
        self.reference_stds: Optional[np.ndarray] = None
        self.logger = logger

    def fit(self, reference) -> "DistributionNormalizer":
        """Compute per-column mean and population std of the reference."""
        matrix = as_matrix(reference, "reference")
        self.reference_means = matrix.mean(axis=0)
        self.reference_stds = np.maximum(matrix.std(axis=0), self.std_floor)
        return self

    def transform(self, data) -> np.ndarray:
        """Standardize a matrix with the fitted reference statistics."""
        if self.reference_means is None:
            raise InsufficientDataError("Normalizer has not been fitted with reference data")
        matrix = as_matrix(data, "current")
        if matrix.shape[1] != len(self.reference_means):
            raise InsufficientDataError(
                "Feature count mismatch between reference and current",
                details={
                    "reference_features": len(self.reference_means),
                    "current_features": int(matrix.shape[1])
                }
            )
        return (matrix - self.reference_means) / self.reference_stds

    def normalize(self, reference, current) -> Tuple[np.ndarray, np.ndarray]:
        """
        Standardize both matrices using reference statistics.

        Args:
            reference: Reference (training-time) matrix, rows x features
            current: Current (production) matrix, rows x features

        Returns:
            (normalized_reference, normalized_current)

        Raises:
            InsufficientDataError: Empty, non 2-D or mismatched matrices
        """
        ref = as_matrix(reference, "reference")
        cur = as_matrix(current, "current")
        if ref.shape[1] != cur.shape[1]:
            raise InsufficientDataError(
                "Feature count mismatch between reference and current",
                details={"reference_features": int(ref.shape[1]), "current_features": int(cur.shape[1])}
            )

        self.fit(ref)
        normalized_reference = (ref - self.reference_means) / self.reference_stds
        normalized_current = (cur - self.reference_means) / self.reference_stds

        self.logger.debug(
            "distributions_normalized",
            reference_rows=int(ref.shape[0]),
            current_rows=int(cur.shape[0]),
            n_features=int(ref.shape[1]),
        )
        return normalized_reference, normalized_current
