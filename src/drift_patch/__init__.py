"""
Drift Patch Component

Compares a production model's live inputs against its reference
(training-time) distribution and repairs the drift it finds:
- Detection: PSI / KS per feature, aggregate score and drift type
- Attribution: ranks features by their share of the drift
- Patching: synthesizes, validates, applies and rolls back reversible patches

This component integrates with:
- Data ingestion (reference / current matrices)
- Model inference (caller-supplied predict function)
- Storage (caller-supplied PatchStore implementation)
"""

__version__ = "0.1.0"
__author__ = "Drift Patch ML Team"
