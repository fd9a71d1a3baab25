"""
Constants for drift detection, patch synthesis and validation.
"""

# Drift Detection Thresholds
PSI_THRESHOLD = 0.2  # Per-feature PSI above which a feature is drifted
KS_THRESHOLD = 0.1  # Per-feature KS statistic threshold
P_VALUE_THRESHOLD = 0.05  # KS significance level
AGGREGATE_DRIFT_THRESHOLD = 0.3  # Squashed aggregate drift score threshold

# PSI Binning
PSI_NUM_BINS = 10  # Quantile bins derived from the reference distribution
PSI_EPSILON = 1e-4  # Floor for bin percentages to avoid ln(0)

# Normalization
STD_FLOOR = 1e-6  # Minimum std used when standardizing

# Drift Type Classification
MIN_DRIFT_RATIO = 0.05  # Below this fraction of drifted features: NONE
PRIOR_MAX_DRIFT_RATIO = 0.20
PRIOR_MEAN_TO_STD_RATIO = 2.0
CONCEPT_MIN_DRIFT_RATIO = 0.20
CONCEPT_MAX_DRIFT_RATIO = 0.50
CONCEPT_STD_TO_MEAN_RATIO = 2.0
COVARIATE_MIN_DRIFT_RATIO = 0.50
CONSISTENCY_THRESHOLD = 0.5
MEAN_SHIFT_FLOOR = 0.01
TIE_BREAK_COVARIATE_RATIO = 0.40
TIE_BREAK_CONCEPT_RATIO = 0.20

# Drift Severity Bands (aggregate drift score)
SEVERITY_CRITICAL = 0.4
SEVERITY_HIGH = 0.3
SEVERITY_MODERATE = 0.2
SEVERITY_LOW = 0.1

# Patch Synthesis
DEFAULT_TOP_K_FEATURES = 5
PRIOR_MAX_IMPLICATED_FEATURES = 2
CLIP_LOWER_PERCENTILE = 1.0
CLIP_UPPER_PERCENTILE = 99.0
DEFAULT_DECISION_THRESHOLD = 0.5
THRESHOLD_SHIFT_FRACTION = 0.05
MIN_DECISION_THRESHOLD = 0.01
MAX_DECISION_THRESHOLD = 0.99
MODEL_UPDATE_DAMPING = 0.5
OUTLIER_Z_SCORE_CUTOFF = 3.0
OUTLIER_STD_SHIFT_TRIGGER = 0.5

# Patch Validation Gate
SAFETY_FLOOR = 0.25
DRIFT_REDUCTION_FLOOR = 0.05
FAST_TRACK_SAMPLE_CEILING = 30
FAST_TRACK_SAFETY_FLOOR = 0.15
REJECT_SAFETY_FLOOR = 0.10
DRIFT_SCORE_TOLERANCE = 1e-9  # Score differences below this count as no change

# Safety Score Weights
SAFETY_WEIGHT_MAGNITUDE = 0.4
SAFETY_WEIGHT_STABILITY = 0.3
SAFETY_WEIGHT_DRIFT_REDUCTION = 0.3

# Confidence Interval
WILSON_Z_95 = 1.96

# Concurrency
MODEL_LOCK_TIMEOUT_SECONDS = 0.0  # 0 = fail fast with ModelBusyError

# Prometheus Metrics Names
METRIC_NAMESPACE = "drift_patch"

# Version
DRIFT_PATCH_COMPONENT_VERSION = "0.1.0"
