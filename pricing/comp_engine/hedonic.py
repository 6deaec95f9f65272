"""
Hedonic Pricing Model for the pricing engine

Ridge regression of log(price) on property attributes:
- Feature extraction (size, rooms, age, listing month, size buckets,
  safe subdivision one-hots)
- 5-fold cross-validated ridge penalty over a fixed grid
- Closed-form solve with an unpenalised intercept
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .exceptions import InsufficientTrainingDataError, ModelTrainingError
from .models import CleanRecord, FeatureVector, HedonicModel, ListingStatus


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Constants
# =============================================================================

ALPHA_GRID = (0.01, 0.1, 1.0, 5.0, 10.0)
CV_FOLDS = 5

MIN_TRAINING_RECORDS = 10

# Subdivision one-hots only for levels with enough support
MIN_SUBDIVISION_SAMPLES = 5
MAX_SUBDIVISION_DUMMIES = 10

# Size bucket edges (sqft)
SIZE_BUCKET_SMALL_MAX = 2000
SIZE_BUCKET_MEDIUM_MAX = 3000

# Heuristic probability of a primary suite on the main floor for new builds
PRIMARY_MAIN_NEW_PROBABILITY = 0.2

MONTH_FEATURE = "month"
LOT_FEATURE = "log_lot"

BASE_FEATURES = (
    "log_sqft",
    "beds",
    "baths",
    "garage",
    "is_new",
    "year",
    MONTH_FEATURE,
    "sz_0_2k",
    "sz_2_3k",
    "sz_3k_plus",
    "primary_main",
)


@dataclass
class TrainingData:
    """Feature rows and log-price targets prepared for ridge fitting."""
    records: List[CleanRecord]
    features: List[FeatureVector]
    targets: List[float]
    feature_names: List[str] = field(default_factory=list)
    subdivisions: List[str] = field(default_factory=list)

    def design_matrix(self) -> np.ndarray:
        return feature_matrix(self.features, self.feature_names)


# =============================================================================
# Feature Extraction
# =============================================================================


def subdivision_feature(subdivision: str) -> str:
    """Feature name for a subdivision one-hot."""
    return "sub_" + re.sub(r"[^a-z0-9]", "_", subdivision)


def extract_features(
    record,
    known_subdivisions: Optional[Sequence[str]] = None,
    force_month: Optional[int] = None,
) -> FeatureVector:
    """
    Build the named feature vector for a CleanRecord or Subject.

    Args:
        record: Record with sqft, beds, baths, garage, is_new, year_built,
            month_index, lot_sqft and subdivision
        known_subdivisions: Subdivision levels to one-hot encode
        force_month: Month index to use instead of the record's own

    Returns:
        Feature name -> value. log_lot is present only when the record has
        a lot size.
    """
    sqft = record.sqft

    features: FeatureVector = {
        "log_sqft": math.log(max(sqft, 100)),
        "beds": float(record.beds),
        "baths": float(record.baths),
        "garage": float(record.garage),
        "is_new": 1.0 if record.is_new else 0.0,
        "year": float(record.year_built),
        MONTH_FEATURE: float(force_month if force_month is not None else record.month_index),
        "sz_0_2k": 1.0 if sqft <= SIZE_BUCKET_SMALL_MAX else 0.0,
        "sz_2_3k": 1.0 if SIZE_BUCKET_SMALL_MAX < sqft <= SIZE_BUCKET_MEDIUM_MAX else 0.0,
        "sz_3k_plus": 1.0 if sqft > SIZE_BUCKET_MEDIUM_MAX else 0.0,
        # Approximation: no floor-plan data, so new builds get a fixed prior
        "primary_main": PRIMARY_MAIN_NEW_PROBABILITY if record.is_new else 0.0,
    }

    if record.lot_sqft and record.lot_sqft > 0:
        features[LOT_FEATURE] = math.log(max(record.lot_sqft, 1000))

    for subdivision in known_subdivisions or ():
        features[subdivision_feature(subdivision)] = 1.0 if record.subdivision == subdivision else 0.0

    return features


def safe_subdivisions(records: Iterable[CleanRecord]) -> List[str]:
    """Most common subdivisions with at least 5 samples, at most 10."""
    counts = Counter(r.subdivision for r in records if r.subdivision)
    eligible = [
        (name, count) for name, count in counts.items()
        if count >= MIN_SUBDIVISION_SAMPLES
    ]
    eligible.sort(key=lambda item: (-item[1], item[0]))
    return [name for name, _ in eligible[:MAX_SUBDIVISION_DUMMIES]]


def prepare_training_data(records: Sequence[CleanRecord]) -> TrainingData:
    """Extract feature rows and ln(price) targets for training."""
    subdivisions = safe_subdivisions(records)

    features: List[FeatureVector] = []
    targets: List[float] = []
    for record in records:
        target = math.log(record.price) if record.price > 0 else float("nan")
        if not math.isfinite(target) or target <= 0:
            continue
        features.append(extract_features(record, subdivisions))
        targets.append(target)

    feature_names = list(BASE_FEATURES)
    if any(LOT_FEATURE in f for f in features):
        feature_names.append(LOT_FEATURE)
    feature_names.extend(subdivision_feature(s) for s in subdivisions)

    return TrainingData(
        records=list(records),
        features=features,
        targets=targets,
        feature_names=feature_names,
        subdivisions=subdivisions,
    )


def feature_matrix(features: Sequence[FeatureVector], names: Sequence[str]) -> np.ndarray:
    """Rows of named features in column order; missing features are 0."""
    return np.array(
        [[f.get(name, 0.0) for name in names] for f in features],
        dtype=float,
    ).reshape(len(features), len(names))


# =============================================================================
# Ridge Regression
# =============================================================================


def ridge_fit(x: np.ndarray, y: np.ndarray, alpha: float) -> Tuple[float, np.ndarray]:
    """
    Closed-form ridge regression with an unpenalised intercept.

    Solves (XcᵀXc + αI) β = Xcᵀyc on mean-centred columns, which is the
    normal-equation solution with an intercept column excluded from the
    penalty; intercept = ȳ - x̄ᵀβ. The system is solved by LU
    factorisation with partial pivoting.

    Returns:
        (intercept, coefficients)

    Raises:
        ModelTrainingError: If the system is singular or yields non-finite
            coefficients
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)

    x_mean = x.mean(axis=0)
    y_mean = float(y.mean())
    xc = x - x_mean
    yc = y - y_mean

    gram = xc.T @ xc + alpha * np.eye(x.shape[1])
    rhs = xc.T @ yc

    try:
        beta = np.linalg.solve(gram, rhs)
    except np.linalg.LinAlgError as e:
        raise ModelTrainingError(f"Ridge regression failed - singular system: {e}") from e

    intercept = y_mean - float(x_mean @ beta)
    if not (np.all(np.isfinite(beta)) and math.isfinite(intercept)):
        raise ModelTrainingError("Ridge regression failed - non-finite coefficients")

    return intercept, beta


def rmse(x: np.ndarray, y: np.ndarray, intercept: float, beta: np.ndarray) -> float:
    residuals = (intercept + x @ beta) - y
    return float(np.sqrt(np.mean(residuals ** 2)))


def cross_validate_ridge(x: np.ndarray, y: np.ndarray, alpha: float, folds: int = CV_FOLDS) -> float:
    """
    K-fold CV RMSE in log space over contiguous folds.

    The last fold absorbs the remainder rows.
    """
    n = len(y)
    fold_size = n // folds
    fold_mse = []

    for fold in range(folds):
        start = fold * fold_size
        end = n if fold == folds - 1 else start + fold_size
        test = np.zeros(n, dtype=bool)
        test[start:end] = True

        intercept, beta = ridge_fit(x[~test], y[~test], alpha)
        residuals = (intercept + x[test] @ beta) - y[test]
        fold_mse.append(float(np.mean(residuals ** 2)))

    return math.sqrt(sum(fold_mse) / folds)


def select_alpha(x: np.ndarray, y: np.ndarray, alpha_grid: Sequence[float] = ALPHA_GRID) -> float:
    """Pick the grid alpha with the lowest CV RMSE (first wins ties)."""
    best_alpha = alpha_grid[0]
    best_error = math.inf

    for alpha in alpha_grid:
        try:
            cv_error = cross_validate_ridge(x, y, alpha)
        except ModelTrainingError as e:
            logger.debug("Ridge CV: alpha=%s failed: %s", alpha, e)
            continue
        logger.debug("Ridge CV: alpha=%s, RMSE=%.4f", alpha, cv_error)
        if cv_error < best_error:
            best_error = cv_error
            best_alpha = alpha

    if not math.isfinite(best_error):
        raise ModelTrainingError("Ridge cross-validation failed for every alpha")

    return best_alpha


def train_hedonic(sold_records: Sequence[CleanRecord]) -> HedonicModel:
    """
    Train the hedonic model on sold records.

    Args:
        sold_records: Cleaned records; only SOLD with positive price/sqft are used

    Returns:
        Trained HedonicModel

    Raises:
        InsufficientTrainingDataError: Fewer than 10 usable sold records
        ModelTrainingError: Singular or non-finite ridge solution
    """
    valid = [
        r for r in sold_records
        if r.status == ListingStatus.SOLD and r.price > 0 and r.sqft > 0
    ]
    if len(valid) < MIN_TRAINING_RECORDS:
        raise InsufficientTrainingDataError(
            f"Insufficient training data: {len(valid)} sold homes "
            f"(need at least {MIN_TRAINING_RECORDS})"
        )

    data = prepare_training_data(valid)
    if len(data.targets) < MIN_TRAINING_RECORDS:
        raise InsufficientTrainingDataError(
            f"Insufficient usable training rows: {len(data.targets)}"
        )

    x = data.design_matrix()
    y = np.asarray(data.targets, dtype=float)

    alpha = select_alpha(x, y)
    intercept, beta = ridge_fit(x, y, alpha)
    train_rmse = rmse(x, y, intercept, beta)

    logger.info(
        "Hedonic model trained: %d samples, alpha=%s, RMSE=%.4f",
        len(y), alpha, train_rmse,
    )

    return HedonicModel(
        coef={name: float(c) for name, c in zip(data.feature_names, beta)},
        intercept=intercept,
        alpha=alpha,
        rmse_log=train_rmse,
        features=list(data.feature_names),
        subdivisions=list(data.subdivisions),
        training_size=len(y),
    )


# =============================================================================
# Prediction
# =============================================================================


def predict_price_log(features: FeatureVector, model: HedonicModel) -> float:
    """
    Predict ln(price) from a feature vector.

    Only the model's own features contribute; a feature missing from the
    vector contributes 0.
    """
    prediction = model.intercept
    for name in model.features:
        prediction += model.coefficient(name) * features.get(name, 0.0)
    return prediction


def predict_price(record, model: HedonicModel) -> float:
    """Predict the dollar price of a record or subject."""
    features = extract_features(record, model.subdivisions)
    return math.exp(predict_price_log(features, model))
