"""
Fundamental matrix estimation.

Two interchangeable estimators are provided:

- OpenCVFundamentalEstimator wraps cv2.findFundamentalMat (FM_RANSAC for the
  robust stage, FM_8POINT for refinement). This is the default. Sets too
  small for OpenCV's RANSAC are handed to the NumPy loop.
- NumpyRansacEstimator is a self-contained RANSAC loop around the normalized
  8-point algorithm. It is seedable, which makes it handy for reproducible
  experiments and tests.

The module also exposes the geometric helpers both rely on: Hartley point
normalization, the normalized 8-point algorithm with rank-2 enforcement,
epipolar and Sampson distances and the adaptive RANSAC iteration bound.
"""

import math
import cv2
import numpy as np
from typing import Optional, Tuple
from .base_classes import BaseFundamentalEstimator
from .exceptions import DegenerateGeometry
from .logger import get_logger

logger = get_logger("estimation")

MIN_POINTS_8POINT = 8

# cv2.findFundamentalMat silently switches FM_RANSAC to LMedS below this
# count, and LMedS ignores the distance threshold
MIN_POINTS_OPENCV_RANSAC = 15


# =============================================================================
# Geometry helpers
# =============================================================================

def _as_points(points: np.ndarray) -> np.ndarray:
    return np.asarray(points, dtype=np.float64).reshape(-1, 2)


def _homogeneous(points: np.ndarray) -> np.ndarray:
    return np.hstack([points, np.ones((len(points), 1))])


def normalize_points(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Hartley normalization: move the centroid to the origin and scale so the
    mean distance from it is sqrt(2).

    Returns:
        Tuple of (normalized (N, 2) points, 3x3 transform T with x_n = T x)
    """
    points = _as_points(points)
    centroid = points.mean(axis=0)
    mean_dist = np.mean(np.linalg.norm(points - centroid, axis=1))
    scale = math.sqrt(2) / mean_dist if mean_dist > 0 else 1.0

    T = np.array([
        [scale, 0.0, -scale * centroid[0]],
        [0.0, scale, -scale * centroid[1]],
        [0.0, 0.0, 1.0]
    ])
    normalized = (points - centroid) * scale
    return normalized, T


def enforce_rank_two(F: np.ndarray) -> np.ndarray:
    """Project a 3x3 matrix onto the closest rank-2 matrix (Frobenius norm)"""
    U, S, Vt = np.linalg.svd(F)
    S[2] = 0.0
    return U @ np.diag(S) @ Vt


def eight_point_fundamental(points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """
    Normalized 8-point algorithm.

    Solves x2^T F x1 = 0 in the least squares sense for all given pairs,
    enforces rank 2 and undoes the normalization. The result is scaled so
    that F[2, 2] == 1 when that entry is not (numerically) zero, otherwise
    to unit Frobenius norm.

    Raises:
        DegenerateGeometry: With fewer than 8 point pairs
    """
    points1 = _as_points(points1)
    points2 = _as_points(points2)
    if len(points1) != len(points2):
        raise ValueError(f"Point sets differ in length: {len(points1)} vs {len(points2)}")
    if len(points1) < MIN_POINTS_8POINT:
        raise DegenerateGeometry(
            f"8-point algorithm needs at least {MIN_POINTS_8POINT} pairs, got {len(points1)}"
        )

    p1, T1 = normalize_points(points1)
    p2, T2 = normalize_points(points2)

    x1, y1 = p1[:, 0], p1[:, 1]
    x2, y2 = p2[:, 0], p2[:, 1]
    A = np.column_stack([
        x2 * x1, x2 * y1, x2,
        y2 * x1, y2 * y1, y2,
        x1, y1, np.ones(len(p1))
    ])

    _, _, Vt = np.linalg.svd(A)
    F = enforce_rank_two(Vt[-1].reshape(3, 3))
    F = T2.T @ F @ T1

    norm = np.linalg.norm(F)
    if norm == 0:
        raise DegenerateGeometry("8-point algorithm produced a zero matrix")
    if abs(F[2, 2]) > 1e-8 * norm:
        return F / F[2, 2]
    return F / norm


def epipolar_distances(F: np.ndarray, points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """
    Per-pair distance (pixels) to the epipolar lines.

    For every pair the larger of the two point-to-line distances is returned:
    x2 to the line F x1 in image 2, and x1 to the line F^T x2 in image 1.
    """
    h1 = _homogeneous(_as_points(points1))
    h2 = _homogeneous(_as_points(points2))

    lines2 = h1 @ F.T
    lines1 = h2 @ F
    residual = np.abs(np.sum(h2 * lines2, axis=1))

    norm2 = np.maximum(np.hypot(lines2[:, 0], lines2[:, 1]), 1e-12)
    norm1 = np.maximum(np.hypot(lines1[:, 0], lines1[:, 1]), 1e-12)
    return np.maximum(residual / norm2, residual / norm1)


def sampson_distances(F: np.ndarray, points1: np.ndarray, points2: np.ndarray) -> np.ndarray:
    """First-order geometric (Sampson) error per pair, in pixels"""
    h1 = _homogeneous(_as_points(points1))
    h2 = _homogeneous(_as_points(points2))

    Fx1 = h1 @ F.T
    Ftx2 = h2 @ F
    residual = np.sum(h2 * Fx1, axis=1)
    denom = Fx1[:, 0] ** 2 + Fx1[:, 1] ** 2 + Ftx2[:, 0] ** 2 + Ftx2[:, 1] ** 2
    return np.abs(residual) / np.sqrt(np.maximum(denom, 1e-24))


def ransac_iterations(confidence: float, inlier_ratio: float,
                      sample_size: int = MIN_POINTS_8POINT,
                      max_iterations: int = 2000) -> int:
    """
    Number of RANSAC iterations needed to draw at least one outlier-free
    sample with probability `confidence`: log(1 - p) / log(1 - w^s).
    """
    confidence = min(max(confidence, 0.0), 1.0 - 1e-12)
    if inlier_ratio <= 0:
        return max_iterations
    if inlier_ratio >= 1:
        return 1

    outlier_free = inlier_ratio ** sample_size
    denom = math.log1p(-outlier_free)
    if denom >= 0:
        return max_iterations
    needed = math.ceil(math.log1p(-confidence) / denom)
    return int(min(max(needed, 1), max_iterations))


# =============================================================================
# Estimators
# =============================================================================

class OpenCVFundamentalEstimator(BaseFundamentalEstimator):
    """
    cv2.findFundamentalMat based estimator

    With fewer than 15 pairs OpenCV would not run RANSAC at all, so those
    small sets go through NumpyRansacEstimator (seeded with `seed`), which
    applies the same distance threshold.
    """

    def __init__(self, max_iters: int = 2000, seed: Optional[int] = 0):
        self.max_iters = max_iters
        self.seed = seed

    @property
    def name(self):
        return "OpenCV"

    def estimate_robust(self, points1, points2, distance_threshold, confidence):
        points1 = np.asarray(points1, dtype=np.float32).reshape(-1, 2)
        points2 = np.asarray(points2, dtype=np.float32).reshape(-1, 2)

        if len(points1) < MIN_POINTS_OPENCV_RANSAC:
            logger.debug(f"{len(points1)} pairs, below OpenCV's RANSAC minimum: "
                         f"using the NumPy RANSAC loop")
            small_set = NumpyRansacEstimator(max_iterations=self.max_iters, seed=self.seed)
            return small_set.estimate_robust(points1, points2, distance_threshold, confidence)

        try:
            F, mask = cv2.findFundamentalMat(
                points1, points2,
                method=cv2.FM_RANSAC,
                ransacReprojThreshold=distance_threshold,
                confidence=confidence,
                maxIters=self.max_iters
            )
        except cv2.error as e:
            raise DegenerateGeometry(f"RANSAC fundamental matrix estimation failed: {e}") from e

        if F is None or mask is None or F.size == 0:
            raise DegenerateGeometry("RANSAC found no fundamental matrix")

        # 7-point fallbacks can stack up to three solutions
        F = F[:3, :3]
        return F, mask.ravel().astype(bool)

    def estimate_exact(self, points1, points2):
        points1 = np.asarray(points1, dtype=np.float32).reshape(-1, 2)
        points2 = np.asarray(points2, dtype=np.float32).reshape(-1, 2)

        try:
            F, _ = cv2.findFundamentalMat(points1, points2, method=cv2.FM_8POINT)
        except cv2.error as e:
            raise DegenerateGeometry(f"8-point fundamental matrix estimation failed: {e}") from e

        if F is None or F.size == 0:
            raise DegenerateGeometry("8-point algorithm found no fundamental matrix")
        return F[:3, :3]


class NumpyRansacEstimator(BaseFundamentalEstimator):
    """
    RANSAC around the normalized 8-point algorithm.

    Each iteration samples 8 pairs, fits a candidate matrix and counts the
    pairs whose epipolar distance is within the threshold. The iteration
    budget shrinks as better models are found (see ransac_iterations). The
    best model is finally re-fitted on its whole inlier set and kept if the
    re-fit supports at least as many pairs.
    """

    def __init__(self, max_iterations: int = 2000, seed: Optional[int] = None):
        self.max_iterations = max_iterations
        self.seed = seed

    @property
    def name(self):
        return "NumpyRANSAC"

    def estimate_robust(self, points1, points2, distance_threshold, confidence):
        points1 = _as_points(points1)
        points2 = _as_points(points2)
        n = len(points1)
        if n < MIN_POINTS_8POINT:
            raise DegenerateGeometry(
                f"RANSAC needs at least {MIN_POINTS_8POINT} pairs, got {n}"
            )

        rng = np.random.default_rng(self.seed)
        best_F = None
        best_mask = np.zeros(n, dtype=bool)
        best_count = 0

        iterations = self.max_iterations
        i = 0
        while i < iterations:
            i += 1
            sample = rng.choice(n, MIN_POINTS_8POINT, replace=False)
            try:
                F = eight_point_fundamental(points1[sample], points2[sample])
            except DegenerateGeometry:
                continue

            mask = epipolar_distances(F, points1, points2) <= distance_threshold
            count = int(mask.sum())
            if count > best_count:
                best_F, best_mask, best_count = F, mask, count
                iterations = min(iterations, ransac_iterations(
                    confidence, count / n, MIN_POINTS_8POINT, self.max_iterations))

        logger.debug(f"RANSAC stopped after {i} iterations with {best_count}/{n} inliers")

        if best_F is None or best_count == 0:
            raise DegenerateGeometry("RANSAC found no model with inlier support")

        if best_count >= MIN_POINTS_8POINT:
            refit = eight_point_fundamental(points1[best_mask], points2[best_mask])
            refit_mask = epipolar_distances(refit, points1, points2) <= distance_threshold
            if refit_mask.sum() >= best_count:
                best_F, best_mask = refit, refit_mask

        return best_F, best_mask

    def estimate_exact(self, points1, points2):
        return eight_point_fundamental(points1, points2)


def create_fundamental_estimator(estimator_type: str = 'opencv', **kwargs) -> BaseFundamentalEstimator:
    """
    Factory function for fundamental matrix estimators

    Args:
        estimator_type: 'opencv' or 'numpy'
        **kwargs: Estimator parameters

    Raises:
        ValueError: If estimator_type is not supported
    """
    estimator_map = {
        'opencv': OpenCVFundamentalEstimator,
        'numpy': NumpyRansacEstimator,
    }
    if estimator_type not in estimator_map:
        available = ', '.join(estimator_map.keys())
        raise ValueError(f"Unknown estimator type: {estimator_type}. Available: {available}")
    return estimator_map[estimator_type](**kwargs)
