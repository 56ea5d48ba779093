"""
Geometric verification of correspondences with a RANSAC fundamental matrix
and optional 8-point refinement.
"""

import cv2
import numpy as np
from typing import List, Optional, Sequence

from .base_classes import BaseFundamentalEstimator
from .core_data_structures import Candidate, VerificationResult, keypoints_to_points
from .exceptions import InsufficientCorrespondences, DegenerateGeometry, ConfigurationError
from .fundamental_estimation import OpenCVFundamentalEstimator, MIN_POINTS_8POINT
from .logger import get_logger

logger = get_logger("verifier")


def correspondence_points(matches: Sequence[Candidate],
                          keypoints1: Sequence[cv2.KeyPoint],
                          keypoints2: Sequence[cv2.KeyPoint]):
    """Index-aligned (N, 2) point arrays for a correspondence list"""
    points1 = keypoints_to_points(keypoints1, [m.queryIdx for m in matches])
    points2 = keypoints_to_points(keypoints2, [m.trainIdx for m in matches])
    return points1, points2


class GeometricVerifier:
    """
    Identify good matches using RANSAC on the fundamental matrix.

    Point pairs are built per call from the given correspondences and are
    never kept on the instance, so one verifier can be reused for any number
    of image pairs.
    """

    def __init__(self, estimator: Optional[BaseFundamentalEstimator] = None,
                 distance: float = 3.0, confidence: float = 0.99, refine: bool = True,
                 min_correspondences: int = MIN_POINTS_8POINT):
        """
        Args:
            estimator: Fundamental matrix estimator (OpenCV based by default)
            distance: Max distance to the epipolar line (pixels) for an inlier
            confidence: RANSAC confidence level (probability)
            refine: Re-estimate F with the 8-point algorithm on all inliers
            min_correspondences: Pairs required before the estimator is called
        """
        self.estimator = estimator if estimator is not None else OpenCVFundamentalEstimator()
        self.set_distance(distance)
        self.set_confidence(confidence)
        self.refine = bool(refine)
        self.min_correspondences = max(int(min_correspondences), MIN_POINTS_8POINT)

    def set_distance(self, distance: float):
        if distance <= 0:
            raise ConfigurationError(f"Distance to epipolar must be positive, got {distance}")
        self.distance = float(distance)

    def set_confidence(self, confidence: float):
        if not 0 < confidence < 1:
            raise ConfigurationError(f"Confidence must be in (0, 1), got {confidence}")
        self.confidence = float(confidence)

    def set_refine(self, flag: bool):
        self.refine = bool(flag)

    def verify(self, matches: List[Candidate],
               keypoints1: Sequence[cv2.KeyPoint],
               keypoints2: Sequence[cv2.KeyPoint]) -> VerificationResult:
        """
        Verify correspondences against epipolar geometry

        Args:
            matches: Symmetric correspondences (queryIdx into keypoints1,
                trainIdx into keypoints2)
            keypoints1: Keypoints of image 1
            keypoints2: Keypoints of image 2

        Returns:
            VerificationResult; is_valid is False (and the matrix None) when
            RANSAC found no usable model

        Raises:
            InsufficientCorrespondences: With fewer than 8 correspondences
        """
        if len(matches) < self.min_correspondences:
            raise InsufficientCorrespondences(len(matches), self.min_correspondences)

        points1, points2 = correspondence_points(matches, keypoints1, keypoints2)

        try:
            fundamental, inlier_mask = self.estimator.estimate_robust(
                points1, points2, self.distance, self.confidence
            )
        except DegenerateGeometry as e:
            logger.warning(f"Geometric verification failed: {e}")
            return self._invalid(len(matches))

        inlier_mask = np.asarray(inlier_mask, dtype=bool).ravel()
        if len(inlier_mask) != len(matches):
            raise ValueError(
                f"Estimator returned {len(inlier_mask)} mask entries for {len(matches)} pairs"
            )

        # extract the surviving (inliers) matches
        inliers = [m for m, keep in zip(matches, inlier_mask) if keep]
        logger.info(f"Number of matched points (after RANSAC): {len(inliers)}")

        if fundamental is None or not inliers:
            logger.warning("RANSAC found no inliers, fundamental matrix is unusable")
            return self._invalid(len(matches))

        refined = False
        if self.refine:
            if len(inliers) >= MIN_POINTS_8POINT:
                # The F matrix will be recomputed with all accepted matches
                inlier_points1, inlier_points2 = correspondence_points(inliers, keypoints1, keypoints2)
                try:
                    fundamental = self.estimator.estimate_exact(inlier_points1, inlier_points2)
                    refined = True
                except DegenerateGeometry as e:
                    logger.warning(f"Refinement failed, keeping RANSAC estimate: {e}")
            else:
                logger.debug(f"Only {len(inliers)} inliers, skipping 8-point refinement")

        return VerificationResult(
            fundamental_matrix=np.asarray(fundamental, dtype=np.float64),
            inliers=inliers,
            inlier_mask=inlier_mask,
            num_candidates=len(matches),
            refined=refined,
            is_valid=True
        )

    @staticmethod
    def _invalid(num_candidates: int) -> VerificationResult:
        return VerificationResult(
            fundamental_matrix=None,
            inliers=[],
            inlier_mask=np.zeros(num_candidates, dtype=bool),
            num_candidates=num_candidates,
            refined=False,
            is_valid=False
        )
