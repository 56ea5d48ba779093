"""
RobustMatcher: ratio test + symmetry test + RANSAC fundamental matrix.

    detect -> extract -> k-NN (both directions, k=2)
           -> ratio test (each direction) -> symmetry test
           -> RANSAC verification (+ optional 8-point refinement)

Each stage only ever shrinks the correspondence set. The matcher holds no
per-call state: only the policy parameters and the pluggable collaborators
live on the instance, so a configured matcher can be shared read-only
between threads matching different image pairs.
"""

import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

import numpy as np

from .base_classes import (
    BaseFeatureDetector,
    BaseDescriptorExtractor,
    BaseDescriptorMatcher,
    BaseFundamentalEstimator,
)
from .core_data_structures import FeatureData, RobustMatchResult
from .exceptions import ConfigurationError
from .feature_matchers import BruteForceKnnMatcher
from .filters import ratio_test, symmetry_test, count_valid_entries
from .fundamental_estimation import OpenCVFundamentalEstimator
from .geometric_verifier import GeometricVerifier
from .logger import get_logger, format_stage_counts
from .traditional_detectors import SIFTFeatures

logger = get_logger("matcher")

NUM_NEAREST_NEIGHBOURS = 2

TimingCallback = Callable[[str, float], None]


class RobustMatcher:
    """
    Match feature points between two images using the ratio test, the
    symmetry test and RANSAC on the fundamental matrix.

    Example:
        >>> matcher = RobustMatcher()
        >>> matcher.set_ratio(0.7)
        >>> F, matches, kp1, kp2 = matcher.match(img1, img2)
    """

    def __init__(self,
                 detector: Optional[BaseFeatureDetector] = None,
                 extractor: Optional[BaseDescriptorExtractor] = None,
                 descriptor_matcher: Optional[BaseDescriptorMatcher] = None,
                 estimator: Optional[BaseFundamentalEstimator] = None,
                 ratio: float = 0.65,
                 refine_f: bool = True,
                 distance: float = 3.0,
                 confidence: float = 0.99,
                 timing_callback: Optional[TimingCallback] = None):
        """
        Args:
            detector: Keypoint detector (SIFT by default)
            extractor: Descriptor extractor (the detector when it can extract,
                SIFT otherwise)
            descriptor_matcher: k-NN matcher (brute force with the extractor's norm)
            estimator: Fundamental matrix estimator (OpenCV by default)
            ratio: Max ratio between 1st and 2nd nearest neighbor distances
            refine_f: Recompute F with the 8-point algorithm on all inliers
            distance: Max distance to the epipolar line (pixels) in RANSAC
            confidence: RANSAC confidence level (probability)
            timing_callback: Optional callable(stage_name, seconds) notified after each stage
        """
        if detector is None:
            detector = SIFTFeatures()
        if extractor is None:
            extractor = detector if isinstance(detector, BaseDescriptorExtractor) else SIFTFeatures()
        self._default_matcher = descriptor_matcher is None
        if descriptor_matcher is None:
            descriptor_matcher = BruteForceKnnMatcher(extractor.norm_type)

        self.detector = detector
        self.extractor = extractor
        self.descriptor_matcher = descriptor_matcher
        self.verifier = GeometricVerifier(
            estimator=estimator if estimator is not None else OpenCVFundamentalEstimator(),
            distance=distance,
            confidence=confidence,
            refine=refine_f
        )
        self.set_ratio(ratio)
        self.timing_callback = timing_callback

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'RobustMatcher':
        """Build a matcher from a configuration dictionary (see config.py)"""
        from .config import create_robust_matcher
        return create_robust_matcher(config)

    def set_feature_detector(self, detector: BaseFeatureDetector):
        self.detector = detector

    def set_descriptor_extractor(self, extractor: BaseDescriptorExtractor):
        """
        Replace the descriptor extractor

        A matcher that was not given explicitly is rebuilt for the new
        extractor's norm (Hamming for binary descriptors).
        """
        self.extractor = extractor
        if self._default_matcher:
            self.descriptor_matcher = BruteForceKnnMatcher(extractor.norm_type)
        elif getattr(self.descriptor_matcher, 'norm_type', extractor.norm_type) != extractor.norm_type:
            logger.warning(f"Descriptor matcher norm {self.descriptor_matcher.norm_type} differs "
                           f"from the extractor norm {extractor.norm_type}")

    def set_descriptor_matcher(self, descriptor_matcher: BaseDescriptorMatcher):
        self.descriptor_matcher = descriptor_matcher
        self._default_matcher = False

    def set_fundamental_estimator(self, estimator: BaseFundamentalEstimator):
        self.verifier.estimator = estimator

    def set_min_distance_to_epipolar(self, distance: float):
        """Set the max distance (pixels) to the epipolar line in RANSAC"""
        self.verifier.set_distance(distance)

    def set_confidence_level(self, confidence: float):
        """Set the RANSAC confidence level"""
        self.verifier.set_confidence(confidence)

    def set_ratio(self, ratio: float):
        """Set the nearest-neighbor distance ratio threshold"""
        if not 0 < ratio < 1:
            raise ConfigurationError(f"Ratio must be in (0, 1), got {ratio}")
        self.ratio = float(ratio)

    def refine_fundamental(self, flag: bool):
        """Whether the F matrix is recomputed from all accepted matches"""
        self.verifier.set_refine(flag)

    def set_timing_callback(self, callback: Optional[TimingCallback]):
        self.timing_callback = callback

    @property
    def distance(self) -> float:
        return self.verifier.distance

    @property
    def confidence(self) -> float:
        return self.verifier.confidence

    @property
    def refine_f(self) -> bool:
        return self.verifier.refine

    @property
    def estimator(self) -> BaseFundamentalEstimator:
        return self.verifier.estimator

    def get_config(self) -> Dict[str, Any]:
        """Current policy parameters"""
        return {
            'ratio': self.ratio,
            'refine_f': self.refine_f,
            'distance': self.distance,
            'confidence': self.confidence,
            'detector': getattr(self.detector, 'method', self.detector.__class__.__name__),
            'extractor': getattr(self.extractor, 'method', self.extractor.__class__.__name__),
            'matcher': self.descriptor_matcher.name,
            'estimator': self.estimator.name,
        }

    # =========================================================================
    # Matching
    # =========================================================================

    @contextmanager
    def _timed(self, stage: str, stage_times: Dict[str, float]):
        start = time.perf_counter()
        yield
        elapsed = time.perf_counter() - start
        stage_times[stage] = elapsed
        logger.debug(f"{stage}: {elapsed:.4f}s")

        if self.timing_callback is not None:
            try:
                self.timing_callback(stage, elapsed)
            except Exception as e:
                logger.warning(f"Timing callback failed at stage '{stage}': {e}")

    def match(self, image1: np.ndarray, image2: np.ndarray) -> RobustMatchResult:
        """
        Match feature points using the ratio test, the symmetry test and RANSAC

        Args:
            image1: First image
            image2: Second image

        Returns:
            RobustMatchResult (unpacks as F, matches, keypoints1, keypoints2)

        Raises:
            InsufficientCorrespondences: Fewer than 8 symmetric matches survived
        """
        stage_times: Dict[str, float] = {}

        # 1a. Detection of the feature points
        with self._timed('detection', stage_times):
            keypoints1 = list(self.detector.detect(image1))
            keypoints2 = list(self.detector.detect(image2))

        logger.debug(f"Number of feature points: {len(keypoints1)} / {len(keypoints2)}")

        # 1b. Extraction of the descriptors
        with self._timed('extraction', stage_times):
            keypoints1, descriptors1 = self.extractor.extract(image1, keypoints1)
            keypoints2, descriptors2 = self.extractor.extract(image2, keypoints2)

        method = getattr(self.extractor, 'method', self.extractor.__class__.__name__)
        features1 = FeatureData(list(keypoints1), descriptors1, method=method)
        features2 = FeatureData(list(keypoints2), descriptors2, method=method)
        return self._match_features(features1, features2, stage_times)

    def match_features(self, features1: FeatureData, features2: FeatureData) -> RobustMatchResult:
        """
        Run matching and filtering on precomputed features

        Raises:
            InsufficientCorrespondences: Fewer than 8 symmetric matches survived
        """
        return self._match_features(features1, features2, {})

    def _match_features(self, features1: FeatureData, features2: FeatureData,
                        stage_times: Dict[str, float]) -> RobustMatchResult:
        keypoints1, keypoints2 = features1.keypoints, features2.keypoints
        stage_counts: Dict[str, int] = {
            'keypoints1': len(keypoints1),
            'keypoints2': len(keypoints2),
        }

        # 2. Match the two image descriptors, k=2 in both directions
        with self._timed('knn_matching', stage_times):
            matches1 = self.descriptor_matcher.knn_match(
                features1.descriptors, features2.descriptors, k=NUM_NEAREST_NEIGHBOURS)
            matches2 = self.descriptor_matcher.knn_match(
                features2.descriptors, features1.descriptors, k=NUM_NEAREST_NEIGHBOURS)
        stage_counts['raw1'] = count_valid_entries(matches1)
        stage_counts['raw2'] = count_valid_entries(matches2)

        # 3. Remove matches for which NN ratio is > than threshold
        with self._timed('ratio_test', stage_times):
            removed1 = ratio_test(matches1, self.ratio)
            removed2 = ratio_test(matches2, self.ratio)
        stage_counts['ratio1'] = len(matches1) - removed1
        stage_counts['ratio2'] = len(matches2) - removed2
        logger.debug(f"Number of matched points 1->2 (ratio test): {stage_counts['ratio1']}")
        logger.debug(f"Number of matched points 2->1 (ratio test): {stage_counts['ratio2']}")

        # 4. Remove non-symmetrical matches
        with self._timed('symmetry_test', stage_times):
            sym_matches = symmetry_test(matches1, matches2)
        stage_counts['symmetric'] = len(sym_matches)
        logger.debug(f"Number of matched points (symmetry test): {len(sym_matches)}")

        # 5. Validate matches using RANSAC
        with self._timed('ransac', stage_times):
            verification = self.verifier.verify(sym_matches, keypoints1, keypoints2)
        stage_counts['inliers'] = verification.num_inliers
        logger.info(f"Robust matching: {format_stage_counts(stage_counts)}")

        return RobustMatchResult(
            fundamental_matrix=verification.fundamental_matrix,
            matches=verification.inliers,
            keypoints1=keypoints1,
            keypoints2=keypoints2,
            is_valid=verification.is_valid,
            refined=verification.refined,
            stage_counts=stage_counts,
            stage_times=stage_times
        )
