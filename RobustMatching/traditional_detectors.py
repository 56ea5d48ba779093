"""
Traditional feature detectors and descriptor extractors (SIFT, ORB, AKAZE,
BRISK, Harris, Shi-Tomasi).

The OpenCV Feature2D based classes implement both the detector and the
extractor interface, so one instance can be plugged into both slots of the
robust matcher. The corner detectors only detect and must be paired with a
descriptor extractor.
"""

import cv2
import numpy as np
from typing import List, Optional, Tuple
from .base_classes import BaseFeatureDetector, BaseDescriptorExtractor


class OpenCVFeatures(BaseFeatureDetector, BaseDescriptorExtractor):
    """Detector + extractor backed by an OpenCV Feature2D object"""

    method = "Feature2D"

    def __init__(self, feature2d, max_features: int = 5000, norm: int = cv2.NORM_L2):
        super().__init__(max_features)
        self.feature2d = feature2d
        self._norm = norm

    def detect(self, image: np.ndarray) -> List[cv2.KeyPoint]:
        gray = self.preprocess_image(image)
        keypoints = self.feature2d.detect(gray, None)
        return self.limit_keypoints(keypoints)

    def extract(self, image: np.ndarray,
                keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        if not keypoints:
            return [], None
        gray = self.preprocess_image(image)
        keypoints, descriptors = self.feature2d.compute(gray, list(keypoints))
        return list(keypoints), descriptors

    @property
    def norm_type(self) -> int:
        return self._norm


class SIFTFeatures(OpenCVFeatures):
    """SIFT (Scale-Invariant Feature Transform) detector and extractor"""

    method = "SIFT"

    def __init__(self, max_features: int = 5000, contrast_threshold: float = 0.04,
                 edge_threshold: float = 10, sigma: float = 1.6):
        """
        Initialize SIFT

        Args:
            max_features: Maximum number of features to detect
            contrast_threshold: Threshold for filtering weak features
            edge_threshold: Threshold for filtering edge-like features
            sigma: Gaussian sigma for the first octave
        """
        super().__init__(
            cv2.SIFT_create(
                nfeatures=max_features,
                contrastThreshold=contrast_threshold,
                edgeThreshold=edge_threshold,
                sigma=sigma
            ),
            max_features=max_features,
            norm=cv2.NORM_L2
        )


class ORBFeatures(OpenCVFeatures):
    """ORB (Oriented FAST and Rotated BRIEF) detector and extractor"""

    method = "ORB"

    def __init__(self, max_features: int = 5000, scale_factor: float = 1.2,
                 n_levels: int = 8, edge_threshold: int = 31):
        """
        Initialize ORB

        Args:
            max_features: Maximum number of features to detect
            scale_factor: Pyramid decimation ratio
            n_levels: Number of pyramid levels
            edge_threshold: Size of border where features are not detected
        """
        super().__init__(
            cv2.ORB_create(
                nfeatures=max_features,
                scaleFactor=scale_factor,
                nlevels=n_levels,
                edgeThreshold=edge_threshold
            ),
            max_features=max_features,
            norm=cv2.NORM_HAMMING
        )


class AKAZEFeatures(OpenCVFeatures):
    """AKAZE (Accelerated-KAZE) detector and extractor"""

    method = "AKAZE"

    def __init__(self, max_features: int = 5000, threshold: float = 0.001,
                 n_octaves: int = 4):
        super().__init__(
            cv2.AKAZE_create(
                threshold=threshold,
                nOctaves=n_octaves,
                descriptor_type=cv2.AKAZE_DESCRIPTOR_MLDB
            ),
            max_features=max_features,
            norm=cv2.NORM_HAMMING
        )


class BRISKFeatures(OpenCVFeatures):
    """BRISK (Binary Robust Invariant Scalable Keypoints) detector and extractor"""

    method = "BRISK"

    def __init__(self, max_features: int = 5000, threshold: int = 30,
                 octaves: int = 3, pattern_scale: float = 1.0):
        super().__init__(
            cv2.BRISK_create(
                thresh=threshold,
                octaves=octaves,
                patternScale=pattern_scale
            ),
            max_features=max_features,
            norm=cv2.NORM_HAMMING
        )


class HarrisCornerDetector(BaseFeatureDetector):
    """Harris corner detector (detection only)"""

    method = "Harris"

    def __init__(self, max_features: int = 5000, quality_level: float = 0.01,
                 min_distance: float = 10, block_size: int = 3, k: float = 0.04,
                 keypoint_size: float = 10):
        """
        Initialize Harris corner detector

        Args:
            max_features: Maximum number of corners to detect
            quality_level: Parameter characterizing minimal accepted quality
            min_distance: Minimum possible Euclidean distance between corners
            block_size: Size of averaging block for computing derivative covariation
            k: Harris detector free parameter
            keypoint_size: Diameter given to the produced keypoints
        """
        super().__init__(max_features)
        self.quality_level = quality_level
        self.min_distance = min_distance
        self.block_size = block_size
        self.k = k
        self.keypoint_size = keypoint_size
        self.use_harris = True

    def detect(self, image: np.ndarray) -> List[cv2.KeyPoint]:
        gray = self.preprocess_image(image)

        corners = cv2.goodFeaturesToTrack(
            gray,
            maxCorners=self.max_features,
            qualityLevel=self.quality_level,
            minDistance=self.min_distance,
            blockSize=self.block_size,
            useHarrisDetector=self.use_harris,
            k=self.k
        )

        keypoints = []
        if corners is not None:
            for corner in corners:
                x, y = corner.ravel()
                keypoints.append(cv2.KeyPoint(x=float(x), y=float(y), size=self.keypoint_size))
        return keypoints


class GoodFeaturesToTrackDetector(HarrisCornerDetector):
    """Shi-Tomasi corner detector (detection only)"""

    method = "GoodFeatures"

    def __init__(self, max_features: int = 5000, quality_level: float = 0.01,
                 min_distance: float = 10, block_size: int = 3,
                 keypoint_size: float = 10):
        super().__init__(max_features, quality_level, min_distance, block_size,
                         keypoint_size=keypoint_size)
        self.use_harris = False


FEATURE_MAP = {
    'SIFT': SIFTFeatures,
    'ORB': ORBFeatures,
    'AKAZE': AKAZEFeatures,
    'BRISK': BRISKFeatures,
}

DETECTOR_MAP = dict(FEATURE_MAP, Harris=HarrisCornerDetector,
                    GoodFeatures=GoodFeaturesToTrackDetector)


def create_traditional_detector(detector_type: str, **kwargs) -> BaseFeatureDetector:
    """
    Factory function to create traditional keypoint detectors

    Args:
        detector_type: Type of detector ('SIFT', 'ORB', 'AKAZE', 'BRISK', 'Harris', 'GoodFeatures')
        **kwargs: Additional parameters for the detector

    Returns:
        Initialized detector instance

    Raises:
        ValueError: If detector_type is not supported
    """
    if detector_type not in DETECTOR_MAP:
        available = ', '.join(DETECTOR_MAP.keys())
        raise ValueError(f"Unknown detector type: {detector_type}. Available: {available}")
    return DETECTOR_MAP[detector_type](**kwargs)


def create_descriptor_extractor(extractor_type: str, **kwargs) -> BaseDescriptorExtractor:
    """
    Factory function to create descriptor extractors

    Args:
        extractor_type: Type of extractor ('SIFT', 'ORB', 'AKAZE', 'BRISK')
        **kwargs: Additional parameters for the extractor

    Raises:
        ValueError: If extractor_type is not supported
    """
    if extractor_type not in FEATURE_MAP:
        available = ', '.join(FEATURE_MAP.keys())
        raise ValueError(f"Unknown extractor type: {extractor_type}. Available: {available}")
    return FEATURE_MAP[extractor_type](**kwargs)
