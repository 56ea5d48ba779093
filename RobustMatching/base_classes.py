"""
Base classes and interfaces for the robust matcher's collaborators.

The matcher is polymorphic over four narrow capabilities: keypoint
detection, descriptor extraction, k-nearest-neighbor descriptor matching and
fundamental matrix estimation. Each is an abstract base class here; the
default OpenCV implementations live in traditional_detectors.py,
feature_matchers.py and fundamental_estimation.py.
"""

import cv2
import numpy as np
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple
from .core_data_structures import NeighborLists


class BaseFeatureDetector(ABC):
    """Abstract base class for all keypoint detectors"""

    def __init__(self, max_features: int = 5000, **kwargs):
        self.max_features = max_features
        self.name = self.__class__.__name__

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[cv2.KeyPoint]:
        """
        Detect keypoints in an image

        Args:
            image: Input image (BGR, RGB or grayscale)

        Returns:
            List of keypoints
        """
        pass

    def preprocess_image(self, image: np.ndarray) -> np.ndarray:
        """
        Preprocess image for feature detection

        Args:
            image: Input image

        Returns:
            Grayscale image
        """
        if len(image.shape) == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        return image

    def limit_keypoints(self, keypoints: List[cv2.KeyPoint]) -> List[cv2.KeyPoint]:
        """Keep the max_features strongest keypoints (by response)"""
        keypoints = list(keypoints)
        if self.max_features and len(keypoints) > self.max_features:
            keypoints.sort(key=lambda kp: kp.response, reverse=True)
            keypoints = keypoints[:self.max_features]
        return keypoints


class BaseDescriptorExtractor(ABC):
    """Abstract base class for descriptor extractors"""

    @abstractmethod
    def extract(self, image: np.ndarray,
                keypoints: List[cv2.KeyPoint]) -> Tuple[List[cv2.KeyPoint], Optional[np.ndarray]]:
        """
        Compute one descriptor per keypoint

        Extractors may drop keypoints they cannot describe (e.g. too close to
        the border), so the surviving keypoints are returned together with the
        descriptors. Row i of the descriptors belongs to keypoint i of the
        returned list.

        Args:
            image: Input image
            keypoints: Keypoints returned by a detector

        Returns:
            Tuple of (keypoints, descriptors)
        """
        pass

    @property
    def norm_type(self) -> int:
        """OpenCV norm that suits this extractor's descriptors"""
        return cv2.NORM_L2


class BaseDescriptorMatcher(ABC):
    """Abstract base class for k-nearest-neighbor descriptor matchers"""

    @abstractmethod
    def knn_match(self, descriptors_a: Optional[np.ndarray],
                  descriptors_b: Optional[np.ndarray], k: int = 2) -> NeighborLists:
        """
        Find the k nearest neighbors in descriptors_b of every row of descriptors_a

        Args:
            descriptors_a: Query descriptors (N, D)
            descriptors_b: Train descriptors (M, D)
            k: Number of neighbors per query

        Returns:
            One neighbor list per query row, ascending by distance, at most k long
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class BaseFundamentalEstimator(ABC):
    """Abstract base class for fundamental matrix estimators"""

    @abstractmethod
    def estimate_robust(self, points1: np.ndarray, points2: np.ndarray,
                        distance_threshold: float,
                        confidence: float) -> Tuple[Optional[np.ndarray], np.ndarray]:
        """
        Robust (RANSAC-family) estimation

        Args:
            points1: (N, 2) points in image 1
            points2: (N, 2) corresponding points in image 2
            distance_threshold: Max distance to epipolar line (pixels) for an inlier
            confidence: Probability that the returned model is outlier free

        Returns:
            Tuple of (3x3 fundamental matrix or None, boolean inlier mask of length N)

        Raises:
            DegenerateGeometry: If no model can be fitted
        """
        pass

    @abstractmethod
    def estimate_exact(self, points1: np.ndarray, points2: np.ndarray) -> Optional[np.ndarray]:
        """
        Non-robust estimation from all given points (8-point algorithm)

        Raises:
            DegenerateGeometry: If no model can be fitted
        """
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__
