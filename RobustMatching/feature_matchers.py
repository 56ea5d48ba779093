"""
k-nearest-neighbor descriptor matchers.

Both matchers return raw neighbor lists (no ratio test, no cross check):
filtering is the robust matcher's job.
"""

import cv2
import numpy as np
from typing import Optional
from .base_classes import BaseDescriptorMatcher
from .core_data_structures import Candidate, NeighborLists


def _empty_neighbor_lists(descriptors: Optional[np.ndarray]) -> NeighborLists:
    count = 0 if descriptors is None else len(descriptors)
    return [[] for _ in range(count)]


def _to_neighbor_lists(raw_matches, k: int) -> NeighborLists:
    neighbor_lists = []
    for match_list in raw_matches:
        candidates = sorted((Candidate.from_cv2_dmatch(m) for m in match_list),
                            key=lambda c: c.distance)
        neighbor_lists.append(candidates[:k])
    return neighbor_lists


class BruteForceKnnMatcher(BaseDescriptorMatcher):
    """Brute-force k-NN matcher (cv2.BFMatcher without cross check)"""

    def __init__(self, norm_type: int = cv2.NORM_L2):
        """
        Args:
            norm_type: Distance measurement type (cv2.NORM_L2, cv2.NORM_HAMMING, etc.)
        """
        self.norm_type = norm_type
        self.matcher = cv2.BFMatcher(norm_type, crossCheck=False)

    @property
    def name(self):
        return "BruteForce"

    def knn_match(self, descriptors_a, descriptors_b, k: int = 2) -> NeighborLists:
        if descriptors_a is None or descriptors_b is None or \
                len(descriptors_a) == 0 or len(descriptors_b) == 0:
            return _empty_neighbor_lists(descriptors_a)

        if self.norm_type in (cv2.NORM_L1, cv2.NORM_L2, cv2.NORM_L2SQR):
            descriptors_a = np.asarray(descriptors_a, dtype=np.float32)
            descriptors_b = np.asarray(descriptors_b, dtype=np.float32)

        raw_matches = self.matcher.knnMatch(descriptors_a, descriptors_b, k=k)
        return _to_neighbor_lists(raw_matches, k)


class FLANNKnnMatcher(BaseDescriptorMatcher):
    """FLANN-based approximate k-NN matcher"""

    def __init__(self, algorithm: str = 'kdtree', trees: int = 5, checks: int = 50):
        """
        Initialize FLANN matcher

        Args:
            algorithm: FLANN algorithm ('kdtree' for float descriptors, 'lsh' for binary)
            trees: Number of trees for kdtree algorithm
            checks: Number of checks for search
        """
        self.algorithm = algorithm

        if algorithm == 'kdtree':
            FLANN_INDEX_KDTREE = 1
            index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=trees)
        elif algorithm == 'lsh':
            FLANN_INDEX_LSH = 6
            index_params = dict(
                algorithm=FLANN_INDEX_LSH,
                table_number=12,
                key_size=20,
                multi_probe_level=2
            )
        else:
            raise ValueError(f"Unknown FLANN algorithm: {algorithm}. Available: kdtree, lsh")

        search_params = dict(checks=checks)
        self.matcher = cv2.FlannBasedMatcher(index_params, search_params)

    @property
    def name(self):
        return "FLANN"

    def knn_match(self, descriptors_a, descriptors_b, k: int = 2) -> NeighborLists:
        if descriptors_a is None or descriptors_b is None or \
                len(descriptors_a) == 0 or len(descriptors_b) == 0:
            return _empty_neighbor_lists(descriptors_a)

        if self.algorithm == 'kdtree':
            # FLANN kd-trees require float32
            descriptors_a = np.asarray(descriptors_a, dtype=np.float32)
            descriptors_b = np.asarray(descriptors_b, dtype=np.float32)

        raw_matches = self.matcher.knnMatch(descriptors_a, descriptors_b, k=k)
        return _to_neighbor_lists(raw_matches, k)


def create_descriptor_matcher(matcher_type: str = 'bf', **kwargs) -> BaseDescriptorMatcher:
    """
    Factory function to create k-NN descriptor matchers

    Args:
        matcher_type: 'bf' (brute force) or 'flann'
        **kwargs: Matcher parameters; for 'bf' norm_type may also be given as a
            name ('NORM_L2', 'NORM_HAMMING')

    Raises:
        ValueError: If matcher_type is not supported
    """
    matcher_type = matcher_type.lower()
    if matcher_type in ('bf', 'bruteforce'):
        norm_type = kwargs.pop('norm_type', cv2.NORM_L2)
        if isinstance(norm_type, str):
            if not hasattr(cv2, norm_type):
                raise ValueError(f"Unknown norm type: {norm_type}")
            norm_type = getattr(cv2, norm_type)
        return BruteForceKnnMatcher(norm_type=norm_type, **kwargs)
    if matcher_type == 'flann':
        return FLANNKnnMatcher(**kwargs)
    raise ValueError(f"Unknown matcher type: {matcher_type}. Available: bf, flann")


def auto_select_matcher(descriptors: Optional[np.ndarray]) -> BaseDescriptorMatcher:
    """Pick a brute-force matcher whose norm suits the descriptor dtype"""
    if descriptors is not None and descriptors.dtype == np.uint8:
        return BruteForceKnnMatcher(cv2.NORM_HAMMING)
    return BruteForceKnnMatcher(cv2.NORM_L2)
