"""
Core data structures and enums for the robust matching system.

This module contains the data classes shared by the collaborators and the
filtering stages: candidate matches, feature sets, verification results and
the final match result.
"""

import cv2
import numpy as np
from typing import List, Dict, Optional, Sequence, Any
from dataclasses import dataclass, field
from enum import Enum


class DetectorType(Enum):
    """Enumeration of available detector types"""
    SIFT = "SIFT"
    ORB = "ORB"
    AKAZE = "AKAZE"
    BRISK = "BRISK"
    HARRIS = "Harris"
    GOODFEATURES = "GoodFeatures"


@dataclass
class Candidate:
    """A (queryIdx, trainIdx, distance) match candidate, same layout as cv2.DMatch"""
    queryIdx: int
    trainIdx: int
    distance: float
    imgIdx: int = 0

    @classmethod
    def from_cv2_dmatch(cls, match: cv2.DMatch) -> 'Candidate':
        return cls(
            queryIdx=int(match.queryIdx),
            trainIdx=int(match.trainIdx),
            distance=float(match.distance),
            imgIdx=int(match.imgIdx)
        )

    def to_cv2_dmatch(self) -> cv2.DMatch:
        """Convert to cv2.DMatch for drawing and OpenCV interop"""
        match = cv2.DMatch()
        match.queryIdx = self.queryIdx
        match.trainIdx = self.trainIdx
        match.distance = self.distance
        match.imgIdx = self.imgIdx
        return match


# One ordered neighbor list per query keypoint; cleared entries stay as []
NeighborLists = List[List[Candidate]]


@dataclass
class FeatureData:
    """Container for detection + extraction results of one image"""
    keypoints: List[cv2.KeyPoint]
    descriptors: Optional[np.ndarray]
    method: str = "unknown"
    detection_time: float = 0.0

    def __len__(self):
        return len(self.keypoints)

    def to_serializable(self) -> Dict:
        """Convert to serializable format"""
        return {
            'keypoints': keypoints_to_serializable(self.keypoints),
            'descriptors': self.descriptors.tolist() if self.descriptors is not None else None,
            'method': self.method,
            'detection_time': self.detection_time
        }


@dataclass
class VerificationResult:
    """Outcome of RANSAC verification (and optional refinement) of one correspondence set"""
    fundamental_matrix: Optional[np.ndarray]
    inliers: List[Candidate]
    inlier_mask: np.ndarray
    num_candidates: int
    refined: bool = False
    is_valid: bool = True

    @property
    def num_inliers(self) -> int:
        return len(self.inliers)

    @property
    def inlier_ratio(self) -> float:
        if self.num_candidates == 0:
            return 0.0
        return self.num_inliers / self.num_candidates


@dataclass
class RobustMatchResult:
    """
    Final result of RobustMatcher.match().

    Unpacks as ``F, matches, keypoints1, keypoints2``. When ``is_valid`` is
    False the geometric verification failed and ``fundamental_matrix`` is None;
    callers must check it (or the number of matches) before using the matrix.
    """
    fundamental_matrix: Optional[np.ndarray]
    matches: List[Candidate]
    keypoints1: List[cv2.KeyPoint]
    keypoints2: List[cv2.KeyPoint]
    is_valid: bool = True
    refined: bool = False
    stage_counts: Dict[str, int] = field(default_factory=dict)
    stage_times: Dict[str, float] = field(default_factory=dict)

    def __iter__(self):
        return iter((self.fundamental_matrix, self.matches, self.keypoints1, self.keypoints2))

    @property
    def num_matches(self) -> int:
        return len(self.matches)

    def to_cv2_matches(self, max_matches: Optional[int] = None) -> List[cv2.DMatch]:
        """Accepted matches as cv2.DMatch, best (smallest distance) first"""
        matches = sorted(self.matches, key=lambda m: m.distance)
        if max_matches is not None:
            matches = matches[:max_matches]
        return [m.to_cv2_dmatch() for m in matches]

    def to_serializable(self) -> Dict[str, Any]:
        """Convert to a JSON friendly dictionary (images are never included)"""
        return {
            'fundamental_matrix': (self.fundamental_matrix.tolist()
                                   if self.fundamental_matrix is not None else None),
            'matches': [
                {'queryIdx': m.queryIdx, 'trainIdx': m.trainIdx, 'distance': m.distance}
                for m in self.matches
            ],
            'keypoints1': keypoints_to_serializable(self.keypoints1),
            'keypoints2': keypoints_to_serializable(self.keypoints2),
            'is_valid': self.is_valid,
            'refined': self.refined,
            'stage_counts': dict(self.stage_counts),
            'stage_times': dict(self.stage_times)
        }


def keypoints_to_serializable(keypoints: List[cv2.KeyPoint]) -> List[Dict]:
    """Convert keypoints to serializable format"""
    return [
        {
            'pt': [float(kp.pt[0]), float(kp.pt[1])],
            'angle': float(kp.angle),
            'class_id': int(kp.class_id),
            'octave': int(kp.octave),
            'response': float(kp.response),
            'size': float(kp.size)
        }
        for kp in keypoints
    ]


def keypoints_from_serializable(keypoints_data: List[Dict]) -> List[cv2.KeyPoint]:
    """Convert serialized keypoints back to cv2.KeyPoint objects"""
    keypoints = []
    for kp_data in keypoints_data:
        kp = cv2.KeyPoint(
            x=float(kp_data['pt'][0]),
            y=float(kp_data['pt'][1]),
            size=float(kp_data['size']),
            angle=float(kp_data['angle']),
            response=float(kp_data['response']),
            octave=int(kp_data['octave']),
            class_id=int(kp_data['class_id'])
        )
        keypoints.append(kp)
    return keypoints


def keypoints_to_points(keypoints: Sequence[cv2.KeyPoint],
                        indices: Optional[Sequence[int]] = None) -> np.ndarray:
    """
    Gather keypoint locations into an (N, 2) float32 array

    Args:
        keypoints: Keypoint sequence of one image
        indices: Optional keypoint indices to gather, in order

    Returns:
        (N, 2) float32 array of (x, y) coordinates
    """
    if indices is None:
        indices = range(len(keypoints))
    points = [keypoints[i].pt for i in indices]
    if not points:
        return np.zeros((0, 2), dtype=np.float32)
    return np.asarray(points, dtype=np.float32).reshape(-1, 2)
