"""
Shared fixtures: synthetic two-view scenes and a feature source that serves
precomputed keypoints and descriptors instead of running a detector.
"""

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set

import matplotlib
matplotlib.use("Agg")

import cv2
import numpy as np
import pytest

project_root = Path(__file__).parent.parent  # Go up from tests/ to project root
sys.path.insert(0, str(project_root))

from RobustMatching.base_classes import BaseFeatureDetector, BaseDescriptorExtractor


K = np.array([
    [800.0, 0.0, 320.0],
    [0.0, 800.0, 240.0],
    [0.0, 0.0, 1.0]
])


@dataclass
class SyntheticView:
    """Stands in for an image: the feature source reads its features from it"""
    keypoints: List[cv2.KeyPoint]
    descriptors: np.ndarray


@dataclass
class TwoViewScene:
    view1: SyntheticView
    view2: SyntheticView
    fundamental_matrix: Optional[np.ndarray]
    points1: np.ndarray
    points2: np.ndarray
    # indices into view1 of the pairs that satisfy the epipolar constraint
    inlier_ids: Set[int] = field(default_factory=set)


class SyntheticFeatures(BaseFeatureDetector, BaseDescriptorExtractor):
    """Detector + extractor returning the features stored on a SyntheticView"""

    method = "Synthetic"

    def detect(self, image):
        return list(image.keypoints)

    def extract(self, image, keypoints):
        return list(keypoints), image.descriptors


def rotation_y(degrees: float) -> np.ndarray:
    a = np.deg2rad(degrees)
    return np.array([
        [np.cos(a), 0.0, np.sin(a)],
        [0.0, 1.0, 0.0],
        [-np.sin(a), 0.0, np.cos(a)]
    ])


def skew(t: np.ndarray) -> np.ndarray:
    return np.array([
        [0.0, -t[2], t[1]],
        [t[2], 0.0, -t[0]],
        [-t[1], t[0], 0.0]
    ])


def project(X: np.ndarray, R: np.ndarray, t: np.ndarray) -> np.ndarray:
    cam = X @ R.T + t
    pix = cam @ K.T
    return pix[:, :2] / pix[:, 2:3]


def to_keypoints(points: np.ndarray) -> List[cv2.KeyPoint]:
    return [cv2.KeyPoint(x=float(x), y=float(y), size=5.0) for x, y in points]


def random_descriptors(rng: np.random.Generator, count: int) -> np.ndarray:
    return rng.uniform(0, 255, (count, 128)).astype(np.float32)


def build_views(points1: np.ndarray, points2: np.ndarray, rng: np.random.Generator,
                permute: bool = True):
    """
    Views where pair i carries the same descriptor in both images. The second
    view is shuffled so that keypoint indices differ between the images.

    Returns:
        (view1, view2, index in view2 of every view1 keypoint)
    """
    n = len(points1)
    descriptors = random_descriptors(rng, n)
    order = rng.permutation(n) if permute else np.arange(n)
    view1 = SyntheticView(to_keypoints(points1), descriptors)
    view2 = SyntheticView(to_keypoints(points2[order]), descriptors[order])
    position = np.empty(n, dtype=int)
    position[order] = np.arange(n)
    return view1, view2, position


def make_two_view_scene(num_inliers: int = 15, num_outliers: int = 5,
                        outlier_shift: float = 30.0, seed: int = 0) -> TwoViewScene:
    """
    General 3D scene seen by two cameras (10 degrees rotation about y plus a
    mostly sideways translation). Outliers are projections of extra points
    whose second-image location is pushed `outlier_shift` pixels off its
    epipolar line.
    """
    rng = np.random.default_rng(seed)
    R1, t1 = np.eye(3), np.zeros(3)
    R2, t2 = rotation_y(10.0), np.array([1.0, 0.1, 0.05])
    K_inv = np.linalg.inv(K)
    F = K_inv.T @ skew(t2) @ R2 @ K_inv

    def sample_points(count):
        return np.column_stack([
            rng.uniform(-1, 1, count),
            rng.uniform(-1, 1, count),
            rng.uniform(4, 8, count)
        ])

    X_in = sample_points(num_inliers)
    points1 = project(X_in, R1, t1)
    points2 = project(X_in, R2, t2)

    if num_outliers:
        X_out = sample_points(num_outliers)
        out1 = project(X_out, R1, t1)
        out2 = project(X_out, R2, t2)
        lines = np.column_stack([out1, np.ones(num_outliers)]) @ F.T
        normals = lines[:, :2] / np.linalg.norm(lines[:, :2], axis=1, keepdims=True)
        out2 = out2 + outlier_shift * normals
        points1 = np.vstack([points1, out1])
        points2 = np.vstack([points2, out2])

    view1, view2, _ = build_views(points1, points2, rng)
    return TwoViewScene(view1, view2, F, points1, points2, set(range(num_inliers)))


def make_identical_views(num_points: int = 60, seed: int = 0) -> TwoViewScene:
    """The same features in both images, in the same order"""
    rng = np.random.default_rng(seed)
    points = np.column_stack([rng.uniform(0, 640, num_points), rng.uniform(0, 480, num_points)])
    view1, view2, _ = build_views(points, points, rng, permute=False)
    return TwoViewScene(view1, view2, None, points, points, set(range(num_points)))


def make_planar_views(num_points: int = 40, seed: int = 0) -> TwoViewScene:
    """Second image related to the first by a homography (degenerate for F)"""
    rng = np.random.default_rng(seed)
    H = np.array([
        [1.05, 0.02, 10.0],
        [0.01, 0.98, -5.0],
        [1e-5, 2e-5, 1.0]
    ])
    points1 = np.column_stack([rng.uniform(0, 640, num_points), rng.uniform(0, 480, num_points)])
    mapped = np.column_stack([points1, np.ones(num_points)]) @ H.T
    points2 = mapped[:, :2] / mapped[:, 2:3]
    view1, view2, _ = build_views(points1, points2, rng)
    return TwoViewScene(view1, view2, None, points1, points2, set(range(num_points)))


@pytest.fixture
def synthetic_features():
    return SyntheticFeatures()


@pytest.fixture
def two_view_scene():
    return make_two_view_scene


@pytest.fixture
def identical_views():
    return make_identical_views


@pytest.fixture
def planar_views():
    return make_planar_views


@pytest.fixture
def identity_candidates():
    """Factory: candidates pairing keypoint i of image 1 with keypoint i of image 2"""
    from RobustMatching.core_data_structures import Candidate

    def factory(count):
        return [Candidate(i, i, 0.0) for i in range(count)]
    return factory


@pytest.fixture
def textured_image():
    """Smoothed random texture, rich in SIFT keypoints"""
    rng = np.random.default_rng(7)
    noise = rng.uniform(0, 255, (300, 400)).astype(np.uint8)
    image = cv2.GaussianBlur(noise, (0, 0), 2.0)
    return cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)


@pytest.fixture
def keypoints_from_points():
    return to_keypoints
