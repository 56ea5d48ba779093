"""
Tests for result export, correspondence extraction and visualization
"""

import json

import cv2
import numpy as np
import pytest

from RobustMatching import (
    Candidate,
    RobustMatchResult,
    extract_correspondences,
    draw_robust_matches,
    plot_epipolar_lines,
    save_match_result,
    load_image,
    keypoints_from_serializable,
)
from RobustMatching.utils import _make_json_serializable


@pytest.fixture
def match_result(two_view_scene, keypoints_from_points):
    scene = two_view_scene(num_inliers=12, num_outliers=0, seed=5)
    return RobustMatchResult(
        fundamental_matrix=scene.fundamental_matrix / scene.fundamental_matrix[2, 2],
        matches=[Candidate(i, i, float(i)) for i in range(12)],
        keypoints1=keypoints_from_points(scene.points1),
        keypoints2=keypoints_from_points(scene.points2),
        stage_counts={'symmetric': 12, 'inliers': 12},
        stage_times={'ransac': 0.01},
    )


def test_result_unpacks_like_a_tuple(match_result):
    F, matches, keypoints1, keypoints2 = match_result

    assert F is match_result.fundamental_matrix
    assert matches is match_result.matches
    assert len(keypoints1) == len(keypoints2) == 12


def test_extract_correspondences(match_result):
    points1, points2 = extract_correspondences(match_result)

    assert points1.shape == points2.shape == (12, 2)
    assert points1.dtype == np.float32
    assert tuple(points1[3]) == match_result.keypoints1[3].pt


def test_extract_correspondences_of_empty_result():
    result = RobustMatchResult(None, [], [], [], is_valid=False)
    points1, points2 = extract_correspondences(result)
    assert points1.shape == points2.shape == (0, 2)


def test_save_match_result(match_result, tmp_path):
    path = save_match_result(match_result, tmp_path / "out" / "result.json",
                             metadata={'image1': 'a.png', 'threshold': np.float32(1.5)})

    with open(path) as f:
        data = json.load(f)

    assert np.allclose(data['fundamental_matrix'], match_result.fundamental_matrix)
    assert len(data['matches']) == 12
    assert data['matches'][5] == {'queryIdx': 5, 'trainIdx': 5, 'distance': 5.0}
    assert data['is_valid'] is True
    assert data['stage_counts'] == {'symmetric': 12, 'inliers': 12}
    assert data['metadata'] == {'image1': 'a.png', 'threshold': 1.5}

    restored = keypoints_from_serializable(data['keypoints1'])
    assert restored[0].pt == pytest.approx(match_result.keypoints1[0].pt)


def test_invalid_result_serializes_without_matrix(tmp_path):
    path = save_match_result(RobustMatchResult(None, [], [], [], is_valid=False),
                             tmp_path / "invalid.json")
    data = json.loads(path.read_text())
    assert data['fundamental_matrix'] is None
    assert data['is_valid'] is False


def test_make_json_serializable():
    converted = _make_json_serializable({
        1: np.arange(3),
        'flag': np.bool_(True),
        'pairs': (np.int64(2), np.float64(0.5)),
        'candidate': Candidate(1, 2, 3.0),
    })

    assert converted == {
        '1': [0, 1, 2],
        'flag': True,
        'pairs': [2, 0.5],
        'candidate': {'queryIdx': 1, 'trainIdx': 2, 'distance': 3.0, 'imgIdx': 0},
    }

    with pytest.raises(TypeError):
        _make_json_serializable(object())


def test_to_cv2_matches_orders_by_distance(match_result):
    matches = match_result.to_cv2_matches(max_matches=3)

    assert [m.distance for m in matches] == [0.0, 1.0, 2.0]
    assert all(isinstance(m, cv2.DMatch) for m in matches)
    assert len(match_result.to_cv2_matches()) == 12


def test_draw_robust_matches(match_result):
    img1 = np.zeros((480, 640, 3), dtype=np.uint8)
    img2 = np.zeros((480, 600, 3), dtype=np.uint8)

    canvas = draw_robust_matches(img1, img2, match_result, max_matches=5)

    assert canvas.shape == (480, 1240, 3)
    assert canvas.any()


def test_plot_epipolar_lines(match_result, tmp_path):
    img = np.full((480, 640), 128, dtype=np.uint8)
    save_path = tmp_path / "epipolar.png"

    plot_epipolar_lines(img, img, match_result, max_lines=6, save_path=str(save_path))

    assert save_path.exists()


def test_plot_epipolar_lines_needs_valid_result():
    img = np.zeros((10, 10), dtype=np.uint8)
    with pytest.raises(ValueError):
        plot_epipolar_lines(img, img, RobustMatchResult(None, [], [], [], is_valid=False))


def test_load_image(tmp_path, textured_image):
    path = tmp_path / "texture.png"
    cv2.imwrite(str(path), textured_image)

    assert load_image(path).shape == textured_image.shape + (3,)
    assert load_image(path, grayscale=True).shape == textured_image.shape
    with pytest.raises(FileNotFoundError):
        load_image(tmp_path / "missing.png")
