"""
Utility functions for the robust matching system.

Image loading, correspondence extraction, visualization of matches and
epipolar lines, and JSON export of match results.
"""

import json
from dataclasses import is_dataclass, asdict
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import cv2
import numpy as np
import matplotlib.pyplot as plt

from .core_data_structures import RobustMatchResult, keypoints_to_points
from .logger import get_logger

logger = get_logger("utils")


def load_image(path: Union[str, Path], grayscale: bool = False) -> np.ndarray:
    """
    Read an image from disk

    Raises:
        FileNotFoundError: If the image cannot be read
    """
    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    image = cv2.imread(str(path), flags)
    if image is None:
        raise FileNotFoundError(f"Could not read image: {path}")
    return image


def extract_correspondences(result: RobustMatchResult) -> Tuple[np.ndarray, np.ndarray]:
    """
    Index-aligned (N, 2) point arrays of the accepted matches

    Args:
        result: Result of RobustMatcher.match()

    Returns:
        Tuple of (points in image 1, points in image 2)
    """
    points1 = keypoints_to_points(result.keypoints1, [m.queryIdx for m in result.matches])
    points2 = keypoints_to_points(result.keypoints2, [m.trainIdx for m in result.matches])
    return points1, points2


# =============================================================================
# Visualization
# =============================================================================

def draw_robust_matches(img1: np.ndarray, img2: np.ndarray, result: RobustMatchResult,
                        max_matches: Optional[int] = None) -> np.ndarray:
    """Draw the accepted matches side by side (cv2.drawMatches)"""
    return cv2.drawMatches(
        img1, result.keypoints1, img2, result.keypoints2,
        result.to_cv2_matches(max_matches), None,
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS
    )


def _line_endpoints(line: np.ndarray, width: int) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    a, b, c = line
    if abs(b) < 1e-12:
        if abs(a) < 1e-12:
            return None
        x = -c / a
        return (x, 0.0), (x, float(width))
    return (0.0, -c / b), (float(width), -(c + a * width) / b)


def plot_epipolar_lines(img1: np.ndarray, img2: np.ndarray, result: RobustMatchResult,
                        max_lines: int = 30, save_path: Optional[str] = None,
                        figsize: Tuple[int, int] = (15, 6)):
    """
    Plot matched points and their epipolar lines in both images

    Args:
        img1: First image
        img2: Second image
        result: A valid RobustMatchResult
        max_lines: Maximum number of correspondences to draw
        save_path: Save the figure there instead of showing it

    Returns:
        The matplotlib figure
    """
    if not result.is_valid or result.fundamental_matrix is None:
        raise ValueError("Cannot draw epipolar lines without a valid fundamental matrix")

    points1, points2 = extract_correspondences(result)
    points1, points2 = points1[:max_lines], points2[:max_lines]
    F = result.fundamental_matrix

    # lines in image 2 come from points of image 1 and vice versa
    lines2 = cv2.computeCorrespondEpilines(points1.reshape(-1, 1, 2), 1, F).reshape(-1, 3)
    lines1 = cv2.computeCorrespondEpilines(points2.reshape(-1, 1, 2), 2, F).reshape(-1, 3)

    fig, axes = plt.subplots(1, 2, figsize=figsize)
    panels = ((axes[0], img1, points1, lines1, "Image 1"),
              (axes[1], img2, points2, lines2, "Image 2"))
    for ax, img, points, lines, title in panels:
        if img.ndim == 3:
            ax.imshow(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
        else:
            ax.imshow(img, cmap='gray')
        width = img.shape[1]
        for point, line in zip(points, lines):
            endpoints = _line_endpoints(line, width)
            if endpoints is not None:
                (x0, y0), (x1, y1) = endpoints
                ax.plot([x0, x1], [y0, y1], linewidth=0.8)
            ax.plot(point[0], point[1], 'o', markersize=3)
        ax.set_xlim(0, width)
        ax.set_ylim(img.shape[0], 0)
        ax.set_title(f"{title} - {len(points)} epipolar lines")
        ax.axis('off')

    plt.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150)
        plt.close(fig)
        logger.info(f"Epipolar visualization saved to: {save_path}")
    else:
        plt.show()
    return fig


# =============================================================================
# Result export
# =============================================================================

def _make_json_serializable(obj: Any) -> Any:
    """
    Convert complex objects to JSON-serializable format

    Handles NumPy arrays and scalars, dataclasses and nested containers.
    """
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, dict):
        return {str(key): _make_json_serializable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [_make_json_serializable(item) for item in obj]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, (np.integer, np.floating)):
        return obj.item()
    if hasattr(obj, 'to_serializable'):
        return _make_json_serializable(obj.to_serializable())
    if is_dataclass(obj):
        return _make_json_serializable(asdict(obj))
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def save_match_result(result: RobustMatchResult, filepath: Union[str, Path],
                      metadata: Optional[dict] = None) -> Path:
    """
    Save a match result as JSON

    Args:
        result: Result of RobustMatcher.match()
        filepath: Output file
        metadata: Extra fields stored under 'metadata' (image paths, config...)

    Returns:
        Path of the written file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    payload = result.to_serializable()
    if metadata:
        payload['metadata'] = metadata

    with open(filepath, 'w') as f:
        json.dump(_make_json_serializable(payload), f, indent=2)

    logger.info(f"Match result saved to: {filepath}")
    return filepath
