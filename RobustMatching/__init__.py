"""
RobustMatching - Robust two-view feature matching

Finds geometrically consistent correspondences between two images and the
fundamental matrix relating them:

- Nearest-neighbor ratio test in both matching directions
- Symmetry (mutual best match) test
- RANSAC fundamental matrix verification with optional 8-point refinement
- Pluggable detectors, extractors, k-NN matchers and estimators

Quick Start:
    >>> from RobustMatching import RobustMatcher
    >>>
    >>> matcher = RobustMatcher()
    >>> result = matcher.match(img1, img2)
    >>> if result.is_valid:
    ...     F, matches, kp1, kp2 = result
    >>>
    >>> # Or from a preset
    >>> result = match_images(img1, img2, preset='fast')
"""

__version__ = '1.0.0'

# =============================================================================
# CORE DATA STRUCTURES
# =============================================================================

from .core_data_structures import (
    DetectorType,
    Candidate,
    FeatureData,
    VerificationResult,
    RobustMatchResult,
    keypoints_to_serializable,
    keypoints_from_serializable,
    keypoints_to_points,
)

from .exceptions import (
    RobustMatchingError,
    InsufficientCorrespondences,
    DegenerateGeometry,
    ConfigurationError,
)

# =============================================================================
# COLLABORATORS
# =============================================================================

from .base_classes import (
    BaseFeatureDetector,
    BaseDescriptorExtractor,
    BaseDescriptorMatcher,
    BaseFundamentalEstimator,
)

from .traditional_detectors import (
    SIFTFeatures,
    ORBFeatures,
    AKAZEFeatures,
    BRISKFeatures,
    HarrisCornerDetector,
    GoodFeaturesToTrackDetector,
    create_traditional_detector,
    create_descriptor_extractor,
)

from .feature_matchers import (
    BruteForceKnnMatcher,
    FLANNKnnMatcher,
    create_descriptor_matcher,
    auto_select_matcher,
)

from .fundamental_estimation import (
    OpenCVFundamentalEstimator,
    NumpyRansacEstimator,
    create_fundamental_estimator,
    eight_point_fundamental,
    normalize_points,
    enforce_rank_two,
    epipolar_distances,
    sampson_distances,
    ransac_iterations,
)

# =============================================================================
# PIPELINE
# =============================================================================

from .filters import (
    ratio_test,
    symmetry_test,
    count_valid_entries,
)

from .geometric_verifier import GeometricVerifier

from .robust_matcher import RobustMatcher

# =============================================================================
# CONFIGURATION, UTILITIES, LOGGING
# =============================================================================

from .config import (
    get_default_config,
    create_config_from_preset,
    merge_configs,
    validate_config,
    save_config,
    load_config,
    get_available_presets,
    describe_preset,
    create_robust_matcher,
)

from .utils import (
    load_image,
    extract_correspondences,
    draw_robust_matches,
    plot_epipolar_lines,
    save_match_result,
)

from .logger import (
    setup_logger,
    get_logger,
    configure_root_logger,
    disable_console_logging,
    set_level,
    format_stage_counts,
)


def match_images(img1, img2, preset: str = 'balanced', **overrides) -> RobustMatchResult:
    """
    Quick robust matching of two images

    Args:
        img1: First image (numpy array)
        img2: Second image (numpy array)
        preset: Configuration preset name
        **overrides: Configuration keys overriding the preset

    Returns:
        RobustMatchResult

    Raises:
        InsufficientCorrespondences: Fewer than 8 symmetric matches survived
    """
    matcher = create_robust_matcher(create_config_from_preset(preset, **overrides))
    return matcher.match(img1, img2)


__all__ = [
    # Data structures
    'DetectorType',
    'Candidate',
    'FeatureData',
    'VerificationResult',
    'RobustMatchResult',
    'keypoints_to_serializable',
    'keypoints_from_serializable',
    'keypoints_to_points',

    # Errors
    'RobustMatchingError',
    'InsufficientCorrespondences',
    'DegenerateGeometry',
    'ConfigurationError',

    # Collaborator interfaces
    'BaseFeatureDetector',
    'BaseDescriptorExtractor',
    'BaseDescriptorMatcher',
    'BaseFundamentalEstimator',

    # Detectors / extractors
    'SIFTFeatures',
    'ORBFeatures',
    'AKAZEFeatures',
    'BRISKFeatures',
    'HarrisCornerDetector',
    'GoodFeaturesToTrackDetector',
    'create_traditional_detector',
    'create_descriptor_extractor',

    # Matchers
    'BruteForceKnnMatcher',
    'FLANNKnnMatcher',
    'create_descriptor_matcher',
    'auto_select_matcher',

    # Estimation
    'OpenCVFundamentalEstimator',
    'NumpyRansacEstimator',
    'create_fundamental_estimator',
    'eight_point_fundamental',
    'normalize_points',
    'enforce_rank_two',
    'epipolar_distances',
    'sampson_distances',
    'ransac_iterations',

    # Pipeline
    'ratio_test',
    'symmetry_test',
    'count_valid_entries',
    'GeometricVerifier',
    'RobustMatcher',
    'match_images',

    # Configuration
    'get_default_config',
    'create_config_from_preset',
    'merge_configs',
    'validate_config',
    'save_config',
    'load_config',
    'get_available_presets',
    'describe_preset',
    'create_robust_matcher',

    # Utilities
    'load_image',
    'extract_correspondences',
    'draw_robust_matches',
    'plot_epipolar_lines',
    'save_match_result',

    # Logging
    'setup_logger',
    'get_logger',
    'configure_root_logger',
    'disable_console_logging',
    'set_level',
    'format_stage_counts',
]
