"""
Configuration management for the robust matcher.

This module provides the default configuration, presets, validation and
JSON persistence for matcher configurations, plus a factory building a
RobustMatcher from a configuration dictionary.
"""

import copy
import json
import os
from typing import Dict, List, Any, Optional

from .core_data_structures import DetectorType
from .exceptions import ConfigurationError
from .logger import get_logger

logger = get_logger("config")


# =============================================================================
# Default Configurations
# =============================================================================

DEFAULT_CONFIG = {
    'detector': 'SIFT',
    'extractor': None,          # None: reuse the detector when it can describe
    'max_features': 5000,
    'detector_params': {},
    'matcher': 'bf',
    'matcher_params': {},       # bf without norm_type: extractor's norm
    'estimator': 'opencv',
    'estimator_params': {},
    'ratio': 0.65,
    'refine_f': True,
    'distance': 3.0,
    'confidence': 0.99,
}


PRESET_CONFIGS = {
    'fast': {
        'detector': 'ORB',
        'max_features': 1000,
        'detector_params': {
            'ORB': {'scale_factor': 1.5, 'n_levels': 6}
        },
        'matcher': 'bf',
        'matcher_params': {'norm_type': 'NORM_HAMMING'},
        'ratio': 0.75,
    },

    'balanced': {
        'detector': 'SIFT',
        'max_features': 5000,
        'detector_params': {
            'SIFT': {'contrast_threshold': 0.04}
        },
    },

    'accurate': {
        'detector': 'SIFT',
        'max_features': 8000,
        'detector_params': {
            'SIFT': {'contrast_threshold': 0.03}
        },
        'matcher': 'bf',
        'ratio': 0.6,
        'distance': 1.0,
        'confidence': 0.999,
    },

    'corners': {
        'detector': 'GoodFeatures',
        'extractor': 'SIFT',
        'max_features': 3000,
        'ratio': 0.7,
    },

    'reproducible': {
        'estimator': 'numpy',
        'estimator_params': {'max_iterations': 2000, 'seed': 0},
    },
}


PRESET_DESCRIPTIONS = {
    'fast': "ORB features with Hamming brute force matching, reduced feature count",
    'balanced': "SIFT features with the classic robust matcher defaults",
    'accurate': "More SIFT features, stricter ratio and a 1 pixel epipolar threshold",
    'corners': "Shi-Tomasi corners described with SIFT",
    'reproducible': "Seeded NumPy RANSAC for repeatable results",
}


VALID_MATCHERS = ['bf', 'bruteforce', 'flann']
VALID_ESTIMATORS = ['opencv', 'numpy']
DESCRIPTOR_METHODS = ['SIFT', 'ORB', 'AKAZE', 'BRISK']
BINARY_METHODS = ['ORB', 'AKAZE', 'BRISK']


# =============================================================================
# Configuration Functions
# =============================================================================

def get_default_config() -> Dict[str, Any]:
    """Get a copy of the default configuration"""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries

    Args:
        base_config: Base configuration
        override_config: Configuration to override base with

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def create_config_from_preset(preset: str, **overrides) -> Dict[str, Any]:
    """
    Create configuration from a preset

    Args:
        preset: Preset name (see get_available_presets())
        **overrides: Top-level keys overriding the preset

    Returns:
        Configuration dictionary

    Raises:
        ValueError: If preset is not available
    """
    if preset not in PRESET_CONFIGS:
        available = ', '.join(PRESET_CONFIGS.keys())
        raise ValueError(f"Unknown preset: {preset}. Available: {available}")

    config = merge_configs(DEFAULT_CONFIG, PRESET_CONFIGS[preset])
    return merge_configs(config, overrides)


def validate_config(config: Dict[str, Any]) -> Dict[str, List[str]]:
    """
    Validate configuration and return any issues

    Args:
        config: Configuration to validate

    Returns:
        Dictionary with validation results:
        {
            'errors': [list of error messages],
            'warnings': [list of warning messages]
        }
    """
    errors = []
    warnings = []

    valid_detectors = [d.value for d in DetectorType]

    detector = config.get('detector', DEFAULT_CONFIG['detector'])
    if detector not in valid_detectors:
        errors.append(f"Unknown detector: {detector}. Available: {valid_detectors}")

    extractor = config.get('extractor')
    if extractor is not None and extractor not in DESCRIPTOR_METHODS:
        errors.append(f"Unknown extractor: {extractor}. Available: {DESCRIPTOR_METHODS}")
    if extractor is None and detector in valid_detectors and detector not in DESCRIPTOR_METHODS:
        warnings.append(f"{detector} cannot compute descriptors, SIFT descriptors will be used")

    max_features = config.get('max_features', DEFAULT_CONFIG['max_features'])
    if not isinstance(max_features, int) or isinstance(max_features, bool) or max_features <= 0:
        errors.append("'max_features' must be a positive integer")

    for key in ('detector_params', 'matcher_params', 'estimator_params'):
        if key in config and not isinstance(config[key], dict):
            errors.append(f"'{key}' must be a dictionary")
    detector_params = config.get('detector_params', {})
    if isinstance(detector_params, dict):
        for name, params in detector_params.items():
            if not isinstance(params, dict):
                errors.append(f"Parameters for {name} must be a dictionary")

    matcher = str(config.get('matcher', DEFAULT_CONFIG['matcher'])).lower()
    if matcher not in VALID_MATCHERS:
        errors.append(f"'matcher' must be one of: {VALID_MATCHERS}")

    estimator = config.get('estimator', DEFAULT_CONFIG['estimator'])
    if estimator not in VALID_ESTIMATORS:
        errors.append(f"'estimator' must be one of: {VALID_ESTIMATORS}")

    ratio = config.get('ratio', DEFAULT_CONFIG['ratio'])
    if not isinstance(ratio, (int, float)) or not 0 < ratio < 1:
        errors.append("'ratio' must be a number in (0, 1)")
    elif ratio > 0.9:
        warnings.append(f"Ratio {ratio} is very permissive, expect many ambiguous matches")

    confidence = config.get('confidence', DEFAULT_CONFIG['confidence'])
    if not isinstance(confidence, (int, float)) or not 0 < confidence < 1:
        errors.append("'confidence' must be a number in (0, 1)")

    distance = config.get('distance', DEFAULT_CONFIG['distance'])
    if not isinstance(distance, (int, float)) or distance <= 0:
        errors.append("'distance' must be a positive number")
    elif distance > 10:
        warnings.append(f"Epipolar distance {distance}px is loose, outliers may survive RANSAC")

    if not isinstance(config.get('refine_f', True), bool):
        errors.append("'refine_f' must be a boolean")

    # Binary descriptors cannot go through a FLANN kd-tree
    descriptor_method = extractor or detector
    matcher_params = config.get('matcher_params', {})
    if matcher == 'flann' and descriptor_method in BINARY_METHODS and \
            isinstance(matcher_params, dict) and matcher_params.get('algorithm', 'kdtree') == 'kdtree':
        warnings.append(f"{descriptor_method} descriptors are binary, use FLANN algorithm 'lsh'")

    return {'errors': errors, 'warnings': warnings}


def save_config(config: Dict[str, Any], filepath: str):
    """
    Save configuration to JSON file

    Args:
        config: Configuration to save
        filepath: Path to save file
    """
    with open(filepath, 'w') as f:
        json.dump(config, f, indent=2)
    logger.info(f"Configuration saved to: {filepath}")


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from JSON file, merged over the defaults

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    with open(filepath, 'r') as f:
        config = json.load(f)

    logger.info(f"Configuration loaded from: {filepath}")
    return merge_configs(DEFAULT_CONFIG, config)


def get_available_presets() -> List[str]:
    """Get list of available preset configurations"""
    return list(PRESET_CONFIGS.keys())


def describe_preset(preset: str) -> str:
    return PRESET_DESCRIPTIONS.get(preset, "No description available")


# =============================================================================
# Factory
# =============================================================================

def create_robust_matcher(config: Optional[Dict[str, Any]] = None):
    """
    Build a RobustMatcher from a configuration dictionary

    Args:
        config: Configuration (missing keys fall back to DEFAULT_CONFIG)

    Returns:
        Configured RobustMatcher

    Raises:
        ConfigurationError: If the configuration has validation errors
    """
    from .feature_matchers import create_descriptor_matcher
    from .fundamental_estimation import create_fundamental_estimator
    from .robust_matcher import RobustMatcher
    from .traditional_detectors import create_traditional_detector, create_descriptor_extractor
    from .base_classes import BaseDescriptorExtractor

    config = merge_configs(DEFAULT_CONFIG, config or {})
    report = validate_config(config)
    for warning in report['warnings']:
        logger.warning(warning)
    if report['errors']:
        raise ConfigurationError("Invalid configuration: " + "; ".join(report['errors']))

    detector_name = config['detector']
    detector_params = config['detector_params']
    detector = create_traditional_detector(
        detector_name,
        max_features=config['max_features'],
        **detector_params.get(detector_name, {})
    )

    extractor_name = config['extractor']
    if extractor_name is None and isinstance(detector, BaseDescriptorExtractor):
        extractor = detector
    else:
        extractor_name = extractor_name or 'SIFT'
        extractor = create_descriptor_extractor(
            extractor_name,
            max_features=config['max_features'],
            **detector_params.get(extractor_name, {})
        )

    matcher_params = dict(config['matcher_params'])
    if config['matcher'].lower() in ('bf', 'bruteforce') and 'norm_type' not in matcher_params:
        matcher_params['norm_type'] = extractor.norm_type
    descriptor_matcher = create_descriptor_matcher(config['matcher'], **matcher_params)

    estimator = create_fundamental_estimator(config['estimator'], **config['estimator_params'])

    return RobustMatcher(
        detector=detector,
        extractor=extractor,
        descriptor_matcher=descriptor_matcher,
        estimator=estimator,
        ratio=config['ratio'],
        refine_f=config['refine_f'],
        distance=config['distance'],
        confidence=config['confidence']
    )
