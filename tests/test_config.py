"""
Tests for configuration presets, validation and the matcher factory
"""

import cv2
import pytest

from RobustMatching import (
    RobustMatcher,
    ORBFeatures,
    SIFTFeatures,
    GoodFeaturesToTrackDetector,
    NumpyRansacEstimator,
    FLANNKnnMatcher,
    ConfigurationError,
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


def test_default_config_is_valid():
    report = validate_config(get_default_config())
    assert report == {'errors': [], 'warnings': []}


def test_default_config_is_a_copy():
    config = get_default_config()
    config['detector_params']['SIFT'] = {'contrast_threshold': 0.1}
    assert get_default_config()['detector_params'] == {}


@pytest.mark.parametrize("preset", get_available_presets())
def test_presets_are_valid(preset):
    config = create_config_from_preset(preset)
    assert validate_config(config)['errors'] == []
    assert describe_preset(preset) != "No description available"


def test_preset_overrides():
    config = create_config_from_preset('accurate', ratio=0.7)
    assert config['ratio'] == 0.7
    assert config['distance'] == 1.0
    assert config['max_features'] == 8000


def test_unknown_preset():
    with pytest.raises(ValueError):
        create_config_from_preset('ultra')


def test_merge_configs_is_recursive():
    base = {'detector_params': {'SIFT': {'sigma': 1.6, 'contrast_threshold': 0.04}}, 'ratio': 0.65}
    merged = merge_configs(base, {'detector_params': {'SIFT': {'sigma': 2.0}}})

    assert merged['detector_params']['SIFT'] == {'sigma': 2.0, 'contrast_threshold': 0.04}
    assert base['detector_params']['SIFT']['sigma'] == 1.6


@pytest.mark.parametrize("override", [
    {'detector': 'SURF'},
    {'extractor': 'Harris'},
    {'max_features': 0},
    {'matcher': 'annoy'},
    {'estimator': 'lmeds'},
    {'ratio': 1.5},
    {'ratio': 0.0},
    {'confidence': 1.0},
    {'distance': 0},
    {'refine_f': 'yes'},
    {'matcher_params': 'flann'},
])
def test_validation_errors(override):
    config = merge_configs(get_default_config(), override)
    assert validate_config(config)['errors']


def test_validation_warnings():
    report = validate_config(merge_configs(get_default_config(), {'detector': 'Harris'}))
    assert report['errors'] == []
    assert any('cannot compute descriptors' in w for w in report['warnings'])

    report = validate_config(merge_configs(get_default_config(), {
        'detector': 'ORB', 'matcher': 'flann'
    }))
    assert any('lsh' in w for w in report['warnings'])

    report = validate_config(merge_configs(get_default_config(), {'ratio': 0.95, 'distance': 20.0}))
    assert report['errors'] == []
    assert len(report['warnings']) == 2


def test_save_and_load_config(tmp_path):
    path = tmp_path / "config.json"
    save_config({'detector': 'ORB', 'ratio': 0.7}, str(path))

    config = load_config(str(path))

    assert config['detector'] == 'ORB'
    assert config['ratio'] == 0.7
    # missing keys come from the defaults
    assert config['confidence'] == get_default_config()['confidence']


def test_load_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.json"))


def test_create_default_matcher():
    matcher = create_robust_matcher()

    assert isinstance(matcher, RobustMatcher)
    assert isinstance(matcher.detector, SIFTFeatures)
    assert matcher.extractor is matcher.detector
    assert matcher.descriptor_matcher.norm_type == cv2.NORM_L2
    assert matcher.ratio == 0.65


def test_create_fast_matcher():
    matcher = RobustMatcher.from_config(create_config_from_preset('fast'))

    assert isinstance(matcher.detector, ORBFeatures)
    assert matcher.descriptor_matcher.norm_type == cv2.NORM_HAMMING
    assert matcher.ratio == 0.75


def test_create_corner_matcher():
    matcher = create_robust_matcher(create_config_from_preset('corners'))

    assert isinstance(matcher.detector, GoodFeaturesToTrackDetector)
    assert isinstance(matcher.extractor, SIFTFeatures)
    assert matcher.descriptor_matcher.norm_type == cv2.NORM_L2


def test_corner_detector_without_extractor_falls_back_to_sift():
    matcher = create_robust_matcher({'detector': 'Harris'})
    assert isinstance(matcher.extractor, SIFTFeatures)


def test_create_reproducible_matcher():
    matcher = create_robust_matcher(create_config_from_preset('reproducible'))

    assert isinstance(matcher.estimator, NumpyRansacEstimator)
    assert matcher.estimator.seed == 0


def test_create_flann_matcher():
    matcher = create_robust_matcher({'matcher': 'flann', 'matcher_params': {'checks': 32}})
    assert isinstance(matcher.descriptor_matcher, FLANNKnnMatcher)


def test_invalid_config_raises():
    with pytest.raises(ConfigurationError):
        create_robust_matcher({'ratio': 2.0})
    # ConfigurationError is also a ValueError
    with pytest.raises(ValueError):
        create_robust_matcher({'detector': 'SURF'})
