#!/usr/bin/env python3
"""
Robust Matching - Main Script

Matches two images with the ratio test, the symmetry test and RANSAC on the
fundamental matrix, then prints (and optionally saves) the result.

Usage:
    python run_robust_matching.py image1.jpg image2.jpg
    python run_robust_matching.py image1.jpg image2.jpg --preset accurate --output result.json
    python run_robust_matching.py image1.jpg image2.jpg --ratio 0.7 --distance 1.0 --visualize out.png
"""

import argparse
import sys

import cv2
import numpy as np

from RobustMatching import (
    create_config_from_preset,
    create_robust_matcher,
    configure_root_logger,
    format_stage_counts,
    get_available_presets,
    load_image,
    save_match_result,
    draw_robust_matches,
    plot_epipolar_lines,
    InsufficientCorrespondences,
    ConfigurationError,
)


def build_config(args) -> dict:
    overrides = {}
    if args.detector:
        overrides['detector'] = args.detector
    if args.extractor:
        overrides['extractor'] = args.extractor
    if args.matcher:
        overrides['matcher'] = args.matcher
    if args.estimator:
        overrides['estimator'] = args.estimator
    if args.max_features:
        overrides['max_features'] = args.max_features
    if args.ratio is not None:
        overrides['ratio'] = args.ratio
    if args.distance is not None:
        overrides['distance'] = args.distance
    if args.confidence is not None:
        overrides['confidence'] = args.confidence
    if args.no_refine:
        overrides['refine_f'] = False
    return create_config_from_preset(args.preset, **overrides)


def main():
    parser = argparse.ArgumentParser(description="Robust two-view feature matching")

    # Input/Output
    parser.add_argument('image1', type=str, help='Path to the first image')
    parser.add_argument('image2', type=str, help='Path to the second image')
    parser.add_argument('--output', type=str, default=None,
                        help='Save the match result as JSON')
    parser.add_argument('--visualize', type=str, default=None,
                        help='Save an image of the accepted matches')
    parser.add_argument('--epipolar', type=str, default=None,
                        help='Save a figure of the epipolar lines')

    # Configuration
    parser.add_argument('--preset', type=str, default='balanced',
                        choices=get_available_presets(),
                        help='Configuration preset')
    parser.add_argument('--detector', type=str, default=None,
                        help='Keypoint detector (SIFT, ORB, AKAZE, BRISK, Harris, GoodFeatures)')
    parser.add_argument('--extractor', type=str, default=None,
                        help='Descriptor extractor (SIFT, ORB, AKAZE, BRISK)')
    parser.add_argument('--matcher', type=str, default=None, choices=['bf', 'flann'],
                        help='k-NN descriptor matcher')
    parser.add_argument('--estimator', type=str, default=None, choices=['opencv', 'numpy'],
                        help='Fundamental matrix estimator')
    parser.add_argument('--max-features', type=int, default=None,
                        help='Maximum number of keypoints per image')
    parser.add_argument('--ratio', type=float, default=None,
                        help='Max ratio between 1st and 2nd nearest neighbor distances')
    parser.add_argument('--distance', type=float, default=None,
                        help='Max distance to epipolar line in pixels (RANSAC)')
    parser.add_argument('--confidence', type=float, default=None,
                        help='RANSAC confidence level')
    parser.add_argument('--no-refine', action='store_true',
                        help='Keep the RANSAC fundamental matrix (no 8-point refinement)')

    # Logging
    parser.add_argument('--verbose', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Log to file')

    args = parser.parse_args()

    logger = configure_root_logger(level='DEBUG' if args.verbose else 'INFO',
                                   log_file=args.log_file)

    try:
        config = build_config(args)
        matcher = create_robust_matcher(config)
    except (ConfigurationError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        image1 = load_image(args.image1)
        image2 = load_image(args.image2)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    try:
        result = matcher.match(image1, image2)
    except InsufficientCorrespondences as e:
        logger.error(str(e))
        return 1

    print("=" * 70)
    print("ROBUST MATCHING")
    print("=" * 70)
    print(f"Images: {args.image1} <-> {args.image2}")
    print(f"Stages: {format_stage_counts(result.stage_counts)}")
    for stage, seconds in result.stage_times.items():
        print(f"  {stage:<14} {seconds:.3f}s")

    if not result.is_valid:
        print("Geometric verification failed: no usable fundamental matrix")
        return 1

    with np.printoptions(precision=6, suppress=True):
        print(f"Fundamental matrix ({'refined' if result.refined else 'RANSAC'}):")
        print(result.fundamental_matrix)

    if args.output:
        save_match_result(result, args.output, metadata={
            'image1': args.image1,
            'image2': args.image2,
            'config': config,
        })

    if args.visualize:
        cv2.imwrite(args.visualize, draw_robust_matches(image1, image2, result))
        logger.info(f"Match visualization saved to: {args.visualize}")

    if args.epipolar:
        plot_epipolar_lines(image1, image2, result, save_path=args.epipolar)

    return 0


if __name__ == "__main__":
    sys.exit(main())
