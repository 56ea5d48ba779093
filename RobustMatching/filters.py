"""
Match filters: nearest-neighbor ratio test and symmetry (mutual best) test.

Both work on neighbor lists as returned by a k-NN descriptor matcher: one
list per query keypoint, ascending by distance. The ratio test clears
rejected lists in place and never removes them, so list i always belongs to
query keypoint i. The symmetry test relies on that alignment and skips
cleared lists.
"""

from typing import List
from .core_data_structures import Candidate, NeighborLists


def ratio_test(neighbor_lists: NeighborLists, ratio: float) -> int:
    """
    Clear matches for which the 1st/2nd nearest neighbor distance ratio is
    above the threshold.

    An entry is kept iff it has at least two neighbors and
    distance(rank 0) / distance(rank 1) <= ratio. Entries are cleared in
    place (left as empty lists), so the container keeps its length.

    Args:
        neighbor_lists: Neighbor lists of one matching direction (modified in place)
        ratio: Maximum accepted distance ratio

    Returns:
        Number of cleared entries
    """
    removed = 0
    for match_list in neighbor_lists:
        if len(match_list) > 1:
            best, second = match_list[0], match_list[1]
            if second.distance > 0:
                distance_ratio = best.distance / second.distance
            else:
                # Two neighbors at distance zero are indistinguishable
                distance_ratio = 1.0
            if distance_ratio > ratio:
                match_list.clear()
                removed += 1
        else:
            # does not have 2 neighbours
            match_list.clear()
            removed += 1
    return removed


def symmetry_test(matches1: NeighborLists, matches2: NeighborLists) -> List[Candidate]:
    """
    Keep the correspondences that are mutual best matches.

    (i, j) is kept iff the best 1->2 neighbor of i is j and the best 2->1
    neighbor of j is i. Entries with fewer than two neighbors (cleared by the
    ratio test) are ignored in both directions. Output follows the 1->2 order
    and carries the 1->2 distance.

    Args:
        matches1: Ratio-filtered neighbor lists, image 1 -> image 2
        matches2: Ratio-filtered neighbor lists, image 2 -> image 1

    Returns:
        Symmetric correspondences
    """
    # best 2->1 neighbor of every surviving image-2 keypoint
    reverse_best = {}
    for match_list in matches2:
        if len(match_list) < 2:
            continue
        best = match_list[0]
        reverse_best.setdefault(best.queryIdx, best.trainIdx)

    sym_matches = []
    for match_list in matches1:
        if len(match_list) < 2:
            continue
        best = match_list[0]
        if reverse_best.get(best.trainIdx) == best.queryIdx:
            sym_matches.append(Candidate(best.queryIdx, best.trainIdx, best.distance))
    return sym_matches


def count_valid_entries(neighbor_lists: NeighborLists) -> int:
    """Number of entries that survived filtering (non-empty neighbor lists)"""
    return sum(1 for match_list in neighbor_lists if match_list)
