"""Non-maximum suppression of overlapping candidate detections.

Every mode works on ``(order, Detection)`` items, ``order`` being the
position of the candidate in the input. Sorting is always by descending score
and then by input position, which keeps results deterministic.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..config.defaults import resolve_nms_options
from ..config.options import NmsOptions, NmsType, OverlapDenominator, is_set
from ..config.validation import OptionsValidator
from ..core.entities import Detection
from ..core.exceptions import ConfigError
from ..utils.geometry import intersection_area, overlap_matrix, overlap_with_union, resize_box

logger = logging.getLogger(__name__)

Item = Tuple[int, Detection]
SuppressFn = Callable[[List[Item], NmsOptions], List[Item]]

_MS_MAX_ITERS = 100
_MS_TOLERANCE = 1e-5


def _by_score(items: Sequence[Item]) -> List[Item]:
    return sorted(items, key=lambda it: (-it[1].score, it[0]))


def _boxes(items: Sequence[Item]) -> np.ndarray:
    return np.array([it[1].bbox for it in items], dtype=np.float64).reshape(-1, 4)


def nms_max(items: List[Item], opts: NmsOptions) -> List[Item]:
    """Greedy suppression against each accepted box separately."""
    items = _by_score(items)
    ovr = overlap_matrix(_boxes(items), opts.ovr_dnm)
    suppressed = np.zeros(len(items), dtype=bool)
    kept = []
    for i, item in enumerate(items):
        if suppressed[i]:
            continue
        kept.append(item)
        suppressed |= ovr[i] > opts.overlap
    return kept


def nms_maxg(items: List[Item], opts: NmsOptions) -> List[Item]:
    """Greedy suppression against the union of accepted boxes touching the candidate."""
    kept: List[Item] = []
    for item in _by_score(items):
        box = item[1].bbox
        group = [k[1].bbox for k in kept if intersection_area(k[1].bbox, box) > 0]
        if group and overlap_with_union(box, group, opts.ovr_dnm) > opts.overlap:
            continue
        kept.append(item)
    return kept


def _ms_kernel(pts: np.ndarray, bw: np.ndarray, ws: np.ndarray, x: np.ndarray) -> np.ndarray:
    """Weighted Gaussian kernel truncated at one bandwidth."""
    d2 = np.sum(((pts - x) / bw) ** 2, axis=1)
    return np.where(d2 < 1.0, ws * np.exp(-d2), 0.0)


def _ms_scale(mode: np.ndarray, radii: np.ndarray) -> np.ndarray:
    return radii * np.array([2.0 ** mode[2], 2.0 ** mode[3], 1.0, 1.0])


def nms_ms(items: List[Item], opts: NmsOptions) -> List[Item]:
    """Mean shift in ``(cx, cy, log2 w, log2 h)`` with per-candidate bandwidths.

    Every candidate is shifted to its density mode; the kernel only reaches
    one bandwidth, and modes within one bandwidth of a heavier mode (measured
    with either mode's bandwidth) are merged into it. Surviving modes are
    therefore outside each other's support, so running the suppression again
    leaves them in place. Each detection is scored by the density at its mode.
    """
    items = _by_score(items)
    boxes = _boxes(items)
    w = np.maximum(boxes[:, 2], 1e-12)
    h = np.maximum(boxes[:, 3], 1e-12)
    pts = np.stack([boxes[:, 0] + w / 2, boxes[:, 1] + h / 2, np.log2(w), np.log2(h)], axis=1)
    radii = np.asarray(opts.radii, dtype=np.float64)
    bw = radii[None] * np.stack([w, h, np.ones_like(w), np.ones_like(h)], axis=1)
    ws = np.array([it[1].score for it in items], dtype=np.float64) - opts.thr

    modes = np.empty_like(pts)
    weights = np.empty(len(items))
    for i in range(len(items)):
        x = pts[i].copy()
        for _ in range(_MS_MAX_ITERS):
            k = _ms_kernel(pts, bw, ws, x)
            total = k.sum()
            if total <= 0:
                break
            x_new = (k[:, None] * pts).sum(axis=0) / total
            done = np.max(np.abs(x_new - x)) < _MS_TOLERANCE
            x = x_new
            if done:
                break
        modes[i] = x
        weights[i] = _ms_kernel(pts, bw, ws, x).sum()

    order = sorted(range(len(items)), key=lambda i: (-weights[i], items[i][0]))
    kept: List[int] = []
    for i in order:
        mode = modes[i]
        merged = False
        for j in kept:
            diff = mode - modes[j]
            if (np.sum((diff / _ms_scale(modes[j], radii)) ** 2) < 1.0
                    or np.sum((diff / _ms_scale(mode, radii)) ** 2) < 1.0):
                merged = True
                break
        if not merged:
            kept.append(i)

    out = []
    for i in kept:
        cx, cy, lw, lh = modes[i]
        mw, mh = 2.0 ** lw, 2.0 ** lh
        det = Detection(
            bbox=(float(cx - mw / 2), float(cy - mh / 2), float(mw), float(mh)),
            score=float(weights[i]), class_id=items[i][1].class_id,
        )
        out.append((items[i][0], det))
    return out


def nms_cover(items: List[Item], opts: NmsOptions) -> List[Item]:
    """Greedy weighted set cover under the relation ``overlap > threshold``.

    Each round selects the still-uncovered candidate covering the most
    not-yet-covered score, breaking ties by its own score and then by input
    position. No selected candidate covers another, so the result is a fixed
    point of the suppression. Scores are shifted to be positive so that weak
    candidates still count.
    """
    items = list(items)
    n = len(items)
    covers = overlap_matrix(_boxes(items), opts.ovr_dnm) > opts.overlap
    covers = covers | covers.T
    np.fill_diagonal(covers, True)
    scores = np.array([it[1].score for it in items], dtype=np.float64)
    weights = scores - scores.min() + 1.0

    uncovered = np.ones(n, dtype=bool)
    selected: List[Item] = []
    while uncovered.any():
        gains = covers[:, uncovered] @ weights[uncovered]
        best = max(np.flatnonzero(uncovered), key=lambda i: (gains[i], scores[i], -items[i][0]))
        selected.append(items[best])
        uncovered &= ~covers[best]
    return selected


_MODES: Dict[NmsType, SuppressFn] = {
    NmsType.MAX: nms_max,
    NmsType.MAXG: nms_maxg,
    NmsType.MS: nms_ms,
    NmsType.COVER: nms_cover,
}


def _split_suppress(items: List[Item], opts: NmsOptions, fn: SuppressFn, axis: int = 0) -> List[Item]:
    """Bound the cost on dense inputs by halving along box centres, x then y."""
    if len(items) <= opts.maxn or len(items) < 2:
        return fn(items, opts)
    center = lambda it: it[1].bbox[axis] + it[1].bbox[axis + 2] / 2.0  # noqa: E731
    ordered = sorted(items, key=lambda it: (center(it), it[0]))
    half = len(ordered) // 2
    first = _split_suppress(ordered[:half], opts, fn, 1 - axis)
    second = _split_suppress(ordered[half:], opts, fn, 1 - axis)
    merged = sorted(first + second, key=lambda it: it[0])
    return fn(merged, opts)


def resolve_and_check(options: Optional[NmsOptions]) -> NmsOptions:
    opts = resolve_nms_options(options or NmsOptions())
    errors = OptionsValidator.nms_errors(opts)
    if errors:
        raise ConfigError("Invalid nms options: " + "; ".join(errors))
    return opts


def suppress(candidates: Sequence[Detection], options: Optional[NmsOptions] = None) -> List[Detection]:
    """Reduce overlapping candidates to a non-redundant, score-ordered list."""
    opts = resolve_and_check(options)
    if opts.type is NmsType.NONE:
        return list(candidates)

    items: List[Item] = [
        (i, det) for i, det in enumerate(candidates) if det.score > opts.thr
    ]
    if is_set(opts.resize):
        hr, wr, ar = opts.resize
        items = [
            (i, Detection(bbox=resize_box(det.bbox, hr, wr, ar), score=det.score, class_id=det.class_id))
            for i, det in items
        ]
    if not items:
        return []

    fn = _MODES[opts.type]
    if opts.separate:
        groups: Dict[int, List[Item]] = defaultdict(list)
        for item in items:
            groups[item[1].class_id].append(item)
        kept = [it for cls in sorted(groups) for it in _split_suppress(groups[cls], opts, fn)]
    else:
        kept = _split_suppress(items, opts, fn)

    result = [det for _, det in _by_score(kept)]
    logger.debug("Suppression (%s): %d -> %d detections", opts.type.value, len(candidates), len(result))
    return result


def pairwise_overlaps(detections: Sequence[Detection],
                      denominator: OverlapDenominator = OverlapDenominator.UNION) -> np.ndarray:
    """Overlap matrix of a detection list, mainly for inspecting results."""
    return overlap_matrix(_boxes(list(enumerate(detections))), denominator)
