"""Geometry and bounding box utilities.

Boxes are ``(x, y, w, h)`` with ``(x, y)`` the top-left corner.
"""

from typing import Iterable, Sequence, Tuple

import numpy as np

from ..config.options import OverlapDenominator


def xywh_to_xyxy(box):
    """Convert x,y,w,h format to x1,y1,x2,y2 format."""
    x, y, w, h = box
    return (x, y, x + w, y + h)


def xyxy_to_xywh(xyxy):
    """Convert x1,y1,x2,y2 format to x,y,w,h format."""
    x1, y1, x2, y2 = xyxy
    return (x1, y1, x2 - x1, y2 - y1)


def box_area(box) -> float:
    return max(0.0, box[2]) * max(0.0, box[3])


def intersection_area(boxA, boxB) -> float:
    """Area of the intersection of two boxes."""
    xA = max(boxA[0], boxB[0])
    yA = max(boxA[1], boxB[1])
    xB = min(boxA[0] + boxA[2], boxB[0] + boxB[2])
    yB = min(boxA[1] + boxA[3], boxB[1] + boxB[3])
    return max(0.0, xB - xA) * max(0.0, yB - yA)


def overlap(boxA, boxB, denominator=OverlapDenominator.UNION) -> float:
    """Intersection over union (or over the smaller area) of two boxes."""
    inter = intersection_area(boxA, boxB)
    if inter == 0:
        return 0.0
    areaA, areaB = box_area(boxA), box_area(boxB)
    if denominator is OverlapDenominator.MIN:
        denom = min(areaA, areaB)
    else:
        denom = areaA + areaB - inter
    if denom <= 0:
        return 0.0
    return inter / denom


def overlap_matrix(boxes: np.ndarray, denominator=OverlapDenominator.UNION) -> np.ndarray:
    """Pairwise overlaps of an ``(n, 4)`` array of boxes."""
    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    x1, y1 = boxes[:, 0], boxes[:, 1]
    x2, y2 = x1 + boxes[:, 2], y1 + boxes[:, 3]
    iw = np.clip(np.minimum(x2[:, None], x2[None]) - np.maximum(x1[:, None], x1[None]), 0, None)
    ih = np.clip(np.minimum(y2[:, None], y2[None]) - np.maximum(y1[:, None], y1[None]), 0, None)
    inter = iw * ih
    area = np.clip(boxes[:, 2], 0, None) * np.clip(boxes[:, 3], 0, None)
    if denominator is OverlapDenominator.MIN:
        denom = np.minimum(area[:, None], area[None])
    else:
        denom = area[:, None] + area[None] - inter
    with np.errstate(divide="ignore", invalid="ignore"):
        out = np.where(denom > 0, inter / denom, 0.0)
    return out


def union_area(boxes: Sequence) -> float:
    """Exact area covered by the union of boxes (coordinate compression)."""
    boxes = [b for b in boxes if b[2] > 0 and b[3] > 0]
    if not boxes:
        return 0.0
    xs = sorted({v for b in boxes for v in (b[0], b[0] + b[2])})
    ys = sorted({v for b in boxes for v in (b[1], b[1] + b[3])})
    area = 0.0
    for i in range(len(xs) - 1):
        cx = (xs[i] + xs[i + 1]) / 2.0
        for j in range(len(ys) - 1):
            cy = (ys[j] + ys[j + 1]) / 2.0
            for b in boxes:
                if b[0] <= cx < b[0] + b[2] and b[1] <= cy < b[1] + b[3]:
                    area += (xs[i + 1] - xs[i]) * (ys[j + 1] - ys[j])
                    break
    return area


def clip_box(box, region) -> Tuple[float, float, float, float]:
    """Intersection of ``box`` with ``region`` as a box (possibly empty)."""
    x1 = max(box[0], region[0])
    y1 = max(box[1], region[1])
    x2 = min(box[0] + box[2], region[0] + region[2])
    y2 = min(box[1] + box[3], region[1] + region[3])
    return (x1, y1, max(0.0, x2 - x1), max(0.0, y2 - y1))


def overlap_with_union(box, group: Iterable, denominator=OverlapDenominator.UNION) -> float:
    """Overlap between ``box`` and the region covered by every box in ``group``."""
    group = list(group)
    if not group:
        return 0.0
    inter = union_area([clip_box(g, box) for g in group])
    if inter == 0:
        return 0.0
    area_box = box_area(box)
    area_group = union_area(group)
    if denominator is OverlapDenominator.MIN:
        denom = min(area_box, area_group)
    else:
        denom = area_box + area_group - inter
    if denom <= 0:
        return 0.0
    return inter / denom


def resize_box(box, height_ratio: float, width_ratio: float, aspect_ratio: float = 0.0):
    """Scale a box about its center.

    A ratio of 0 means that side follows from the other through
    ``aspect_ratio = w / h``.
    """
    x, y, w, h = box
    cx, cy = x + w / 2.0, y + h / 2.0
    if height_ratio == 0:
        w = w * width_ratio
        h = w / aspect_ratio
    elif width_ratio == 0:
        h = h * height_ratio
        w = h * aspect_ratio
    else:
        w = w * width_ratio
        h = h * height_ratio
    return (cx - w / 2.0, cy - h / 2.0, w, h)
