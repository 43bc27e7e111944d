"""Sliding-window evaluation of a boosted tree cascade over one pyramid level."""
from __future__ import annotations

import logging
import math
from typing import List, Sequence, Tuple

import numpy as np

from ..core.entities import Classifier, Detection, PyramidLevel
from ..core.exceptions import ModelError, ValidationError

logger = logging.getLogger(__name__)


class CascadeEvaluator:
    """Scores every window position of a level with a soft cascade.

    Features are addressed inside the padded model window as
    ``fid = z * (wh * ww) + x * wh + y`` for channel ``z``, column ``x`` and
    row ``y`` (in channel cells). Each tree is walked from its root, going
    left while ``feature < threshold``; the leaf output is added to the
    window score and the window is dropped as soon as the score is no longer
    above ``casc_thr``.
    """

    def __init__(self, classifier: Classifier, model_ds: Sequence[int], model_ds_pad: Sequence[int],
                 stride: int, casc_thr: float, shrink: int, pad: Sequence[int] = (0, 0)):
        if any(d > p for d, p in zip(model_ds, model_ds_pad)):
            raise ValidationError(
                f"window {tuple(model_ds)} is larger than the padded window {tuple(model_ds_pad)}",
                stage="cascade", parameter="model_ds",
            )
        if stride % shrink:
            raise ValidationError(
                f"stride {stride} is not a multiple of shrink {shrink}",
                stage="cascade", parameter="stride",
            )
        self.classifier = classifier
        self.model_ds = tuple(int(v) for v in model_ds)
        self.model_ds_pad = tuple(int(v) for v in model_ds_pad)
        self.stride = int(stride)
        self.casc_thr = float(casc_thr)
        self.shrink = int(shrink)
        self.pad = tuple(int(v) for v in pad)

        self.window_cells = (self.model_ds_pad[0] // self.shrink, self.model_ds_pad[1] // self.shrink)
        self.shift = (
            (self.model_ds_pad[0] - self.model_ds[0]) / 2.0 - self.pad[0],
            (self.model_ds_pad[1] - self.model_ds[1]) / 2.0 - self.pad[1],
        )

    def grid_size(self, height: int, width: int) -> Tuple[int, int]:
        """Number of window rows and columns on a ``height x width`` cell grid."""
        rows = math.ceil((height * self.shrink - self.model_ds_pad[0] + 1) / self.stride)
        cols = math.ceil((width * self.shrink - self.model_ds_pad[1] + 1) / self.stride)
        return max(rows, 0), max(cols, 0)

    def score_windows(self, chns: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Run the cascade on a ``(C, H, W)`` stack.

        Returns the row and column grid indices of the surviving windows and
        their scores, windows ordered column by column.
        """
        n_chns, height, width = chns.shape
        rows, cols = self.grid_size(height, width)
        empty = (np.zeros(0, np.int64), np.zeros(0, np.int64), np.zeros(0, np.float64))
        if rows == 0 or cols == 0:
            return empty

        clf = self.classifier
        wh, ww = self.window_cells
        area = wh * ww
        if int(clf.fids.max()) >= n_chns * area:
            raise ModelError(
                f"feature index {int(clf.fids.max())} outside a {n_chns}x{wh}x{ww} window"
            )
        thrs = clf.thresholds_for(chns.dtype)
        cell_stride = self.stride // self.shrink

        r_idx = np.tile(np.arange(rows), cols) * cell_stride
        c_idx = np.repeat(np.arange(cols), rows) * cell_stride
        scores = np.zeros(rows * cols, dtype=np.float64)
        active = np.arange(rows * cols)

        for t in range(clf.n_trees):
            if active.size == 0:
                break
            node = np.zeros(active.size, dtype=np.int64)
            left, right = clf.left[t], clf.right[t]
            while True:
                split = np.flatnonzero(left[node] >= 0)
                if split.size == 0:
                    break
                k = node[split]
                z, rem = np.divmod(clf.fids[t, k], area)
                x, y = np.divmod(rem, wh)
                win = active[split]
                values = chns[z, r_idx[win] + y, c_idx[win] + x]
                node[split] = np.where(values < thrs[t, k], left[k], right[k])
            scores[active] += clf.hs[t, node]
            active = active[scores[active] > self.casc_thr]

        return r_idx[active] // cell_stride, c_idx[active] // cell_stride, scores[active]

    def evaluate(self, level: PyramidLevel) -> List[Detection]:
        """Candidate detections of one level, boxes in original image pixels."""
        r, c, scores = self.score_windows(level.channels)
        if scores.size == 0:
            return []
        scale_h, scale_w = level.scale_hw
        ys = (r * self.stride + self.shift[0]) / scale_h
        xs = (c * self.stride + self.shift[1]) / scale_w
        w = self.model_ds[1] / level.scale
        h = self.model_ds[0] / level.scale
        return [
            Detection(bbox=(float(x), float(y), w, h), score=float(s))
            for x, y, s in zip(xs, ys, scores)
        ]

    def evaluate_pyramid(self, levels: Sequence[PyramidLevel]) -> List[Detection]:
        candidates: List[Detection] = []
        for level in levels:
            found = self.evaluate(level)
            logger.debug("Scale %.4f: %d candidates", level.scale, len(found))
            candidates.extend(found)
        return candidates
