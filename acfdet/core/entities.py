"""Domain entities (data-only structures) used across services."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple, List

import numpy as np

from .constants import UINT8_SCALE
from .exceptions import ModelError

BBox = Tuple[float, float, float, float]  # (x, y, w, h)

PAD_REPLICATE = "replicate"
PAD_ZERO = "zero"


def _freeze(array: np.ndarray) -> np.ndarray:
    array.flags.writeable = False
    return array


@dataclass(frozen=True, slots=True)
class Detection:
    bbox: BBox
    score: float
    class_id: int = 0  # type used by per-type suppression

    @property
    def area(self) -> float:
        return self.bbox[2] * self.bbox[3]

    def to_xyxy(self) -> Tuple[float, float, float, float]:
        x, y, w, h = self.bbox
        return (x, y, x + w, y + h)

    def rounded(self) -> Tuple[int, int, int, int]:
        """Bounding box rounded to integer pixel coordinates."""
        return tuple(int(round(v)) for v in self.bbox)


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    name: str
    n_chns: int
    pad_with: str = PAD_ZERO  # replicate|zero


@dataclass(frozen=True, slots=True, eq=False)
class ChannelStack:
    """Per channel type ``(C, H, W)`` planes sharing one spatial size."""
    data: Tuple[np.ndarray, ...]
    info: Tuple[ChannelInfo, ...]

    def __post_init__(self):
        if len(self.data) != len(self.info):
            raise ValueError("data and info must describe the same channel types")
        shapes = {d.shape[1:] for d in self.data}
        if len(shapes) > 1:
            raise ValueError(f"channel types disagree on spatial size: {sorted(shapes)}")
        for d in self.data:
            _freeze(d)

    @property
    def n_types(self) -> int:
        return len(self.data)

    @property
    def n_chns(self) -> int:
        return sum(d.shape[0] for d in self.data)

    @property
    def size(self) -> Tuple[int, int]:
        if not self.data:
            return (0, 0)
        return self.data[0].shape[1], self.data[0].shape[2]

    def concatenated(self) -> np.ndarray:
        if len(self.data) == 1:
            return self.data[0]
        return _freeze(np.concatenate(self.data, axis=0))


@dataclass(frozen=True, slots=True, eq=False)
class PyramidLevel:
    scale: float
    scale_hw: Tuple[float, float]  # exact (h, w) resample ratios
    size: Tuple[int, int]          # resampled image (h, w), multiples of shrink
    is_real: bool
    data: Tuple[np.ndarray, ...]   # one array per channel type, or a single concatenated one

    def __post_init__(self):
        for d in self.data:
            _freeze(d)

    @property
    def channels(self) -> np.ndarray:
        """All planes of the level as one ``(C, H, W)`` array."""
        if len(self.data) == 1:
            return self.data[0]
        return np.concatenate(self.data, axis=0)


@dataclass(frozen=True, slots=True, eq=False)
class Pyramid:
    levels: Tuple[PyramidLevel, ...]
    info: Tuple[ChannelInfo, ...]
    lambdas: Tuple[float, ...]
    lambdas_source: str  # options|image|default
    shrink: int

    def __len__(self) -> int:
        return len(self.levels)

    @property
    def scales(self) -> List[float]:
        return [level.scale for level in self.levels]


@dataclass(frozen=True, slots=True, eq=False)
class Classifier:
    """Boosted ensemble of binary decision trees.

    Arrays are ``(n_trees, n_nodes)``; ``left``/``right`` hold node indices
    within the same tree, -1 marking a leaf. A node whose feature value is
    below ``thrs`` continues to ``left``.
    """
    fids: np.ndarray
    thrs: np.ndarray
    left: np.ndarray
    right: np.ndarray
    hs: np.ndarray
    weights: Optional[np.ndarray] = None
    depth: Optional[np.ndarray] = None
    tree_depth: int = 0
    errs: Tuple[float, ...] = ()
    losses: Tuple[float, ...] = ()
    thrs_u8: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        arrays = {
            "fids": np.ascontiguousarray(self.fids, dtype=np.int64),
            "thrs": np.ascontiguousarray(self.thrs, dtype=np.float32),
            "left": np.ascontiguousarray(self.left, dtype=np.int64),
            "right": np.ascontiguousarray(self.right, dtype=np.int64),
            "hs": np.ascontiguousarray(self.hs, dtype=np.float32),
        }
        shape = arrays["fids"].shape
        if len(shape) != 2 or shape[0] == 0 or shape[1] == 0:
            raise ModelError(f"classifier arrays must be non-empty (n_trees, n_nodes), got {shape}")
        for name, arr in arrays.items():
            if arr.shape != shape:
                raise ModelError(f"'{name}' has shape {arr.shape}, expected {shape}")
        if self.weights is not None:
            arrays["weights"] = np.ascontiguousarray(self.weights, dtype=np.float32)
        if self.depth is not None:
            arrays["depth"] = np.ascontiguousarray(self.depth, dtype=np.int64)
        for name in ("weights", "depth"):
            if name in arrays and arrays[name].shape != shape:
                raise ModelError(f"'{name}' has shape {arrays[name].shape}, expected {shape}")

        n_nodes = shape[1]
        is_split = arrays["left"] >= 0
        if np.any(is_split != (arrays["right"] >= 0)):
            raise ModelError("every split node needs both a left and a right child")
        children = np.concatenate([arrays["left"][is_split], arrays["right"][is_split]])
        if children.size and (children.max() >= n_nodes or children.min() < 1):
            raise ModelError("child index out of range")
        parents = np.broadcast_to(np.arange(n_nodes), shape)[is_split]
        if np.any(arrays["left"][is_split] <= parents) or np.any(arrays["right"][is_split] <= parents):
            # walks only ever move to higher node indices, so trees cannot cycle
            raise ModelError("child index must be greater than its parent's")
        if np.any(arrays["fids"][is_split] < 0):
            raise ModelError("split nodes need a non-negative feature index")

        for name, arr in arrays.items():
            object.__setattr__(self, name, _freeze(arr))
        object.__setattr__(self, "errs", tuple(self.errs))
        object.__setattr__(self, "losses", tuple(self.losses))
        object.__setattr__(self, "thrs_u8", _freeze(arrays["thrs"] * np.float32(UINT8_SCALE)))

    @classmethod
    def from_child_array(cls, fids, thrs, child, hs, **kwargs) -> "Classifier":
        """Build from the toolbox layout: ``child`` is 0 for leaves, otherwise
        the 1-based index of the left child, the right child following it."""
        child = np.asarray(child, dtype=np.int64)
        left = np.where(child > 0, child - 1, -1)
        right = np.where(child > 0, child, -1)
        return cls(fids=fids, thrs=thrs, left=left, right=right, hs=hs, **kwargs)

    @property
    def n_trees(self) -> int:
        return self.fids.shape[0]

    @property
    def n_nodes(self) -> int:
        return self.fids.shape[1]

    @property
    def max_depth(self) -> int:
        """Longest root-to-leaf path over all trees."""
        best = 0
        for t in range(self.n_trees):
            stack = [(0, 0)]
            while stack:
                node, d = stack.pop()
                if self.left[t, node] < 0:
                    best = max(best, d)
                else:
                    stack.append((self.left[t, node], d + 1))
                    stack.append((self.right[t, node], d + 1))
        return best

    def thresholds_for(self, dtype) -> np.ndarray:
        """Threshold table matching the sample type of a channel stack."""
        if np.dtype(dtype) == np.uint8:
            return self.thrs_u8
        return self.thrs

    def calibrated(self, offset: float) -> "Classifier":
        """Copy with ``offset`` added to every node output."""
        return Classifier(
            fids=self.fids, thrs=self.thrs, left=self.left, right=self.right,
            hs=self.hs + np.float32(offset), weights=self.weights, depth=self.depth,
            tree_depth=self.tree_depth, errs=self.errs, losses=self.losses,
        )
