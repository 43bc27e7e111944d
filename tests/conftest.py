"""Pytest configuration and shared fixtures for the detector tests.

Images are synthesised with numpy so no test depends on files on disk.
"""
import sys
import logging
from pathlib import Path

import numpy as np
import pytest

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from acfdet.core.entities import Classifier, Detection
from acfdet.config.options import DetectorOptions, PyramidOptions, NmsOptions, NmsType


# Configure logging for tests
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

# Window used throughout the tests: 24x12 object in a 32x16 padded window
MODEL_DS = (24, 12)
MODEL_DS_PAD = (32, 16)
# Gradient magnitude plane (after three LUV planes), column 2, row 4 of the window
GRAD_MAG_FID = 3 * (8 * 4) + 2 * 8 + 4


def make_stump(fid: int, thr: float, low: float, high: float) -> Classifier:
    """One depth-1 tree: ``low`` when the feature is below ``thr``, else ``high``."""
    return Classifier(
        fids=[[fid, 0, 0]],
        thrs=[[thr, 0.0, 0.0]],
        left=[[1, -1, -1]],
        right=[[2, -1, -1]],
        hs=[[0.0, low, high]],
        tree_depth=1,
    )


def make_constant(value: float) -> Classifier:
    """A single leaf, so every window scores ``value``."""
    return Classifier(fids=[[0]], thrs=[[0.0]], left=[[-1]], right=[[-1]], hs=[[value]])


@pytest.fixture(scope="session")
def project_root():
    """Provide project root directory path."""
    return PROJECT_ROOT


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def gray_image():
    """Uniform mid-gray 64x64 RGB image."""
    return np.full((64, 64, 3), 128, dtype=np.uint8)


@pytest.fixture
def textured_image(rng):
    """96x80 RGB noise image with strong gradients everywhere."""
    return rng.integers(0, 256, size=(96, 80, 3), dtype=np.uint8)


@pytest.fixture
def stripes_image():
    """128x96 float image of vertical stripes (a smooth, natural-ish texture)."""
    x = np.arange(96, dtype=np.float32)
    row = 0.5 + 0.4 * np.sin(x / 3.0)
    img = np.repeat(row[None, :], 128, axis=0)
    return np.stack([img, img * 0.8, 1.0 - img], axis=2).astype(np.float32)


@pytest.fixture
def gradient_classifier():
    """Accepts windows with gradient energy at one cell, rejects flat ones."""
    return make_stump(GRAD_MAG_FID, thr=0.05, low=-2.0, high=1.0)


@pytest.fixture
def small_options():
    """Options for the small test window."""
    return DetectorOptions(
        pyramid=PyramidOptions(n_per_oct=4),
        model_ds=MODEL_DS,
        model_ds_pad=MODEL_DS_PAD,
        stride=4,
        casc_thr=-1.0,
        nms=NmsOptions(type=NmsType.MAX, overlap=0.5),
    )


@pytest.fixture
def two_boxes():
    """The canonical overlapping pair."""
    return [
        Detection(bbox=(10, 10, 50, 50), score=0.9),
        Detection(bbox=(15, 15, 50, 50), score=0.7),
    ]


@pytest.fixture
def stump_factory():
    return make_stump


@pytest.fixture
def constant_factory():
    return make_constant


@pytest.fixture
def window():
    """(model_ds, model_ds_pad, gradient feature index) of the test window."""
    return MODEL_DS, MODEL_DS_PAD, GRAD_MAG_FID
