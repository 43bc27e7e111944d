"""Detection over many images on a worker pool."""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.validation import validate_image
from ..core.entities import Detection
from ..core.exceptions import ValidationError
from ..core.logging_config import CorrelationContext
from ..core.worker_pool import WorkerPool
from ..utils.image_utils import resample_image, to_float_image
from .detection_service import Detector

logger = logging.getLogger(__name__)


@dataclass
class WorkerScratch:
    """Mutable state owned by a single worker."""
    worker_id: int
    mean: Optional[np.ndarray] = None
    count: int = 0
    images_processed: int = 0

    def accumulate(self, image: np.ndarray) -> None:
        """Cumulative moving average of the images seen by this worker."""
        image = image.astype(np.float64)
        if self.mean is None:
            self.mean = image.copy()
        else:
            if image.shape != self.mean.shape:
                raise ValidationError(
                    f"image shape {image.shape} differs from running mean shape {self.mean.shape}",
                    stage="batch", parameter="image",
                )
            self.mean += (image - self.mean) / (self.count + 1)
        self.count += 1


def combine_means(scratches: Sequence[WorkerScratch]) -> Optional[np.ndarray]:
    """Weight each worker's mean by how many images it averaged."""
    parts = [s for s in scratches if s.count > 0 and s.mean is not None]
    if not parts:
        return None
    total = sum(s.count for s in parts)
    mean = np.zeros_like(parts[0].mean)
    for s in parts:
        mean += s.mean * (s.count / total)
    return mean


class BatchDetectionService:
    """Runs one shared :class:`Detector` over a batch of images.

    Results come back in input order. With ``track_mean`` every worker also
    keeps a running mean of the images it processed (resampled to
    ``mean_size`` when given), available from :meth:`mean_image` after a run.
    """

    def __init__(self, detector: Detector, num_workers: int = 4, track_mean: bool = False,
                 mean_size: Optional[Tuple[int, int]] = None):
        self.detector = detector
        self.num_workers = num_workers
        self.track_mean = track_mean
        self.mean_size = tuple(mean_size) if mean_size is not None else None
        self._last_scratch: List[WorkerScratch] = []
        self._last_stats: dict = {}

    def _detect_one(self, scratch: WorkerScratch, job: Tuple[int, np.ndarray]) -> List[Detection]:
        index, image = job
        with CorrelationContext(f"image-{index}"):
            detections = self.detector.detect(image)
            if self.track_mean:
                planes = to_float_image(validate_image(image, stage="batch"))
                if self.mean_size is not None:
                    planes = resample_image(planes, self.mean_size)
                scratch.accumulate(planes)
            scratch.images_processed += 1
            logger.debug("Worker %d: image %d -> %d detections",
                         scratch.worker_id, index, len(detections))
        return detections

    def detect_all(self, images: Sequence[np.ndarray]) -> List[List[Detection]]:
        """Detect in every image; the i-th result belongs to the i-th image.

        Any failure is re-raised once the pool has stopped.
        """
        images = list(images)
        pool = WorkerPool(num_workers=self.num_workers, scratch_factory=WorkerScratch,
                          thread_name_prefix="AcfBatch")
        try:
            futures = [pool.submit(self._detect_one, (i, image)) for i, image in enumerate(images)]
        finally:
            pool.shutdown(wait=True)
        self._last_scratch = pool.scratch_states()
        self._last_stats = pool.get_stats()

        results = [f.result() for f in futures]
        logger.info(
            "Processed %d images on %d workers: %d detections",
            len(images), self.num_workers, sum(len(r) for r in results),
        )
        return results

    def mean_image(self) -> Optional[np.ndarray]:
        """Mean of the images from the last :meth:`detect_all` run."""
        if not self.track_mean:
            return None
        return combine_means(self._last_scratch)

    def get_stats(self) -> dict:
        stats = dict(self._last_stats)
        stats["images_per_worker"] = {s.worker_id: s.images_processed for s in self._last_scratch}
        return stats
