"""Unit tests for the end-to-end detector."""
import numpy as np
import pytest

from acfdet.config.options import (
    ChannelOptions, DetectorOptions, NmsOptions, NmsType, PyramidOptions, SampleType,
)
from acfdet.core.exceptions import ConfigError, ValidationError
from acfdet.services.detection_service import Detector
from acfdet.services.pyramid_service import build_pyramid


class TestDetector:
    """Test suite for Detector."""

    def test_uniform_image_has_no_detections(self, gradient_classifier, small_options, gray_image):
        detector = Detector(gradient_classifier, small_options)
        assert detector.detect(gray_image) == []

    def test_textured_image(self, gradient_classifier, small_options, textured_image):
        """Test that windows with gradient energy are detected and suppressed."""
        detector = Detector(gradient_classifier, small_options)

        detections = detector(textured_image)

        assert len(detections) > 0
        scores = [d.score for d in detections]
        assert scores == sorted(scores, reverse=True)
        # one stump plus the default calibration
        assert scores[0] == pytest.approx(1.005, abs=1e-5)

    def test_boxes_have_model_aspect(self, gradient_classifier, small_options, textured_image):
        detections = Detector(gradient_classifier, small_options).detect(textured_image)

        for d in detections:
            _, _, w, h = d.bbox
            assert h / w == pytest.approx(2.0, rel=0.15)

    def test_image_smaller_than_window(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options)
        assert detector.detect(np.zeros((8, 8, 3), np.uint8)) == []

    def test_empty_image(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options)

        with pytest.raises(ValidationError):
            detector.detect(np.zeros((0, 10, 3), np.uint8))

    def test_uint8_sample_type(self, gradient_classifier, small_options, textured_image):
        options = small_options
        options.sample_type = SampleType.UINT8
        detector = Detector(gradient_classifier, options)

        assert len(detector.detect(textured_image)) > 0

    def test_invalid_options(self, gradient_classifier):
        with pytest.raises(ConfigError):
            Detector(gradient_classifier, DetectorOptions(model_ds=(24, 12), model_ds_pad=(32, 16), stride=6))

    def test_detect_pyramid_matches_detect(self, gradient_classifier, small_options, textured_image):
        detector = Detector(gradient_classifier, small_options)

        pyramid = detector.compute_pyramid(textured_image)

        assert detector.detect_pyramid(pyramid) == detector.detect(textured_image)

    def test_detect_pyramid_shrink_mismatch(self, gradient_classifier, small_options, textured_image):
        detector = Detector(gradient_classifier, small_options)
        pyramid = build_pyramid(textured_image, PyramidOptions(chns=ChannelOptions(shrink=2)))

        with pytest.raises(ValidationError) as exc_info:
            detector.detect_pyramid(pyramid)
        assert exc_info.value.parameter == "shrink"


class TestDetectorModify:
    """Test suite for changing run-time parameters of a trained detector."""

    def test_modify_returns_new_detector(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options)

        coarser = detector.modify(stride=8)

        assert coarser is not detector
        assert coarser.options.stride == 8
        assert detector.options.stride == 4

    def test_coarser_stride_gives_fewer_candidates(self, gradient_classifier, small_options, textured_image):
        detector = Detector(gradient_classifier, small_options).modify(nms={"type": "none"})

        fine = detector.detect(textured_image)
        coarse = detector.modify(stride=8).detect(textured_image)

        assert 0 < len(coarse) < len(fine)

    def test_casc_cal_shifts_scores(self, gradient_classifier, small_options, textured_image):
        detector = Detector(gradient_classifier, small_options)

        base = detector.detect(textured_image)
        shifted = detector.modify(casc_cal=0.5).detect(textured_image)

        assert [d.bbox for d in shifted] == [d.bbox for d in base]
        assert all(d.score == pytest.approx(1.5) for d in shifted)
        np.testing.assert_array_equal(detector.raw_classifier.hs, gradient_classifier.hs)

    def test_modify_nms_from_dict(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options).modify(nms={"type": "cover", "overlap": 0.3})

        assert detector.options.nms.type is NmsType.COVER
        assert detector.options.nms.overlap == 0.3

    def test_modify_nms_from_options(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options).modify(nms=NmsOptions(type=NmsType.MAXG))
        assert detector.options.nms.type is NmsType.MAXG

    def test_modify_pyramid_parameters(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options).modify(n_per_oct=2, lambdas=[0.0, 0.1, 0.1])

        assert detector.options.pyramid.n_per_oct == 2
        assert detector.options.pyramid.lambdas == (0.0, 0.1, 0.1)

    def test_rescale_not_supported(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options)

        with pytest.raises(ConfigError, match="rescale"):
            detector.modify(rescale=0.5)

    def test_unknown_nms_field(self, gradient_classifier, small_options):
        detector = Detector(gradient_classifier, small_options)

        with pytest.raises(ConfigError):
            detector.modify(nms={"bogus": 1})


class TestDetectorFiles:

    def test_save_and_load(self, tmp_path, gradient_classifier, small_options, textured_image):
        detector = Detector(gradient_classifier, small_options)

        loaded = Detector.from_file(detector.save(tmp_path / "detector.json"))

        assert loaded.detect(textured_image) == detector.detect(textured_image)
