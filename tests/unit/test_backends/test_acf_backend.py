"""Unit tests for the ACF detector backend."""
import pytest

from acfdet.backends import AcfBackend
from acfdet.core.exceptions import ConfigError, ModelError
from acfdet.services.detection_service import Detector


@pytest.fixture
def model_file(tmp_path, gradient_classifier, small_options):
    return Detector(gradient_classifier, small_options).save(tmp_path / "detector.yaml")


class TestAcfBackend:
    """Test suite for AcfBackend."""

    def test_initial_state(self):
        backend = AcfBackend()

        assert not backend.is_model_loaded()
        assert backend.get_model_info() == {'status': 'not_loaded'}

    def test_predict_without_model(self, gray_image):
        with pytest.raises(ModelError):
            AcfBackend().predict(gray_image)

    def test_load_model(self, model_file, textured_image):
        backend = AcfBackend()

        assert backend.load_model(str(model_file))
        info = backend.get_model_info()

        assert info['backend'] == 'acf'
        assert info['num_trees'] == 1
        assert info['tree_depth'] == 1
        assert info['model_ds'] == (24, 12)
        assert info['nms'] == 'max'
        assert len(backend.predict(textured_image)) > 0

    def test_config_overrides_applied(self, model_file):
        backend = AcfBackend({'stride': 8, 'nms': {'type': 'maxg'}})
        backend.load_model(str(model_file))

        assert backend.detector.options.stride == 8
        assert backend.get_model_info()['nms'] == 'maxg'

    def test_bad_config_override(self, gradient_classifier, small_options):
        backend = AcfBackend({'rescale': 2})

        with pytest.raises(ConfigError):
            backend.load_classifier(gradient_classifier, small_options)

    def test_min_score(self, gradient_classifier, small_options, textured_image):
        backend = AcfBackend()
        backend.load_classifier(gradient_classifier, small_options)

        assert len(backend.predict(textured_image)) > 0
        assert backend.predict(textured_image, min_score=2.0) == []

    def test_validate_model(self, model_file, tmp_path):
        backend = AcfBackend()
        broken = tmp_path / "broken.json"
        broken.write_text("{}")

        assert backend.validate_model(str(model_file))
        assert not backend.validate_model(str(broken))
        assert not backend.validate_model(str(tmp_path / "missing.yaml"))
        assert not backend.validate_model(str(tmp_path / "detector.onnx"))

    def test_unload(self, gradient_classifier, small_options):
        backend = AcfBackend()
        backend.load_classifier(gradient_classifier, small_options)

        backend.unload_model()

        assert backend.detector is None
        assert not backend.is_model_loaded()
        assert backend.get_supported_formats() == ['.json', '.yaml', '.yml']
