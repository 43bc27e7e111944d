"""Unit tests for hierarchical options, merging and defaults."""
import copy
import math

import pytest

from acfdet.config.options import (
    UNSET, is_set, merge, MergeMode, DetectorOptions, PyramidOptions, ChannelOptions,
    ColorOptions, NmsOptions, NmsType, ColorSpace, get_path, set_path, unset_fields, parse_enum,
)
from acfdet.config.defaults import resolve, default_options
from acfdet.core.exceptions import ConfigError, MergeConflictError


class TestUnset:

    def test_unset_is_falsy_singleton(self):
        assert not UNSET
        assert copy.deepcopy(UNSET) is UNSET
        assert not is_set(UNSET)
        assert is_set(0) and is_set(False) and is_set(None)

    def test_fresh_options_are_unset(self):
        assert "stride" in unset_fields(DetectorOptions())
        assert "pyramid.chns.shrink" in unset_fields(DetectorOptions())


class TestMerge:
    """Test suite for field-wise merging."""

    def test_replace_example(self):
        """Test that {casc_thr: 0, stride: 4} + {stride: 2} gives {casc_thr: 0, stride: 2}."""
        base = DetectorOptions(casc_thr=0.0, stride=4)
        override = DetectorOptions(stride=2)

        merged = merge(base, override, MergeMode.REPLACE)

        assert merged.casc_thr == 0.0
        assert merged.stride == 2

    def test_unset_never_clobbers(self):
        merged = merge(DetectorOptions(stride=4), DetectorOptions(), MergeMode.REPLACE)
        assert merged.stride == 4

    def test_fill_keeps_base(self):
        merged = merge(DetectorOptions(stride=4), DetectorOptions(stride=2, casc_thr=1.0), MergeMode.FILL)

        assert merged.stride == 4
        assert merged.casc_thr == 1.0

    def test_error_mode_conflict(self):
        """Test that differing set values raise with the conflicting path."""
        base = DetectorOptions(pyramid=PyramidOptions(chns=ChannelOptions(shrink=4)))
        override = DetectorOptions(pyramid=PyramidOptions(chns=ChannelOptions(shrink=2)))

        with pytest.raises(MergeConflictError) as exc_info:
            merge(base, override, MergeMode.ERROR)

        assert exc_info.value.path == "pyramid.chns.shrink"
        assert isinstance(exc_info.value, ConfigError)

    def test_error_mode_equal_values(self):
        merged = merge(DetectorOptions(stride=4), DetectorOptions(stride=4), MergeMode.ERROR)
        assert merged.stride == 4

    def test_nested_groups_merge_fieldwise(self):
        base = DetectorOptions(pyramid=PyramidOptions(chns=ChannelOptions(color=ColorOptions(smooth=1.0))))
        override = DetectorOptions(pyramid=PyramidOptions(
            chns=ChannelOptions(color=ColorOptions(color_space=ColorSpace.RGB))))

        merged = merge(base, override)

        assert merged.pyramid.chns.color.smooth == 1.0
        assert merged.pyramid.chns.color.color_space is ColorSpace.RGB

    def test_inputs_not_modified(self):
        base = DetectorOptions(stride=4)
        merge(base, DetectorOptions(stride=8))
        assert base.stride == 4

    def test_type_mismatch(self):
        with pytest.raises(ConfigError):
            merge(DetectorOptions(), NmsOptions())


class TestPaths:

    def test_get_and_set_path(self):
        options = set_path(DetectorOptions(), "pyramid.n_per_oct", 4)

        assert get_path(options, "pyramid.n_per_oct") == 4

    def test_set_path_parses_enum_tags(self):
        options = set_path(DetectorOptions(), "nms.type", "cover")
        assert options.nms.type is NmsType.COVER

    def test_unknown_option(self):
        with pytest.raises(ConfigError):
            set_path(DetectorOptions(), "pyramid.n_per_octave", 4)

    def test_unknown_enum_tag(self):
        """Test that unknown suppression modes are rejected when parsed."""
        with pytest.raises(ConfigError):
            parse_enum("type", "greedy")


class TestResolve:
    """Test suite for defaults and derived values."""

    def test_defaults_are_complete_except_optional(self):
        missing = set(unset_fields(resolve(DetectorOptions())))
        assert missing == {"pyramid.lambdas", "nms.resize"}

    def test_derived_values(self):
        resolved = resolve(DetectorOptions(pyramid=PyramidOptions(n_per_oct=4)))

        assert resolved.pyramid.n_approx == 3
        assert resolved.pyramid.chns.grad_hist.bin_size == resolved.pyramid.chns.shrink
        assert resolved.nms.thr == -math.inf

    def test_mean_shift_threshold(self):
        resolved = resolve(DetectorOptions(nms=NmsOptions(type=NmsType.MS)))
        assert resolved.nms.thr == 0.0

    def test_min_ds_follows_model_ds(self):
        resolved = resolve(DetectorOptions(model_ds=(24, 12), model_ds_pad=(32, 16)))
        assert tuple(resolved.pyramid.min_ds) == (24, 12)

    def test_explicit_min_ds_kept(self):
        resolved = resolve(DetectorOptions(pyramid=PyramidOptions(min_ds=(8, 8))))
        assert tuple(resolved.pyramid.min_ds) == (8, 8)

    def test_default_options_values(self):
        options = default_options()

        assert options.pyramid.chns.shrink == 4
        assert options.pyramid.n_per_oct == 8
        assert options.nms.type is NmsType.MAXG
        assert tuple(options.model_ds_pad) == (128, 64)
