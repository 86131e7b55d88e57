import dataclasses

import pytest

from eyewatch.pose.types import DEFAULT_DETECTION_OPTIONS, DEFAULT_EYE_PAIR, DetectionOptions, EyePair, EyePosition


def test_default_options():
	assert DEFAULT_DETECTION_OPTIONS.to_dict() == {
		"image_scale_factor": 0.2,
		"flip_horizontal": False,
		"output_stride": 16,
	}


@pytest.mark.parametrize("scale", [0.1, 1.5, -1.0])
def test_scale_factor_out_of_range(scale):
	with pytest.raises(ValueError):
		DetectionOptions(image_scale_factor=scale)


def test_output_stride_must_be_known():
	with pytest.raises(ValueError):
		DetectionOptions(output_stride=12)


def test_options_are_immutable_and_replace_validates():
	opts = DetectionOptions()
	with pytest.raises(dataclasses.FrozenInstanceError):
		opts.output_stride = 8  # type: ignore[misc]
	assert opts.replace(output_stride=32).output_stride == 32
	assert opts.output_stride == 16
	with pytest.raises(ValueError):
		opts.replace(image_scale_factor=2.0)


def test_default_eye_pair_is_origin():
	assert DEFAULT_EYE_PAIR == EyePair(EyePosition(0, 0), EyePosition(0, 0))
	assert DEFAULT_EYE_PAIR.to_dict() == {"left": {"x": 0.0, "y": 0.0}, "right": {"x": 0.0, "y": 0.0}}
