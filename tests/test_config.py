import json

import pytest

from eyewatch import config as config_mod
from eyewatch.config import AppConfig, load_config


def _write(tmp_path, obj):
	p = tmp_path / "config.json"
	p.write_text(json.dumps(obj) if not isinstance(obj, str) else obj, encoding="utf-8")
	return p


def test_missing_file_gives_defaults(tmp_path):
	assert load_config(tmp_path / "nope.json") == AppConfig()


def test_malformed_file_gives_defaults(tmp_path):
	assert load_config(_write(tmp_path, "{not json")) == AppConfig()


def test_values_are_read_and_coerced(tmp_path):
	cfg = load_config(_write(tmp_path, {
		"detection": {"image_scale_factor": "0.5", "flip_horizontal": "yes", "output_stride": 8},
		"camera": {"index": 2, "width": 640, "height": 480, "fps": 0},
		"tracker": {"refresh_hz": 30},
		"server": {"host": "0.0.0.0", "port": "9000"},
		"logging": {"level": "debug"},
	}))
	assert cfg.detection.image_scale_factor == 0.5
	assert cfg.detection.flip_horizontal is True
	assert cfg.detection.output_stride == 8
	assert (cfg.camera.index, cfg.camera.width, cfg.camera.height, cfg.camera.fps) == (2, 640, 480, None)
	assert cfg.tracker.refresh_hz == 30.0
	assert (cfg.server.host, cfg.server.port) == ("0.0.0.0", 9000)
	assert cfg.log.level == "DEBUG"


def test_out_of_range_detection_falls_back(tmp_path):
	cfg = load_config(_write(tmp_path, {"detection": {"image_scale_factor": 3, "output_stride": 7}}))
	assert cfg.detection.image_scale_factor == 0.2
	assert cfg.detection.output_stride == 16


def test_set_config_path_resets_cache(tmp_path, monkeypatch):
	monkeypatch.setattr(config_mod, "_CONFIG_PATH", None)
	monkeypatch.setattr(config_mod, "_CONFIG_CACHE", None)
	p = _write(tmp_path, {"camera": {"index": 3}})
	config_mod.set_config_path(p)
	assert config_mod.get_config().camera.index == 3
	assert config_mod.get_config() is config_mod.get_config()
