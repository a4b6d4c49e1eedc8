"""Unit tests for ConfigLoader."""

from pathlib import Path

import pytest


class TestConfigLoaderParsing:
    """Test ConfigLoader value parsing."""

    def test_parse_value_bool(self):
        from tm_capture.core.config_loader import ConfigLoader

        for val in ['true', 'Yes', 'ON']:
            assert ConfigLoader._parse_value(val) is True
        for val in ['false', 'No', 'off']:
            assert ConfigLoader._parse_value(val) is False

    def test_parse_value_numbers(self):
        from tm_capture.core.config_loader import ConfigLoader

        assert ConfigLoader._parse_value('42') == 42
        assert ConfigLoader._parse_value('-10') == -10
        assert ConfigLoader._parse_value('0.92') == pytest.approx(0.92)

    def test_parse_value_string(self):
        from tm_capture.core.config_loader import ConfigLoader

        assert ConfigLoader._parse_value('http://192.168.4.1') == 'http://192.168.4.1'

    def test_parse_with_type_int_bases(self):
        from tm_capture.core.config_loader import ConfigLoader

        assert ConfigLoader._parse_value_with_type('1300', int) == 1300
        assert ConfigLoader._parse_value_with_type('0x10', int) == 16

    def test_parse_with_type_falls_back_to_default(self):
        from tm_capture.core.config_loader import ConfigLoader

        assert ConfigLoader._parse_value_with_type('fast', int, 1000) == 1000
        assert ConfigLoader._parse_value_with_type('high', float, 0.92) == 0.92

    def test_parse_with_type_bool_and_str(self):
        from tm_capture.core.config_loader import ConfigLoader

        assert ConfigLoader._parse_value_with_type('1', bool) is True
        assert ConfigLoader._parse_value_with_type('nope', bool) is False
        assert ConfigLoader._parse_value_with_type('captures', str) == 'captures'


class TestConfigLoaderLoad:
    """Test loading config files from disk."""

    def test_missing_file_returns_defaults(self, tmp_path):
        from tm_capture.core.config_loader import ConfigLoader

        defaults = {"frame_size": 96}
        result = ConfigLoader.load(tmp_path / "missing.txt", defaults)

        assert result == defaults
        assert result is not defaults

    def test_comments_and_blank_lines_ignored(self, tmp_path):
        from tm_capture.core.config_loader import ConfigLoader

        config_file = tmp_path / "config.txt"
        config_file.write_text(
            "# header\n"
            "\n"
            "frame_size = 64  # smaller stills\n"
            "base_url = http://camera.local\n"
            "not a setting\n",
            encoding="utf-8",
        )

        result = ConfigLoader.load(config_file, {"frame_size": 96, "base_url": "x"})

        assert result == {"frame_size": 64, "base_url": "http://camera.local"}

    def test_strict_mode_drops_unknown_keys(self, tmp_path):
        from tm_capture.core.config_loader import ConfigLoader

        config_file = tmp_path / "config.txt"
        config_file.write_text("frame_size = 48\nmystery = 1\n", encoding="utf-8")

        strict = ConfigLoader.load(config_file, {"frame_size": 96}, strict=True)
        loose = ConfigLoader.load(config_file, {"frame_size": 96})

        assert strict == {"frame_size": 48}
        assert loose == {"frame_size": 48, "mystery": 1}

    def test_values_typed_by_default(self, tmp_path):
        from tm_capture.core.config_loader import ConfigLoader

        config_file = tmp_path / "config.txt"
        config_file.write_text("jpeg_quality = 1\nframe_size = big\n", encoding="utf-8")

        result = ConfigLoader.load(config_file, {"jpeg_quality": 0.92, "frame_size": 96})

        assert result["jpeg_quality"] == 1.0
        assert isinstance(result["jpeg_quality"], float)
        assert result["frame_size"] == 96

    def test_packaged_config_matches_defaults(self, default_config_path: Path):
        from tm_capture.capture.config import CONFIG_DEFAULTS
        from tm_capture.core.config_loader import ConfigLoader

        result = ConfigLoader.load(default_config_path, CONFIG_DEFAULTS, strict=True)

        assert result == CONFIG_DEFAULTS
