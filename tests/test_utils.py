# ABOUTME: Unit tests for shared data structures, configuration and keystroke log loading
import json
import tempfile
from pathlib import Path

import pytest

from keymap_advisor.utils import (
    ConfigManager,
    DataManager,
    KeystrokeEvent,
    default_log_path,
    mode_label,
    parse_keystroke_log,
    read_keystroke_log,
)


class TestKeystrokeEvent:
    """Test KeystrokeEvent data structure."""

    def test_from_dict_keeps_known_fields(self):
        event = KeystrokeEvent.from_dict(
            {"seq": 1, "raw": "j", "key": "j", "mode": "n", "timestamp": 42, "file": "~/a.lua"}
        )

        assert event.seq == 1
        assert event.key == "j"
        assert event.mode == "n"
        assert event.timestamp == 42
        assert event.file == "~/a.lua"
        assert event.extra == {}

    def test_unknown_fields_are_preserved(self):
        event = KeystrokeEvent.from_dict({"seq": 3, "key": "x", "mode": "n", "window": 7})

        assert event.extra == {"window": 7}
        assert event.to_dict()["window"] == 7

    def test_missing_fields_use_defaults(self):
        event = KeystrokeEvent.from_dict({"key": "k"})

        assert event.seq is None
        assert event.mode == ""
        assert event.blocking is False


class TestKeystrokeLog:
    """Test newline-delimited log parsing."""

    def test_malformed_lines_are_skipped(self):
        lines = [
            json.dumps({"seq": 1, "raw": "j", "key": "j", "mode": "n", "timestamp": 1}),
            json.dumps({"seq": 2, "raw": "k", "key": "k", "mode": "n", "timestamp": 2}),
            "{ this is invalid json",
            json.dumps({"seq": 3, "raw": "h", "key": "h", "mode": "n", "timestamp": 3}),
        ]

        events = parse_keystroke_log("\n".join(lines))

        assert len(events) == 3
        assert events[0].key == "j"
        assert events[2].seq == 3

    def test_blank_lines_and_crlf(self):
        text = '\r\n{"seq": 1, "key": "a", "mode": "i"}\r\n\r\n   \n{"seq": 2, "key": "b", "mode": "i"}\r\n'

        events = parse_keystroke_log(text)

        assert [e.key for e in events] == ["a", "b"]

    def test_non_object_lines_are_skipped(self):
        events = parse_keystroke_log('[1, 2]\n"text"\n{"seq": 1, "key": "a"}')

        assert len(events) == 1

    def test_file_order_is_preserved(self):
        text = '{"seq": 5, "key": "b"}\n{"seq": 1, "key": "a"}'

        events = parse_keystroke_log(text)

        assert [e.seq for e in events] == [5, 1]

    def test_empty_log(self):
        assert parse_keystroke_log("") == []

    def test_malformed_line_logs_warning(self, caplog):
        with caplog.at_level("WARNING"):
            parse_keystroke_log('{"seq": 1}\nnot json')

        assert "Skipping malformed log line 2" in caplog.text

    def test_wrongly_typed_fields_are_coerced(self):
        text = "\n".join(
            [
                json.dumps({"seq": 1, "key": 5, "mode": "n", "timestamp": "1"}),
                json.dumps({"seq": "two", "key": "j", "mode": "n", "timestamp": 2_000_000}),
                json.dumps({"seq": 3.0, "key": ["x"], "raw": "k", "mode": 7, "bufnr": "4"}),
            ]
        )

        events = parse_keystroke_log(text)

        assert events[0].key == "5"
        assert events[0].timestamp == 0
        assert events[1].seq is None
        assert events[2].seq == 3
        assert events[2].key == ""
        assert events[2].raw == "k"
        assert events[2].mode == "7"
        assert events[2].bufnr is None


class TestDataManager:
    """Test reading the log from disk."""

    def test_ensure_log_file_creates_directories(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "nested" / "dir" / "keystrokes.jsonl"
            manager = DataManager(log_path)

            manager.ensure_log_file()

            assert log_path.exists()
            assert manager.load_events() == []

    def test_load_events(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "keystrokes.jsonl"
            log_path.write_text(
                "\n".join(
                    json.dumps({"seq": i, "key": k, "mode": "n", "timestamp": i * 1000})
                    for i, k in enumerate("abc", 1)
                )
            )

            events = read_keystroke_log(log_path)

            assert [e.key for e in events] == ["a", "b", "c"]

    def test_ensure_log_file_keeps_existing_content(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "keystrokes.jsonl"
            log_path.write_text('{"seq": 1, "key": "a"}\n')

            manager = DataManager(log_path)
            manager.ensure_log_file()

            assert len(manager.load_events()) == 1

    def test_undecodable_line_is_skipped(self, caplog):
        with tempfile.TemporaryDirectory() as temp_dir:
            log_path = Path(temp_dir) / "keystrokes.jsonl"
            log_path.write_bytes(
                b'{"seq": 1, "key": "a", "mode": "n"}\n'
                b"\xff\xfe garbage\n"
                b'{"seq": 2, "key": "b", "mode": "n"}\n'
            )

            with caplog.at_level("WARNING"):
                events = read_keystroke_log(log_path)

            assert [e.key for e in events] == ["a", "b"]
            assert "Skipping malformed log line 2" in caplog.text


class TestConfigManager:
    """Test configuration management."""

    def test_yaml_values_override_defaults(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(
                """
analysis:
  window_size: 8
suggestions:
  model: test-model
            """
            )
            config_path = f.name

        try:
            config = ConfigManager(config_path)
            assert config.get("analysis.window_size") == 8
            assert config.get("analysis.min_occurrences") == 2
            assert config.get("suggestions.model") == "test-model"
            assert config.get("nonexistent.key", "default") == "default"
        finally:
            Path(config_path).unlink()

    def test_missing_config_file(self):
        config = ConfigManager("nonexistent.yaml")

        assert config.get("analysis.window_size") == 5
        assert config.get("suggestions.max_tokens") == 800

    def test_invalid_yaml_falls_back_to_defaults(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("analysis: [unclosed")
            config_path = f.name

        try:
            config = ConfigManager(config_path)
            assert config.get("analysis.top") == 6
        finally:
            Path(config_path).unlink()


class TestHelpers:
    """Test small helpers."""

    def test_mode_labels(self):
        assert mode_label("n") == "Normal"
        assert mode_label("\x16") == "Visual-Block"
        assert mode_label("zz") == "zz"

    def test_default_log_path_uses_xdg(self, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", "/data")

        assert default_log_path() == Path("/data/nvim/ai_keymap/keystrokes.jsonl")


if __name__ == "__main__":
    pytest.main([__file__])
