# ABOUTME: Integration tests for the keymap-advisor command line
import json
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from keymap_advisor.cli import main, resolve_dotfiles

REPLY = (
    'Suggestions follow. [{"mode": "n", "lhs": "<leader>x", "sequence": ["d", "d"], '
    '"recommendedMapping": "dd", "rationale": "dd repeated"}]'
)


@pytest.fixture
def workspace(monkeypatch):
    monkeypatch.delenv("CLAUDE_API_KEY", raising=False)
    with tempfile.TemporaryDirectory() as temp_dir:
        root = Path(temp_dir)
        (root / "keymaps.lua").write_text(
            'vim.keymap.set("n", "<leader>d", ":lua vim.diagnostic.open_float()<CR>")\n'
        )
        lines = [
            {"seq": 1, "raw": "d", "key": "d", "mode": "n", "timestamp": 1},
            {"seq": 2, "raw": "d", "key": "d", "mode": "n", "timestamp": 1_500_000},
            {"seq": 3, "raw": "p", "key": "p", "mode": "n", "timestamp": 3_000_000},
            {"seq": 4, "raw": "d", "key": "d", "mode": "n", "timestamp": 4_500_000},
            {"seq": 5, "raw": "d", "key": "d", "mode": "n", "timestamp": 5_000_000},
        ]
        log_path = root / "keystrokes.jsonl"
        log_path.write_text("\n".join(json.dumps(line) for line in lines))
        yield root, log_path


def base_args(root, log_path):
    return [
        "--config",
        str(root / "missing.yaml"),
        "--log",
        str(log_path),
        "--dotfiles",
        str(root),
        "--top",
        "4",
    ]


class TestCli:
    """Test the end-to-end command line flow."""

    def test_json_output_with_skip_ai(self, workspace, capsys):
        root, log_path = workspace

        exit_code = main(base_args(root, log_path) + ["--skip-ai", "--format", "json"])

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["logPath"] == str(log_path.resolve())
        assert payload["events"] == 5
        assert len(payload["sequences"]) > 0
        assert payload["sequences"][0]["keys"] == ["d", "d"]
        assert payload["sequences"][0]["count"] == 2
        assert payload["keymapCount"] >= 1
        assert payload["ai"] is None

    def test_human_output_with_responder(self, workspace, capsys):
        root, log_path = workspace

        def responder(system, prompt, params):
            assert "<leader>d (" in prompt
            return REPLY

        main(base_args(root, log_path), generator=responder)

        out = capsys.readouterr().out
        assert "=== AI Keymap Analyzer ===" in out
        assert "Events processed: 5" in out
        assert "d → d" in out
        assert "1. [n] map <leader>x => sequence d d" in out
        assert "recommended mapping: dd" in out

    def test_suggestions_only(self, workspace, capsys):
        root, log_path = workspace

        main(base_args(root, log_path) + ["--suggestions-only"], generator=lambda s, p, o: REPLY)

        out = capsys.readouterr().out
        assert "Top sequences" not in out
        assert "map <leader>x" in out

    def test_missing_api_key_skips_suggestions(self, workspace, capsys):
        root, log_path = workspace

        main(base_args(root, log_path))

        assert "AI Suggestions: skipped." in capsys.readouterr().out

    def test_generator_failure_is_reported_as_skipped(self, workspace, capsys):
        from keymap_advisor.suggest import SuggestionError

        root, log_path = workspace

        def failing(system, prompt, params):
            raise SuggestionError("network down")

        exit_code = main(base_args(root, log_path), generator=failing)

        assert exit_code == 0
        assert "AI Suggestions: skipped." in capsys.readouterr().out

    def test_unexpected_generator_exception_is_reported_as_skipped(self, workspace, capsys):
        root, log_path = workspace

        def failing(system, prompt, params):
            raise ConnectionError("network down")

        exit_code = main(base_args(root, log_path), generator=failing)

        assert exit_code == 0
        assert "AI Suggestions: skipped." in capsys.readouterr().out

    def test_missing_log_is_created(self, workspace, capsys):
        root, _ = workspace
        log_path = root / "new" / "keystrokes.jsonl"

        main(base_args(root, log_path) + ["--skip-ai"])

        assert log_path.exists()
        assert "No repeating sequences detected yet." in capsys.readouterr().out

    def test_export_csv(self, workspace):
        root, log_path = workspace
        csv_path = root / "sequences.csv"

        main(base_args(root, log_path) + ["--skip-ai", "--format", "json", "--export-csv", str(csv_path)])

        df = pd.read_csv(csv_path)
        assert list(df.columns) == ["mode", "keys", "count", "mean_delta_ms", "sample_file"]
        assert df.iloc[0]["keys"] == "d d"

    def test_invalid_format(self, workspace):
        root, log_path = workspace

        with pytest.raises(SystemExit):
            main(base_args(root, log_path) + ["--format", "xml"])


class TestResolveDotfiles:
    """Test dotfile root resolution."""

    def test_existing_paths_deduplicated(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            resolved = resolve_dotfiles([temp_dir, temp_dir, str(Path(temp_dir) / "missing")])

            assert resolved == [str(Path(temp_dir).resolve())]


if __name__ == "__main__":
    pytest.main([__file__])
