# ABOUTME: Command line entry point that wires log analysis, keymap scanning and suggestions together
import argparse
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .analyzer import KeystrokeAnalyzer
from .keymaps import collect_keymaps
from .report import build_payload, export_sequences_csv, render_human
from .suggest import (
    ClaudeTextGenerator,
    SuggestionError,
    TextGenerator,
    request_suggestions,
)
from .utils import ConfigManager, SuggestionResponse, default_log_path, setup_logging

DEFAULT_DOTFILES = ["~/.config/nvim", "~/dotfiles", "~/.vim", "~/.config/chezmoi"]


def resolve_path(path: str) -> Path:
    return Path(path).expanduser().resolve()


def resolve_dotfiles(explicit: Iterable[str]) -> List[str]:
    """Existing, de-duplicated dotfile roots (defaults when none given)."""
    targets = list(explicit) or DEFAULT_DOTFILES
    resolved: List[str] = []
    for target in targets:
        expanded = resolve_path(target)
        if expanded.exists() and str(expanded) not in resolved:
            resolved.append(str(expanded))
    return resolved


def build_parser(config: Optional[ConfigManager] = None) -> argparse.ArgumentParser:
    config = config or ConfigManager()
    parser = argparse.ArgumentParser(
        prog="keymap-advisor",
        description="Generate AI-assisted keymap suggestions backed by keystroke analytics.",
    )
    parser.add_argument("--config", default="config.yaml", help="Configuration file path")
    parser.add_argument("--log", default=str(default_log_path()), help="Path to keystroke JSONL log")
    parser.add_argument(
        "--dotfiles",
        action="append",
        default=[],
        help="Paths to scan for existing keymaps (repeatable)",
    )
    parser.add_argument(
        "--top", type=int, default=config.get("analysis.top", 6), help="Number of sequences to analyze"
    )
    parser.add_argument(
        "--window", type=int, default=config.get("analysis.window_size", 5), help="Sequence window size"
    )
    parser.add_argument(
        "--min-occurrences",
        type=int,
        default=config.get("analysis.min_occurrences", 2),
        help="Minimum repeats before considering a sequence",
    )
    parser.add_argument("--mode", help="Only analyze events recorded in this mode")
    parser.add_argument(
        "--skip-ai", action="store_true", help="Skip model suggestions and only print heuristics"
    )
    parser.add_argument("--model", default=config.get("suggestions.model"), help="Model identifier")
    parser.add_argument(
        "--temperature",
        type=float,
        default=config.get("suggestions.temperature", 0.1),
        help="Model temperature",
    )
    parser.add_argument(
        "--format", choices=["human", "json"], default="human", help="Output format"
    )
    parser.add_argument(
        "--suggestions-only",
        action="store_true",
        help="Print only AI suggestions in human format",
    )
    parser.add_argument("--export-csv", help="Write ranked sequences to this CSV file")
    return parser


def _config_path(argv: Optional[Sequence[str]]) -> str:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default="config.yaml")
    known, _ = pre.parse_known_args(argv)
    return known.config


def main(argv: Optional[Sequence[str]] = None, generator: Optional[TextGenerator] = None) -> int:
    """Main entry point for the keymap advisor."""
    config = ConfigManager(_config_path(argv))
    args = build_parser(config).parse_args(argv)

    setup_logging(
        config.get("output.log_level", "INFO"), config.get("output.log_file")
    )

    log_path = resolve_path(args.log)
    if args.format == "human":
        print(f"[keymap-advisor] Analyzing log at {log_path} ...")

    analyzer = KeystrokeAnalyzer(config)
    analyzer.load_data(log_path)
    sequences = analyzer.analyze_sequences(
        top=args.top,
        mode=args.mode,
        window_size=args.window,
        min_occurrences=args.min_occurrences,
    )
    movements = analyzer.analyze_movements(mode=args.mode)

    dotfiles_paths = resolve_dotfiles(args.dotfiles)
    existing_keymaps = collect_keymaps(dotfiles_paths) if dotfiles_paths else []

    suggestions: Optional[SuggestionResponse] = None
    if not args.skip_ai and config.get("suggestions.enabled", True):
        if generator is None:
            claude = ClaudeTextGenerator(config)
            generator = claude if claude.available else None
        if generator is None:
            logging.warning("CLAUDE_API_KEY not found. Skipping AI suggestions.")
        else:
            try:
                suggestions = request_suggestions(
                    sequences,
                    existing_keymaps,
                    generator,
                    model=args.model,
                    temperature=args.temperature,
                    max_tokens=config.get("suggestions.max_tokens", 800),
                    top_n=args.top,
                )
            except SuggestionError as e:
                logging.error(f"Failed to request model suggestions: {e}")
            except Exception as e:
                logging.error(f"Text generator failed: {type(e).__name__}: {e}")

    if args.export_csv:
        path = export_sequences_csv(sequences, args.export_csv)
        logging.info(f"Exported {len(sequences)} sequences to {path}")

    if args.format == "json":
        payload = build_payload(
            str(log_path),
            len(analyzer.events),
            sequences,
            len(existing_keymaps),
            dotfiles_paths,
            suggestions,
            movements,
        )
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print(
            render_human(
                str(log_path),
                analyzer.events,
                sequences,
                len(existing_keymaps),
                dotfiles_paths,
                suggestions,
                movements,
                suggestions_only=args.suggestions_only,
            )
        )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
