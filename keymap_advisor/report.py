# ABOUTME: Summaries, CSV export and text/JSON rendering of keymap analysis results
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .utils import (
    KeystrokeEvent,
    MovementSuggestion,
    SequenceStat,
    SuggestionResponse,
    mode_label,
)


def mode_distribution(events: Sequence[KeystrokeEvent]) -> List[Dict[str, Any]]:
    """Event counts and percentage share per mode, most frequent first."""
    if not events:
        return []

    counts = pd.Series([event.mode for event in events]).value_counts()
    total = counts.sum()
    return [
        {
            "mode": mode,
            "label": mode_label(mode),
            "count": int(count),
            "percentage": float(count / total * 100),
        }
        for mode, count in counts.items()
    ]


def latency_summary(sequences: Sequence[SequenceStat]) -> Dict[str, float]:
    """Distribution of mean inter-key latency across sequences."""
    deltas = np.array([seq.mean_delta_ms for seq in sequences], dtype=float)
    if deltas.size == 0:
        return {"mean": 0.0, "median": 0.0, "p25": 0.0, "p75": 0.0, "p90": 0.0}

    return {
        "mean": float(np.mean(deltas)),
        "median": float(np.median(deltas)),
        "p25": float(np.percentile(deltas, 25)),
        "p75": float(np.percentile(deltas, 75)),
        "p90": float(np.percentile(deltas, 90)),
    }


def export_sequences_csv(sequences: Sequence[SequenceStat], filename: Union[str, Path]) -> Path:
    data = [
        {
            "mode": seq.mode,
            "keys": " ".join(seq.keys),
            "count": seq.count,
            "mean_delta_ms": seq.mean_delta_ms,
            "sample_file": seq.sample_file or "",
        }
        for seq in sequences
    ]
    df = pd.DataFrame(data, columns=["mode", "keys", "count", "mean_delta_ms", "sample_file"])
    path = Path(filename)
    df.to_csv(path, index=False)
    return path


def build_payload(
    log_path: str,
    event_count: int,
    sequences: Sequence[SequenceStat],
    keymap_count: int,
    dotfiles_paths: Sequence[str],
    suggestions: Optional[SuggestionResponse],
    movements: Sequence[MovementSuggestion] = (),
) -> Dict[str, Any]:
    return {
        "logPath": log_path,
        "events": event_count,
        "sequences": [seq.to_dict() for seq in sequences],
        "movements": [m.to_dict() for m in movements],
        "keymapCount": keymap_count,
        "dotfilesPaths": list(dotfiles_paths),
        "ai": suggestions.to_dict() if suggestions is not None else None,
    }


def _render_suggestions(suggestions: Optional[SuggestionResponse]) -> List[str]:
    if suggestions is None:
        return ["AI Suggestions: skipped."]
    if not suggestions.suggestions:
        return ["AI Suggestions: none (model returned empty set)."]

    lines = ["AI Suggestions:"]
    for index, suggestion in enumerate(suggestions.suggestions, 1):
        lines.append(
            f"{index}. [{suggestion.mode}] map {suggestion.lhs} => "
            f"sequence {' '.join(suggestion.sequence)}"
        )
        if suggestion.recommended_mapping:
            lines.append(f"   recommended mapping: {suggestion.recommended_mapping}")
        if suggestion.rationale:
            lines.append(f"   rationale: {suggestion.rationale}")
    return lines


def render_human(
    log_path: str,
    events: Sequence[KeystrokeEvent],
    sequences: Sequence[SequenceStat],
    keymap_count: int,
    dotfiles_paths: Sequence[str],
    suggestions: Optional[SuggestionResponse],
    movements: Sequence[MovementSuggestion] = (),
    suggestions_only: bool = False,
) -> str:
    if suggestions_only:
        return "\n".join(_render_suggestions(suggestions))

    lines = [
        "=== AI Keymap Analyzer ===",
        f"Log: {log_path}",
        f"Events processed: {len(events)}",
        f"Sequences analysed: {len(sequences)}",
    ]
    if dotfiles_paths:
        lines.append(f"Dotfiles scanned: {', '.join(dotfiles_paths)}")
        lines.append(f"Existing keymaps found: {keymap_count}")
    else:
        lines.append("Dotfiles scanned: none")

    distribution = mode_distribution(events)
    if distribution:
        lines.append("")
        lines.append("Mode distribution:")
        for row in distribution:
            lines.append(f"- {row['label']:<16} {row['count']:>6} ({row['percentage']:.1f}%)")

    lines.append("")
    if not sequences:
        lines.append("No repeating sequences detected yet.")
    else:
        lines.append("Top sequences:")
        for index, seq in enumerate(sequences, 1):
            sample = f" sample={seq.sample_file}" if seq.sample_file else ""
            lines.append(
                f"{index}. mode={seq.mode} count={seq.count} "
                f"avgΔ={seq.mean_delta_ms:.2f}ms{sample}"
            )
            lines.append(f"   {' → '.join(seq.keys)}")
        summary = latency_summary(sequences)
        lines.append(
            f"Latency: median {summary['median']:.2f}ms, "
            f"p90 {summary['p90']:.2f}ms"
        )

    if movements:
        lines.append("")
        lines.append("Movement heuristics:")
        for movement in movements:
            lines.append(f"- {movement.title}")
            lines.append(f"  {movement.mapping_snippet}")

    lines.append("")
    lines.extend(_render_suggestions(suggestions))
    return "\n".join(lines)
