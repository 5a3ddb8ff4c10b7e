# ABOUTME: Sliding-window sequence analysis that turns keystroke logs into ranked gesture statistics
import math
from collections import defaultdict
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
import logging

from .utils import (
    COMMAND_MODE,
    AnalyzerOptions,
    ConfigManager,
    DataManager,
    KeystrokeEvent,
    MovementSuggestion,
    SequenceStat,
    mode_label,
)

NORMAL_MODE = "n"
VISUAL_MODES = {"v", "V", "\x16"}
TEXT_ENTRY_MODES = {"i", "R"}

# Interestingness policy for Normal-mode sequences
OPERATORS = {"c", "d", "y", "v"}
TEXT_OBJECT_MODIFIERS = {"i", "a"}
COMMENT_TOGGLE = ("g", "c", "c")
# Two, not three: a lone "j j" or "d d" repeat must still count as a gesture
REPEATED_MOTION_MIN_LENGTH = 2

NANOSECONDS_PER_MS = 1_000_000

DEFAULT_MOVEMENT_INFO: Dict[str, Dict[str, Dict[str, Any]]] = {
    "n": {
        "j": {"direction": "down", "lhs": "<leader>J", "min_count": 3},
        "k": {"direction": "up", "lhs": "<leader>K", "min_count": 3},
        "h": {"direction": "left", "lhs": "<leader>H", "min_count": 5},
        "l": {"direction": "right", "lhs": "<leader>L", "min_count": 5},
    },
}

_OPTION_ALIASES = {
    "windowSize": "window_size",
    "minSequenceLength": "min_sequence_length",
    "minOccurrences": "min_occurrences",
}

EventLike = Union[KeystrokeEvent, Mapping[str, Any]]


def combine_options(
    options: Optional[Union[AnalyzerOptions, Mapping[str, Any]]] = None, **overrides: Any
) -> AnalyzerOptions:
    """Fill unset analyzer options with defaults."""
    if options is None:
        combined = AnalyzerOptions()
    elif isinstance(options, AnalyzerOptions):
        combined = replace(options)
    else:
        values = {_OPTION_ALIASES.get(k, k): v for k, v in options.items() if v is not None}
        combined = AnalyzerOptions(**values)

    for key, value in overrides.items():
        if value is not None:
            setattr(combined, _OPTION_ALIASES.get(key, key), value)
    return combined


def _numeric(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def order_events(events: Iterable[EventLike]) -> List[KeystrokeEvent]:
    """Stable sort by sequence number; events without one go last."""
    coerced = [e if isinstance(e, KeystrokeEvent) else KeystrokeEvent.from_dict(e) for e in events]

    def sort_key(event: KeystrokeEvent):
        seq = _numeric(event.seq)
        timestamp = _numeric(event.timestamp) or 0
        if seq is None:
            return (math.inf, timestamp)
        return (seq, timestamp)

    return sorted(coerced, key=sort_key)


def normalize_key(event: KeystrokeEvent) -> Optional[str]:
    key = event.key or event.raw or ""
    if not isinstance(key, str):
        key = str(key)
    key = key.strip()
    return key or None


def compute_delta(start: Any, finish: Any) -> float:
    """Milliseconds between two nanosecond timestamps, 0 when either is missing."""
    start, finish = _numeric(start), _numeric(finish)
    if not start or not finish:
        return 0.0
    return (finish - start) / NANOSECONDS_PER_MS


def _record(
    totals: Dict[str, SequenceStat],
    mode: str,
    keys: List[str],
    delta_ms: float,
    sample_file: Optional[str],
) -> None:
    signature = f"{mode}:{' '.join(keys)}"
    existing = totals.get(signature)
    if existing is None:
        totals[signature] = SequenceStat(
            mode=mode,
            keys=list(keys),
            count=1,
            mean_delta_ms=delta_ms,
            sample_file=sample_file or None,
        )
        return

    existing.mean_delta_ms = (existing.mean_delta_ms * existing.count + delta_ms) / (
        existing.count + 1
    )
    existing.count += 1


def _aggregate_commands(
    commands: List[KeystrokeEvent], totals: Dict[str, SequenceStat]
) -> None:
    # A completed command is atomic, so it has no inter-key timing
    for event in commands:
        text = normalize_key(event)
        if text:
            _record(totals, COMMAND_MODE, [text], 0.0, event.file)


def _aggregate_windows(
    events: List[KeystrokeEvent], options: AnalyzerOptions, totals: Dict[str, SequenceStat]
) -> None:
    for i, base in enumerate(events):
        base_key = normalize_key(base)
        if not base_key:
            continue

        sequence = [base_key]
        for current in events[i + 1 : i + 1 + options.window_size]:
            if current.mode != base.mode:
                break

            key = normalize_key(current)
            if not key:
                continue
            sequence.append(key)

            if len(sequence) < options.min_sequence_length:
                continue

            delta_ms = compute_delta(base.timestamp, current.timestamp)
            _record(totals, base.mode, sequence, delta_ms, base.file)


def is_interesting(stat: SequenceStat) -> bool:
    """Decide whether a sequence looks like a gesture rather than noise."""
    keys = stat.keys
    if stat.mode == COMMAND_MODE or stat.mode in VISUAL_MODES:
        return True

    if stat.mode in TEXT_ENTRY_MODES:
        # plain typing
        return not all(len(k) == 1 and k.isalnum() and k.isprintable() for k in keys)

    if any(k.startswith("<") for k in keys):
        return True

    if stat.mode != NORMAL_MODE:
        return True

    if len(keys) >= REPEATED_MOTION_MIN_LENGTH and len(set(keys)) == 1:
        return True
    if len(keys) == 3 and keys[0] in OPERATORS and keys[1] in TEXT_OBJECT_MODIFIERS:
        return True
    return tuple(keys) == COMMENT_TOGGLE


def find_frequent_sequences(
    events: Iterable[EventLike],
    options: Optional[Union[AnalyzerOptions, Mapping[str, Any]]] = None,
    **overrides: Any,
) -> List[SequenceStat]:
    """Rank recurring mode-scoped key sequences.

    Completed commands are counted by literal text. All other events are
    scanned with a forward window that stops at the first mode change; every
    prefix of at least ``min_sequence_length`` keys is bucketed by signature
    with a running mean of its start-to-end latency. Results with fewer than
    ``min_occurrences`` hits or that fail :func:`is_interesting` are dropped,
    and the rest are sorted by count (descending) then mean latency.
    """
    opts = combine_options(options, **overrides)
    ordered = order_events(events)
    if not ordered:
        return []

    commands = [e for e in ordered if e.mode == COMMAND_MODE]
    keystrokes = [e for e in ordered if e.mode != COMMAND_MODE]

    totals: Dict[str, SequenceStat] = {}
    _aggregate_commands(commands, totals)
    _aggregate_windows(keystrokes, opts, totals)

    sequences = [
        stat
        for stat in totals.values()
        if stat.count >= opts.min_occurrences and is_interesting(stat)
    ]
    sequences.sort(key=lambda s: (-s.count, s.mean_delta_ms))
    return sequences


def _build_mapping(mode: str, lhs: str, rhs: str, direction: str, count: int) -> str:
    desc = f"Move {count} lines {direction}"
    return f"vim.keymap.set('{mode}', '{lhs}', '{rhs}', {{ desc = '{desc}' }})"


def detect_repeated_movements(
    events: Iterable[EventLike],
    min_repeat: int = 3,
    min_occurrence: int = 2,
    movement_info: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
) -> List[MovementSuggestion]:
    """Find runs of the same motion key and propose a count-prefixed mapping."""
    movement_info = movement_info or DEFAULT_MOVEMENT_INFO
    ordered = order_events(events)

    stats: Dict[tuple, Dict[str, int]] = defaultdict(
        lambda: {"occurrences": 0, "total_len": 0, "max_len": 0}
    )

    i = 0
    while i < len(ordered):
        event = ordered[i]
        mode = event.mode or ""
        key = normalize_key(event) or ""
        if key not in movement_info.get(mode, {}):
            i += 1
            continue

        j = i + 1
        while j < len(ordered):
            nxt = ordered[j]
            if (nxt.mode or "") != mode or normalize_key(nxt) != key:
                break
            prev_seq, next_seq = _numeric(ordered[j - 1].seq), _numeric(nxt.seq)
            if prev_seq and next_seq and next_seq != prev_seq + 1:
                break
            j += 1

        repeat_len = j - i
        if repeat_len >= min_repeat:
            entry = stats[(mode, key)]
            entry["occurrences"] += 1
            entry["total_len"] += repeat_len
            entry["max_len"] = max(entry["max_len"], repeat_len)
        i = j

    suggestions = []
    for (mode, key), entry in stats.items():
        if entry["occurrences"] < min_occurrence:
            continue
        info = movement_info[mode][key]
        average = entry["total_len"] / entry["occurrences"]
        suggested_count = max(info.get("min_count", min_repeat), math.floor(average + 0.5))
        lhs = info.get("lhs") or f"<leader>{key.upper()}"
        rhs = f"{suggested_count}{key}"
        label = mode_label(mode)

        suggestions.append(
            MovementSuggestion(
                mode=mode,
                mode_label=label,
                key=key,
                occurrences=entry["occurrences"],
                average=average,
                max_len=entry["max_len"],
                mapping_lhs=lhs,
                mapping_rhs=rhs,
                mapping_snippet=_build_mapping(mode, lhs, rhs, info["direction"], suggested_count),
                direction=info["direction"],
                min_repeat=min_repeat,
                title=f"{label}: repeated '{key}' presses (avg {average:.1f})",
                rationale=(
                    f"Detected {entry['occurrences']} occurrences in {label} of pressing "
                    f"'{key}' consecutively at least {min_repeat} times "
                    f"(max {entry['max_len']}). Consider using a count prefix or "
                    f"mapping to compress the movement."
                ),
            )
        )

    suggestions.sort(key=lambda s: (-s.occurrences, -s.average))
    return suggestions


class KeystrokeAnalyzer:
    """Config-driven wrapper used by the command line."""

    def __init__(self, config: Optional[ConfigManager] = None):
        self.config = config or ConfigManager()
        self.events: List[KeystrokeEvent] = []

    def load_data(self, log_path: Union[str, Path]) -> None:
        """Load keystroke data for analysis."""
        logging.info(f"Loading keystroke log from {log_path}...")
        data_manager = DataManager(log_path)
        data_manager.ensure_log_file()
        self.events = data_manager.load_events()
        logging.info(f"Loaded {len(self.events)} keystroke events")

    def options(self, **overrides: Any) -> AnalyzerOptions:
        return combine_options(
            {
                "window_size": self.config.get("analysis.window_size", 5),
                "min_sequence_length": self.config.get("analysis.min_sequence_length", 2),
                "min_occurrences": self.config.get("analysis.min_occurrences", 2),
            },
            **overrides,
        )

    def filtered_events(self, mode: Optional[str] = None) -> List[KeystrokeEvent]:
        if not mode:
            return list(self.events)
        return [e for e in self.events if e.mode == mode]

    def analyze_sequences(
        self, top: Optional[int] = None, mode: Optional[str] = None, **overrides: Any
    ) -> List[SequenceStat]:
        """Ranked sequences, truncated to ``top`` entries."""
        logging.info("Analyzing keystroke sequences...")
        sequences = find_frequent_sequences(self.filtered_events(mode), self.options(**overrides))
        if top is None:
            top = self.config.get("analysis.top", 6)
        return sequences[:top]

    def analyze_movements(self, mode: Optional[str] = None) -> List[MovementSuggestion]:
        logging.info("Analyzing repeated movements...")
        return detect_repeated_movements(
            self.filtered_events(mode),
            min_repeat=self.config.get("movements.min_repeat", 3),
            min_occurrence=self.config.get("movements.min_occurrence", 2),
        )
