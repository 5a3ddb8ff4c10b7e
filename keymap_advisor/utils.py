# ABOUTME: Shared data structures, configuration and keystroke log loading for the keymap advisor
import json
import math
import os
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
import yaml
import logging


# Synthetic mode used by the capture layer for completed command-line entries
COMMAND_MODE = "command"

MODE_LABELS = {
    "n": "Normal",
    "i": "Insert",
    "v": "Visual",
    "V": "Visual-Line",
    "\x16": "Visual-Block",
    "c": "Command",
    "R": "Replace",
    "x": "Visual",
    "s": "Select",
    "o": "Operator-Pending",
    "t": "Terminal",
    COMMAND_MODE: "Command",
}


def mode_label(mode: str) -> str:
    """Human readable name for an editor mode code."""
    return MODE_LABELS.get(mode, mode)


@dataclass
class KeystrokeEvent:
    """One observed editor input action."""

    seq: Optional[int] = None
    raw: str = ""
    key: str = ""
    mode: str = ""
    timestamp: Optional[int] = 0
    blocking: bool = False
    bufnr: Optional[int] = None
    filetype: Optional[str] = None
    file: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        extra = data.pop("extra")
        data.update(extra)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeystrokeEvent":
        """Create from dictionary, keeping unknown fields in ``extra``.

        Known fields with the wrong type are coerced: numbers become text for
        string fields, and non-numeric ``seq``/``timestamp``/``bufnr`` values
        are treated as missing.
        """
        known = {f.name for f in fields(cls)} - {"extra"}
        values = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}

        for name in ("raw", "key", "mode"):
            if name in values:
                values[name] = _as_text(values[name]) or ""
        for name in ("filetype", "file"):
            if name in values:
                values[name] = _as_text(values[name])
        for name in ("seq", "bufnr"):
            if name in values:
                values[name] = _as_int(values[name])
        if "timestamp" in values:
            values["timestamp"] = _as_number(values["timestamp"]) or 0
        if "blocking" in values:
            values["blocking"] = bool(values["blocking"])
        return cls(**values, extra=extra)


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def _as_int(value: Any) -> Optional[int]:
    number = _as_number(value)
    if number is None or number != int(number):
        return None
    return int(number)


@dataclass
class AnalyzerOptions:
    window_size: int = 5
    min_sequence_length: int = 2
    min_occurrences: int = 2


@dataclass
class SequenceStat:
    """Aggregated statistics for one (mode, keys) signature."""

    mode: str
    keys: List[str]
    count: int
    mean_delta_ms: float
    sample_file: Optional[str] = None

    @property
    def signature(self) -> str:
        return f"{self.mode}:{' '.join(self.keys)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "keys": list(self.keys),
            "count": self.count,
            "meanDeltaMs": self.mean_delta_ms,
            "sampleFile": self.sample_file,
        }


@dataclass(frozen=True)
class KeymapDefinition:
    """An existing keybinding found in a user's configuration files."""

    mode: str
    lhs: str
    source: str
    line: int
    rhs: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ModelSuggestion:
    mode: str
    lhs: str
    sequence: List[str]
    rationale: str = ""
    recommended_mapping: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "lhs": self.lhs,
            "sequence": list(self.sequence),
            "recommendedMapping": self.recommended_mapping,
            "rationale": self.rationale,
        }


@dataclass
class SuggestionResponse:
    suggestions: List[ModelSuggestion]
    raw: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestions": [s.to_dict() for s in self.suggestions],
            "raw": self.raw,
        }


@dataclass
class MovementSuggestion:
    """Heuristic proposal for compressing a repeated motion into a count."""

    mode: str
    mode_label: str
    key: str
    occurrences: int
    average: float
    max_len: int
    mapping_lhs: str
    mapping_rhs: str
    mapping_snippet: str
    direction: str
    min_repeat: int
    title: str
    rationale: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """Configuration management with defaults."""

    def __init__(self, config_path: Union[str, Path] = "config.yaml"):
        self.config_path = Path(config_path)
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration, falling back to defaults."""
        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            logging.warning(f"Config file {self.config_path} not found, using defaults")
            return self._default_config()
        except yaml.YAMLError as e:
            logging.error(f"Error parsing config file: {e}")
            return self._default_config()

        if not isinstance(config, dict):
            return self._default_config()
        return _merge(self._default_config(), config)

    def _default_config(self) -> Dict[str, Any]:
        """Default configuration values."""
        return {
            "analysis": {
                "window_size": 5,
                "min_sequence_length": 2,
                "min_occurrences": 2,
                "top": 6,
            },
            "movements": {
                "min_repeat": 3,
                "min_occurrence": 2,
            },
            "suggestions": {
                "enabled": True,
                "api_base": "https://api.anthropic.com",
                "model": "claude-3-5-sonnet-20241022",
                "temperature": 0.1,
                "max_tokens": 800,
                "timeout_seconds": 30,
            },
            "output": {
                "log_level": "INFO",
                "log_file": None,
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value with dot notation."""
        keys = key.split(".")
        value = self.config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


class DataManager:
    """Reads the newline-delimited JSON keystroke log written by the editor."""

    def __init__(self, log_path: Union[str, Path]):
        self.log_path = Path(log_path)

    def ensure_log_file(self) -> None:
        """Create an empty log (and its directory) if none exists yet."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self.log_path.exists():
            self.log_path.touch()

    def load_events(self) -> List[KeystrokeEvent]:
        """Load keystroke events in file order."""
        # Undecodable bytes become U+FFFD so only the affected line fails to parse
        with open(self.log_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
        return parse_keystroke_log(text)


def read_keystroke_log(log_path: Union[str, Path]) -> List[KeystrokeEvent]:
    return DataManager(log_path).load_events()


def parse_keystroke_log(text: str) -> List[KeystrokeEvent]:
    """Decode each non-blank line independently, skipping malformed records."""
    events = []
    for index, line in enumerate(text.split("\n"), 1):
        stripped = line.strip()
        if not stripped:
            continue
        try:
            data = json.loads(stripped)
        except json.JSONDecodeError as e:
            logging.warning(f"Skipping malformed log line {index}: {e}")
            continue
        if not isinstance(data, dict):
            logging.warning(f"Skipping log line {index}: expected an object")
            continue
        events.append(KeystrokeEvent.from_dict(data))
    return events


def default_log_path() -> Path:
    """Location the editor plugin writes keystrokes to."""
    base = os.environ.get("XDG_DATA_HOME")
    if not base:
        base = str(Path.home() / ".local" / "share")
    return Path(base) / "nvim" / "ai_keymap" / "keystrokes.jsonl"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure logging for the application."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
