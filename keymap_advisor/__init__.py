# ABOUTME: Package initialization for the keymap advisor
"""
Keymap Advisor

Finds recurring editor keystroke gestures in a capture log and cross-checks
them against keybindings already defined in the user's dotfiles before asking
a language model for new mapping suggestions.
"""

__version__ = "1.0.0"
__description__ = "Keystroke gesture analysis and conflict-aware keymap suggestions"

from .analyzer import KeystrokeAnalyzer, find_frequent_sequences, detect_repeated_movements
from .keymaps import collect_keymaps
from .suggest import ClaudeTextGenerator, SuggestionError, parse_suggestions, request_suggestions
from .utils import (
    AnalyzerOptions,
    ConfigManager,
    DataManager,
    KeymapDefinition,
    KeystrokeEvent,
    ModelSuggestion,
    SequenceStat,
    SuggestionResponse,
    read_keystroke_log,
)

__all__ = [
    "KeystrokeAnalyzer",
    "find_frequent_sequences",
    "detect_repeated_movements",
    "collect_keymaps",
    "ClaudeTextGenerator",
    "SuggestionError",
    "parse_suggestions",
    "request_suggestions",
    "AnalyzerOptions",
    "ConfigManager",
    "DataManager",
    "KeymapDefinition",
    "KeystrokeEvent",
    "ModelSuggestion",
    "SequenceStat",
    "SuggestionResponse",
    "read_keystroke_log",
]
