# ABOUTME: Prompt construction and reply parsing for model-generated keymap suggestions
import json
import os
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging

import requests

from .utils import (
    ConfigManager,
    KeymapDefinition,
    ModelSuggestion,
    SequenceStat,
    SuggestionResponse,
    mode_label,
)

# (system, prompt, params) -> reply text
TextGenerator = Callable[[str, str, Dict[str, Any]], str]

MAX_KEYMAPS_PER_MODE = 40

SYSTEM_PROMPT = (
    "You are an HCI-focused Neovim mentor who proposes ergonomic keymaps. "
    "You must output strict JSON. Avoid conflicts with provided keymaps. "
    "Focus on repetitive motions (like jjjj, wwww) or complex command sequences. "
    "NEVER suggest mappings for simple insert mode text typing. "
    "Suggest concise leader mappings that compress repetitive keystroke sequences."
)

RESPONSE_SHAPE = """[
  {
    "mode": "n",
    "lhs": "<leader>f",
    "sequence": ["d", "w"],
    "recommendedMapping": ":execute '...'\\n",
    "rationale": "Explain how this reduces cognitive load."
  }
]"""

CONSTRAINTS = [
    "- Do not reuse any (mode, lhs) combination listed under existing keymaps.",
    "- Prefer SHORTER mappings that are faster to type than the original sequence.",
    "- For 3-key sequences like 'ciw', suggest a 2-key mapping like '<leader>w' "
    "(NOT '<leader>ciw' which is longer!).",
    "- ONLY suggest mappings for meaningful patterns: repeated motions (jjj, kkk), "
    "text object operations (ciw, di\", va(, gcc), or complex command patterns.",
    "- For Command mode patterns, create shortcuts that execute COMPLETE commands, not partial ones.",
    "- NEVER suggest Insert mode mappings that just type regular text characters.",
    "- For repeated motions like 'jjjj', teach users to use count prefixes like '4j' "
    "instead of creating a mapping.",
    "- The 'recommendedMapping' should be the COMPLETE Vim command to execute, ready to use.",
    "- Reference the underlying sequence in your rationale to support review.",
    "- If no safe suggestion exists, return an empty JSON array [].",
]


class SuggestionError(Exception):
    """Raised when the text generator cannot produce a reply."""


def format_sequences(sequences: Sequence[SequenceStat]) -> str:
    lines = []
    for index, seq in enumerate(sequences, 1):
        gesture = " → ".join(seq.keys)
        sample = f" sample={seq.sample_file}" if seq.sample_file else ""
        lines.append(
            f"{index}. mode={mode_label(seq.mode)} sequence=[{gesture}] "
            f"count={seq.count} avg_interval={seq.mean_delta_ms:.2f}ms{sample}"
        )
    return "\n".join(lines)


def format_existing_keymaps(definitions: Sequence[KeymapDefinition]) -> str:
    """Group keymaps by mode, at most 40 per mode, as ``lhs (source:line)``."""
    grouped: "OrderedDict[str, List[KeymapDefinition]]" = OrderedDict()
    for definition in definitions:
        grouped.setdefault(definition.mode, []).append(definition)

    lines = []
    for mode, mappings in grouped.items():
        entries = ", ".join(
            f"{m.lhs} ({m.source}:{m.line})" for m in mappings[:MAX_KEYMAPS_PER_MODE]
        )
        lines.append(f"mode={mode_label(mode)}: {entries}")
    return "\n".join(lines)


def build_prompt(
    sequences: Sequence[SequenceStat], existing: Sequence[KeymapDefinition]
) -> str:
    return "\n".join(
        [
            "Analyse the following Neovim keystroke sequences and produce JSON "
            "suggestions for new keybindings.",
            "",
            "Recurring sequences:",
            format_sequences(sequences),
            "",
            "Existing keymaps harvested from the user's dotfiles (avoid conflicts):",
            format_existing_keymaps(existing) or "(none provided)",
            "",
            "Respond with a JSON array of objects using this shape:",
            RESPONSE_SHAPE,
            "",
            "Constraints:",
            *CONSTRAINTS,
        ]
    )


def extract_json_array(text: str) -> Optional[str]:
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def sanitize_suggestion(value: Any) -> Optional[ModelSuggestion]:
    if not isinstance(value, dict):
        return None

    mode = value.get("mode")
    lhs = value.get("lhs")
    sequence = value.get("sequence")
    if not isinstance(mode, str) or not mode:
        return None
    if not isinstance(lhs, str) or not lhs:
        return None
    if not isinstance(sequence, list):
        return None
    keys = [item for item in sequence if isinstance(item, str)]
    if not keys:
        return None

    rationale = value.get("rationale")
    recommended = value.get("recommendedMapping")
    return ModelSuggestion(
        mode=mode,
        lhs=lhs,
        sequence=keys,
        rationale=rationale if isinstance(rationale, str) else "",
        recommended_mapping=recommended if isinstance(recommended, str) else None,
    )


def parse_suggestions(text: str) -> List[ModelSuggestion]:
    """Pull the JSON array out of a model reply and keep the valid entries."""
    json_text = extract_json_array(text or "")
    if not json_text:
        return []

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        logging.warning(f"Failed to parse model suggestions: {e}")
        return []
    if not isinstance(parsed, list):
        return []

    suggestions = []
    for entry in parsed:
        suggestion = sanitize_suggestion(entry)
        if suggestion is not None:
            suggestions.append(suggestion)
    return suggestions


def request_suggestions(
    sequences: Sequence[SequenceStat],
    existing_keymaps: Sequence[KeymapDefinition],
    generator: TextGenerator,
    model: Optional[str] = None,
    temperature: float = 0.1,
    max_tokens: int = 800,
    top_n: int = 5,
) -> SuggestionResponse:
    """Ask ``generator`` for keymap proposals; its errors propagate to the caller."""
    if not sequences:
        return SuggestionResponse(
            suggestions=[], raw="No recurring sequences available for suggestion."
        )

    prompt = build_prompt(list(sequences)[:top_n], existing_keymaps)
    params = {"model": model, "temperature": temperature, "max_tokens": max_tokens}
    text = generator(SYSTEM_PROMPT, prompt, params)
    return SuggestionResponse(suggestions=parse_suggestions(text), raw=text)


class ClaudeTextGenerator:
    """Text generator backed by the Anthropic Messages API."""

    def __init__(self, config: Optional[ConfigManager] = None, api_key: Optional[str] = None):
        self.config = config or ConfigManager()
        self.api_key = (
            api_key
            or os.getenv("CLAUDE_API_KEY")
            or self.config.get("suggestions.api_key", "")
        )
        self.api_base = self.config.get("suggestions.api_base", "https://api.anthropic.com")
        self.timeout = self.config.get("suggestions.timeout_seconds", 30)
        self.default_model = self.config.get("suggestions.model", "claude-3-5-sonnet-20241022")

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def __call__(self, system: str, prompt: str, params: Dict[str, Any]) -> str:
        if not self.api_key:
            raise SuggestionError("Set CLAUDE_API_KEY environment variable")

        model = params.get("model") or self.default_model
        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "anthropic-version": "2023-06-01",
        }
        payload = {
            "model": model,
            "max_tokens": params.get("max_tokens", 800),
            "temperature": params.get("temperature", 0.1),
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }

        try:
            logging.info(f"Making Claude API request (model: {model})...")
            response = requests.post(
                f"{self.api_base}/v1/messages",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise SuggestionError(f"API timeout after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise SuggestionError(f"Claude API request failed: {e}") from e

        if response.status_code != 200:
            raise SuggestionError(
                f"API returned {response.status_code}: {response.text}"
            )

        try:
            content = response.json().get("content", [])
            if not content:
                raise SuggestionError("API returned no content")
            text = content[0].get("text", "")
        except (ValueError, AttributeError, TypeError, KeyError, IndexError) as e:
            raise SuggestionError(f"Unexpected API response: {e}") from e
        if not isinstance(text, str):
            raise SuggestionError("API returned non-text content")

        logging.info("Successfully received Claude API response")
        return text
