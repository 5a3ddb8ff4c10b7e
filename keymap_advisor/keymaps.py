# ABOUTME: Best-effort extraction of existing keybindings from Lua and Vimscript configuration files
import os
import re
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union
import logging

from .utils import KeymapDefinition

SUPPORTED_EXTENSIONS = {".lua", ".vim", ".nvim", ".vimrc", ".gvimrc"}
ENTRY_POINT_NAMES = ("init.lua", "init.vim", ".vimrc", "_vimrc", ".gvimrc", ".lua.json")

# (call pattern, number of leading arguments before the mode)
LUA_KEYMAP_PATTERNS = [
    (re.compile(r"vim\.keymap\.set\s*\(([\s\S]*?)\)"), 0),
    (re.compile(r"vim\.api\.nvim_set_keymap\s*\(([\s\S]*?)\)"), 0),
    (re.compile(r"vim\.api\.nvim_buf_set_keymap\s*\(([\s\S]*?)\)"), 1),
]

COMMAND_MODE_TABLE: Dict[str, List[str]] = {
    "map": ["n", "v", "o"],
    "noremap": ["n", "v", "o"],
    "map!": ["i", "c"],
    "noremap!": ["i", "c"],
    "nmap": ["n"],
    "nnoremap": ["n"],
    "xmap": ["x"],
    "xnoremap": ["x"],
    "vmap": ["v"],
    "vnoremap": ["v"],
    "imap": ["i"],
    "inoremap": ["i"],
    "cmap": ["c"],
    "cnoremap": ["c"],
    "smap": ["s"],
    "snoremap": ["s"],
    "omap": ["o"],
    "onoremap": ["o"],
    "tmap": ["t"],
    "tnoremap": ["t"],
    "nmap!": ["n"],
    "vmap!": ["v"],
    "imap!": ["i"],
    "cmap!": ["c"],
    "xmap!": ["x"],
}

VALID_MODES = {"n", "i", "v", "x", "s", "c", "t", "o", "R"}
DEFAULT_MODES = ["n", "v", "o"]
FALSY_MODE_TOKENS = {"false", "nil", "0"}

QUOTES = "\"'`"
OPENERS = "({["
CLOSERS = ")}]"
VIM_COMMENT = '"'

Extractor = Callable[[str, str], List[KeymapDefinition]]


def split_arguments(text: str, limit: int = 4, min_args: int = 2) -> List[str]:
    """Split a call's argument text on top-level commas.

    Commas inside strings or nested brackets are kept. A ``--`` at the top
    level ends the scan once ``min_args`` arguments have been collected.
    """
    args: List[str] = []
    current: List[str] = []
    depth = 0
    quote = ""
    i = 0

    def push() -> None:
        value = "".join(current).strip()
        if value:
            args.append(value)
        current.clear()

    while i < len(text):
        char = text[i]

        if quote:
            current.append(char)
            if char == "\\" and i + 1 < len(text):
                current.append(text[i + 1])
                i += 2
                continue
            if char == quote:
                quote = ""
            i += 1
            continue

        if char in QUOTES:
            quote = char
        elif char in OPENERS:
            depth += 1
        elif char in CLOSERS:
            depth = max(depth - 1, 0)
        elif depth == 0 and char == ",":
            push()
            if len(args) >= limit:
                return args
            i += 1
            continue
        elif depth == 0 and text.startswith("--", i) and len(args) >= min_args:
            break

        current.append(char)
        i += 1

    if len(args) < limit:
        push()
    return args


def extract_string_literal(value: str) -> Optional[str]:
    """Inner text of a quoted literal, or None when it is not quoted."""
    trimmed = value.strip()
    if not trimmed or trimmed[0] not in QUOTES:
        return None

    quote = trimmed[0]
    if len(trimmed) == 1 or not trimmed.endswith(quote):
        return trimmed[1:]
    return re.sub(r"\\([\"'`\\])", r"\1", trimmed[1:-1])


def normalize_modes(expr: str) -> List[str]:
    """Resolve a Lua mode argument into individual mode letters."""
    trimmed = expr.strip()

    if trimmed in FALSY_MODE_TOKENS or re.fullmatch(r"\{\s*\}", trimmed):
        return list(DEFAULT_MODES)

    if trimmed.startswith("{"):
        literals = re.findall(r"[\"'`](.+?)[\"'`]", trimmed)
        return [literal for literal in literals if literal]

    if trimmed[:1] in QUOTES:
        value = extract_string_literal(trimmed)
        if value is None:
            return []
        if value == "":
            # nvim_set_keymap treats "" as :map
            return list(DEFAULT_MODES)
        if len(value) > 1:
            expanded = [char for char in value if char in VALID_MODES]
            if expanded:
                return expanded
        return [value]

    return []


def estimate_line_number(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


def parse_lua_keymaps(content: str, source: str) -> List[KeymapDefinition]:
    """Find ``vim.keymap.set`` style calls and read their first arguments."""
    results = []

    for pattern, leading in LUA_KEYMAP_PATTERNS:
        for match in pattern.finditer(content):
            raw_args = match.group(1)
            if not raw_args:
                continue
            args = split_arguments(raw_args.strip(), 4 + leading, 2 + leading)[leading:]
            if len(args) < 2:
                continue

            modes = normalize_modes(args[0])
            lhs = extract_string_literal(args[1])
            if not lhs or not modes:
                continue

            rhs = args[2].strip() if len(args) > 2 else None
            line = estimate_line_number(content, match.start())
            for mode in modes:
                results.append(
                    KeymapDefinition(mode=mode, lhs=lhs, source=source, line=line, rhs=rhs)
                )

    return results


def resolve_modes_from_command(command: str) -> List[str]:
    return list(COMMAND_MODE_TABLE.get(command, []))


def parse_vim_keymaps(content: str, source: str) -> List[KeymapDefinition]:
    """Read ``nnoremap lhs rhs`` style lines."""
    results = []

    for index, raw_line in enumerate(content.split("\n"), 1):
        line = raw_line.strip()
        if not line or line.startswith(VIM_COMMENT):
            continue

        tokens = line.split(None, 2)
        if len(tokens) < 2:
            continue

        modes = resolve_modes_from_command(tokens[0].lower())
        if not modes:
            continue

        lhs = tokens[1].strip()
        for mode in modes:
            results.append(KeymapDefinition(mode=mode, lhs=lhs, source=source, line=index))

    return results


EXTRACTORS: Dict[str, Extractor] = {
    "lua": parse_lua_keymaps,
    "vim": parse_vim_keymaps,
}


def should_parse_file(path: Union[str, Path]) -> bool:
    path = Path(path)
    if path.suffix in SUPPORTED_EXTENSIONS:
        return True
    return path.name.lower().endswith(ENTRY_POINT_NAMES)


def classify_file(path: Union[str, Path]) -> Optional[str]:
    """Pick the extraction dialect for a file, or None if it is not a keymap source."""
    if not should_parse_file(path):
        return None
    name = Path(path).name.lower()
    if name.endswith(".lua") or name.endswith(".lua.json"):
        return "lua"
    return "vim"


def extract_file(path: Union[str, Path]) -> List[KeymapDefinition]:
    dialect = classify_file(path)
    if dialect is None:
        return []
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read()
    return EXTRACTORS[dialect](content, str(path))


def _traverse(target: Path, definitions: List[KeymapDefinition], seen: Set[str]) -> None:
    try:
        if target.is_dir():
            real = os.path.realpath(target)
            if real in seen:
                return
            seen.add(real)
            for item in sorted(target.iterdir()):
                _traverse(item, definitions, seen)
            return

        if not target.is_file():
            if not target.exists():
                logging.warning(f"Unable to process keymap file at {target}: not found")
            return
        definitions.extend(extract_file(target))
    except Exception as e:
        logging.warning(f"Unable to process keymap file at {target}: {e}")


def collect_keymaps(roots: Iterable[Union[str, Path]]) -> List[KeymapDefinition]:
    """Walk each root depth-first and extract every keybinding found."""
    definitions: List[KeymapDefinition] = []
    seen: Set[str] = set()
    for root in roots:
        _traverse(Path(root), definitions, seen)
    logging.info(f"Collected {len(definitions)} existing keymaps")
    return definitions
