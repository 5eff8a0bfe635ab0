"""Properties file parsing and line-preserving editing"""

from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional, Union

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_SAVE_ESCAPES = {"\t": "\\t", "\n": "\\n", "\r": "\\r", "\f": "\\f"}
_SEPARATORS = "=:"
_WHITESPACE = " \t\f"


def _logical_lines(text: str) -> Iterator[str]:
    pending = None
    for raw in text.splitlines():
        line = raw.lstrip(_WHITESPACE)
        if pending is None and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    out = []
    i = 0
    while i < len(text):
        char = text[i]
        if char != "\\" or i + 1 >= len(text):
            out.append(char)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uxxxx encoding: {text[i:i + 6]!r}")
            out.append(chr(int(digits, 16)))
            i += 6
        else:
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
    # join surrogate pairs produced by \\u escapes
    return "".join(out).encode("utf-16", "surrogatepass").decode("utf-16")


def _split_entry(line: str):
    i = 0
    while i < len(line):
        char = line[i]
        if char == "\\":
            i += 2
            continue
        if char in _SEPARATORS or char in _WHITESPACE:
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(_WHITESPACE)
    if rest[:1] and rest[0] in _SEPARATORS:
        rest = rest[1:].lstrip(_WHITESPACE)
    return key, rest


def load_properties(text: str) -> Dict[str, str]:
    """Parse ``.properties`` text into an ordered dict

    Args:
        text: File content

    Returns:
        dict: Keys and values with escapes decoded
    """

    properties: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_entry(line)
        properties[_unescape(key)] = _unescape(value)
    return properties


def read_properties(path: Union[str, Path]) -> Dict[str, str]:
    return load_properties(Path(path).read_text(encoding="utf-8"))


def _to_hex_escape(code: int) -> str:
    return "\\u%04X" % code


def save_convert(text: str, escape_space: bool) -> str:
    """Escape a key or value for writing to a properties file"""
    out = []
    for index, char in enumerate(text):
        code = ord(char)
        if 61 < code < 127:
            out.append("\\\\" if char == "\\" else char)
        elif char == " ":
            out.append("\\ " if index == 0 or escape_space else " ")
        elif char in _SAVE_ESCAPES:
            out.append(_SAVE_ESCAPES[char])
        elif char in "=:#!":
            out.append("\\" + char)
        elif code < 0x20 or code > 0x7E:
            if code > 0xFFFF:
                # astral characters are written as a UTF-16 surrogate pair
                code -= 0x10000
                out.append(_to_hex_escape(0xD800 + (code >> 10)))
                out.append(_to_hex_escape(0xDC00 + (code & 0x3FF)))
            else:
                out.append(_to_hex_escape(code))
        else:
            out.append(char)
    return "".join(out)


def format_entry(key: str, value: str) -> str:
    return f"{save_convert(key, True)}={save_convert(value, False)}"


def format_comments(comments: str) -> List[str]:
    """Render a comment block; every line starts with ``#`` unless it already has ``#`` or ``!``"""
    escaped = "".join(
        _to_hex_escape(ord(char)) if ord(char) > 0xFF else char
        for char in comments.replace("\r\n", "\n").replace("\r", "\n")
    )
    lines = []
    for index, line in enumerate(escaped.split("\n")):
        if index == 0 or not line or line[0] not in "#!":
            line = "#" + line
        lines.append(line)
    return lines


class PropertiesFile:
    """Line-preserving editor for a local properties file.

    Lines are indexed on load; saving rewrites only the lines whose key is
    being saved, keeps every other line in its original order and appends the
    remaining entries at the end. Line endings are written back as read.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.lines: List[str] = []
        self.endings: List[str] = []
        self.key_lines: Dict[str, int] = {}
        self.load()

    @property
    def newline(self) -> str:
        """Line ending used for appended lines: the file's first one, else LF"""
        return next((ending for ending in self.endings if ending), "\n")

    def load(self) -> None:
        self.lines = []
        self.endings = []
        self.key_lines = {}
        if not self.path.exists():
            return

        with open(self.path, encoding="utf-8", newline="") as f:
            text = f.read()
        for index, raw in enumerate(text.splitlines(keepends=True)):
            line = raw.rstrip("\r\n")
            self.lines.append(line)
            self.endings.append(raw[len(line):])
            if line.strip().startswith("#"):
                continue
            eq = line.find("=")
            if eq > 0:
                self.key_lines[line[:eq]] = index

    def save(self, properties: Mapping[str, str], comment: Optional[str] = None) -> str:
        """Write ``properties`` back into the file

        Args:
            properties: Entries to store
            comment: Optional comment block written before new entries

        Returns:
            str: Path to the saved file
        """

        remaining = dict(properties)
        for key, index in self.key_lines.items():
            if key in remaining:
                self.lines[index] = format_entry(key, str(remaining.pop(key)))

        appended = format_comments(comment) if comment is not None else []
        appended.extend(format_entry(key, str(value)) for key, value in remaining.items())

        newline = self.newline
        output = [line + ending for line, ending in zip(self.lines, self.endings)]
        if appended and output and not self.endings[-1]:
            output[-1] += newline
        output.extend(line + newline for line in appended)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8", newline="") as f:
            f.writelines(output)

        self.load()
        return str(self.path)

    def to_dict(self) -> Dict[str, str]:
        return load_properties("\n".join(self.lines))
