"""Binary/text classification of remote file content.

Checks run in a fixed order and the first decisive one wins:

    1. Known magic-byte signature       -> binary, confidence 1.0
    2. Any NUL byte                     -> binary, confidence 1.0
    3. Leading shebang                  -> text script, confidence 1.0
    4. Printable-character ratio        -> text above 0.85, binary below 0.7,
                                           low-confidence text in between

The remote transport hands content back as a string in which each character
carries one byte, so bytes are decoded as latin-1 to keep that mapping.
"""

from __future__ import annotations

import re
from typing import Union

from .models import Classification

# Longest prefixes first so PNG's full 8-byte header is reported precisely
BINARY_SIGNATURES: tuple[tuple[str, str], ...] = (
    ("\x89PNG\r\n\x1a\n", "PNG image"),
    ("\x89PNG", "PNG image"),
    ("\x7fELF", "ELF executable"),
    ("\xff\xd8\xff", "JPEG image"),
    ("GIF87a", "GIF image"),
    ("GIF89a", "GIF image"),
    ("%PDF", "PDF document"),
    ("PK\x03\x04", "ZIP archive"),
    ("\x1f\x8b", "GZIP compressed"),
)

TEXT_RATIO = 0.85
BINARY_RATIO = 0.7

_PRINTABLE = frozenset(chr(c) for c in range(0x20, 0x7F)) | {"\n", "\r", "\t"}

# Interpreter substring -> script label, checked in order
_INTERPRETERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("/bin/sh", "/bin/bash"), "shell-script"),
    (("python",), "python-script"),
    (("node", "nodejs"), "javascript-script"),
    (("perl",), "perl-script"),
    (("ruby",), "ruby-script"),
    (("php",), "php-script"),
)

_JS_MARKERS = ("function ", "const ", "let ", "var ")
_SHELL_MARKERS = ("export ", "source ")
_ASSIGNMENT_START = re.compile(r"^[A-Z_]+=")


def format_magic_bytes(content: str) -> str:
    """Hex of the first 8 characters, space separated."""
    return " ".join(f"{ord(c):02x}" for c in content[:8])


class ContentClassifier:
    """Decides binary vs. text and a coarse file-type label."""

    def classify(self, content: Union[str, bytes]) -> Classification:
        if isinstance(content, bytes):
            content = content.decode("latin-1")

        if not content:
            return Classification(is_binary=False, file_type="empty", confidence=1.0)

        magic = format_magic_bytes(content)

        for signature, label in BINARY_SIGNATURES:
            if content.startswith(signature):
                return Classification(True, label, 1.0, magic)

        if "\0" in content:
            return Classification(True, "binary", 1.0, magic)

        if content.startswith("#!"):
            return Classification(False, self._script_type(content), 1.0, magic)

        printable = sum(1 for c in content if c in _PRINTABLE)
        ratio = printable / len(content)

        if ratio > TEXT_RATIO:
            return Classification(False, self._text_type(content), ratio, magic)
        if ratio < BINARY_RATIO:
            return Classification(True, "binary", ratio, magic)
        # Ambiguous band: call it text but keep the low confidence
        return Classification(False, "text", ratio, magic)

    @staticmethod
    def _script_type(content: str) -> str:
        first_line = content.split("\n", 1)[0]
        for needles, label in _INTERPRETERS:
            if any(needle in first_line for needle in needles):
                return label
        return "script"

    @staticmethod
    def _text_type(content: str) -> str:
        stripped = content.strip()
        if stripped.startswith(("{", "[")):
            return "json"
        if "<?xml" in content:
            return "xml"
        if "<html" in content or "<!DOCTYPE html" in content:
            return "html"
        if any(marker in content for marker in _JS_MARKERS):
            return "javascript"
        if any(marker in content for marker in _SHELL_MARKERS):
            return "shell-script"
        if _ASSIGNMENT_START.match(content) or "\n[" in content or ".ini" in content:
            return "config"
        return "text"
