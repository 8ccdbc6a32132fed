"""Language tags for code files, and the names Piston expects for them."""

from typing import Dict

DEFAULT_LANGUAGE = "javascript"

_EXTENSION_LANGUAGES: Dict[str, str] = {
    "py": "python",
    "js": "javascript",
    "java": "java",
    "c": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "cxx": "cpp",
    "go": "go",
    "ts": "typescript",
    "rs": "rust",
}

_PISTON_ENTRY_FILES: Dict[str, str] = {
    "javascript": "main.js",
    "python": "main.py",
    "java": "Main.java",
    "c": "main.c",
    "cpp": "main.cpp",
    "go": "main.go",
    "typescript": "main.ts",
    "rust": "main.rs",
}


def _extension(filename: str) -> str:
    base = filename.rsplit("/", 1)[-1]
    _, dot, ext = base.rpartition(".")
    if not dot:
        return ""
    return ext.lower()


def infer_language(filename: str) -> str:
    """Map a filename's extension to a language tag (javascript if unknown)."""
    return _EXTENSION_LANGUAGES.get(_extension(filename or ""), DEFAULT_LANGUAGE)


def piston_language(language: str) -> str:
    value = (language or "").strip().lower()
    return value if value in _PISTON_ENTRY_FILES else DEFAULT_LANGUAGE


def piston_filename(language: str) -> str:
    return _PISTON_ENTRY_FILES[piston_language(language)]
