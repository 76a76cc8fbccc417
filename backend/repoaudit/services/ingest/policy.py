import posixpath
from typing import FrozenSet

# File extensions to include (compared lower-cased, with the leading dot)
INCLUDE_EXTENSIONS: FrozenSet[str] = frozenset({
    # Source code
    ".ts", ".js", ".jsx", ".tsx", ".py", ".java", ".go", ".rb", ".php", ".cs",
    # Configuration
    ".json", ".yaml", ".yml", ".toml", ".env", ".gitignore", ".dockerignore",
    # Web
    ".html", ".css", ".scss", ".less",
    # Documentation
    ".md", ".txt", ".rst",
    # Shell scripts
    ".sh", ".bash", ".zsh",
})

# Directory segments that exclude everything beneath them
EXCLUDE_DIRS: FrozenSet[str] = frozenset({
    "node_modules",
    ".git",
    ".github",
    ".vscode",
    ".idea",
    "dist",
    "build",
    "coverage",
    ".next",
    ".nuxt",
    ".svelte-kit",
    ".vercel",
    ".netlify",
})


def extension_of(path: str) -> str:
    return posixpath.splitext(posixpath.basename(path))[1].lower()


def is_safe_path(path: str) -> bool:
    if not path or path.startswith("/") or "\\" in path:
        return False
    return all(part not in ("", ".", "..") for part in path.split("/"))


def is_excluded_dir(path: str) -> bool:
    segments = path.lower().split("/")[:-1]
    return any(segment in EXCLUDE_DIRS for segment in segments)


def is_included(path: str) -> bool:
    """Pure inclusion decision for a regular-file archive entry."""
    if not is_safe_path(path):
        return False
    if is_excluded_dir(path):
        return False
    ext = extension_of(path)
    return not ext or ext in INCLUDE_EXTENSIONS
