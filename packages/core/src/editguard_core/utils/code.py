import re

DEFAULT_PROTECTED_PREFIXES = [
    "src/config/",
    "src/auth/",
    "src/middleware/",
    "auth/",
    "config/",
]

# Exact basename matches. The prefixes above cover directories, these cover
# individual files wherever they live.
DEFAULT_PROTECTED_FILES = [
    ".env",
    ".env.local",
    ".env.production",
    ".env.development",
]

# Test/spec filename conventions, matched on the basename only so the check
# is the same for every language.
_TEST_FILE_PATTERNS = [
    re.compile(r"^test_.+\.py$"),  # Python:    test_session.py
    re.compile(r"^.+_test\.[^.]+$"),  # Go / Rust: session_test.go
    re.compile(r"^.+\.(test|spec)\.[^.]+$"),  # JS / TS:   session.test.ts, session.spec.js
    re.compile(r"^.+_spec\.[^.]+$"),  # Ruby:      session_spec.rb
]


def normalize_path(file_path: str) -> str:
    return file_path.replace("\\", "/")


def basename(file_path: str) -> str:
    return normalize_path(file_path).rsplit("/", 1)[-1]


def is_protected_path(file_path: str, prefixes: list[str], files: list[str]) -> bool:
    """Return True if the basename is a protected file or the path starts with a protected prefix.

    Prefixes match from the path root only: "src/auth/" matches
    "src/auth/index.ts" but not "lib/src/auth/index.ts".
    """
    normalized = normalize_path(file_path)
    if basename(normalized) in files:
        return True
    return any(normalized.startswith(prefix) for prefix in prefixes)


def is_test_file(file_path: str) -> bool:
    name = basename(file_path)
    return any(pattern.match(name) for pattern in _TEST_FILE_PATTERNS)
