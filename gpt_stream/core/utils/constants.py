"""Constants used throughout the application."""

# Repository traversal defaults
DEFAULT_IGNORED_REPO_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "__pycache__",
        "node_modules",
        ".venv",
        "venv",
        "env",
        "dist",
        "build",
        ".mypy_cache",
        ".pytest_cache",
    }
)

# Files or directories whose presence marks a project root
PROJECT_ROOT_MARKERS = (
    ".git",
    ".hg",
    ".svn",
    "pyproject.toml",
    "setup.py",
    "package.json",
    "Cargo.toml",
    "go.mod",
    ".project",
)

# Model invocation defaults
SUPPORTED_PROVIDERS = ("openai", "anthropic")
DEFAULT_PROVIDER = "openai"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.0

# Session naming
DEFAULT_BUFFER_NAME_LENGTH = 60
DEFAULT_TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."

# Process supervision
DEFAULT_LIVENESS_INTERVAL = 1.0
STDOUT_READ_SIZE = 4096
STDERR_TAIL_CHARS = 2_000

# History
MAX_HISTORY_ENTRIES = 50
