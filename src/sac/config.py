# src/sac/config.py

DEFAULT_ACCEPTED_TYPES = [
    ".js", ".jsx", ".ts", ".tsx", ".vue", ".svelte", ".html", ".css", ".scss",
    ".py", ".rb", ".go", ".rs", ".java", ".kt", ".swift", ".cpp", ".c", ".cs",
    ".sql", ".json", ".yaml", ".toml", ".env", ".md", ".txt", ".csv",
]

# Build artifacts, dependency caches, VCS metadata and temp directories
DEFAULT_SKIP_PATTERNS = [
    "node_modules",
    "vendor",
    "dist",
    "build",
    ".git",
    "__pycache__",
    "venv",
    ".env",
    "coverage",
    "tmp",
]

UNLIMITED = -1
DEFAULT_TOKEN_LIMIT = 1500
MAX_FILE_SIZE = 10 * 1024 * 1024

# Seconds between per-file requests against the GitHub API
REQUEST_DELAY = 0.05
DEFAULT_TIMEOUT = 30.0

GITHUB_API_URL = "https://api.github.com"

STORAGE_KEY = "sac_advanced_settings"
