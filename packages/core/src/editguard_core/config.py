import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",
    "enrich": True,
    "enrich_min_level": "medium",
    # 15 requests/minute, the free-tier ceiling of the slowest provider.
    "min_interval_seconds": 4.0,
    "max_file_chars": 8000,
    "max_diff_chars": 4000,
    "log_path": ".editguard/events.json",
    "sidecar_path": ".editguard/diff-context.json",
    "risk": {
        "protected_paths": None,  # None = built-in prefixes; [] disables the rule
        "protected_files": None,  # None = built-in .env variants
    },
    "no_nuke": {
        "max_deleted_functions": 3,
        "max_structural_change_percent": 50,
        "min_lines_for_percent": 20,
    },
}

_NESTED_SECTIONS = ("risk", "no_nuke")
PROVIDERS = ("anthropic", "openai", "gemini")


def load_config(config_path: str = ".editguard.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .editguard.yml in the current directory
      3. CLI argument overrides

    The ``risk`` and ``no_nuke`` sections merge key by key, so a file that
    sets one threshold keeps the defaults for the others.
    """
    config = {**DEFAULT_CONFIG}
    for section in _NESTED_SECTIONS:
        config[section] = dict(DEFAULT_CONFIG[section])

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        for key, value in file_config.items():
            if key in _NESTED_SECTIONS and isinstance(value, dict):
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    if config["provider"] not in PROVIDERS:
        raise ValueError(f"Unknown provider: {config['provider']!r}. Choose one of {', '.join(PROVIDERS)}.")

    # Resolve credentials from environment variables
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["gemini_api_key"] = os.environ.get("GEMINI_API_KEY")

    return config
