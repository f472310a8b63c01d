"""
Engine configuration persistence.

Stores defaults like preferred provider, model and time policy in a JSON
file next to the saves. Environment variables override the file.
"""

import json
import os
from pathlib import Path
from typing import TypedDict


SAVES_DIR_ENV = "HISTORIA_SAVES_DIR"
TIME_POLICY_ENV = "HISTORIA_TIME_POLICY"

# Credential fallbacks for the stateful session layer
API_KEY_ENV: dict[str, str] = {
    "google": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
}


class EngineConfig(TypedDict, total=False):
    """Engine configuration."""
    provider: str  # local, google, openai, anthropic, deepseek
    model: str  # Preferred model id; empty means provider default
    difficulty: str  # Sandbox .. Impossible
    time_policy: str  # ignore or allow
    world_file: str | None  # Province dataset for new sessions
    autosave: bool  # Save after every applied turn


DEFAULT_CONFIG: EngineConfig = {
    "provider": "google",
    "model": "",
    "difficulty": "Realistic",
    "time_policy": "ignore",
    "world_file": None,
    "autosave": True,
}


def default_saves_dir() -> Path:
    return Path(os.environ.get(SAVES_DIR_ENV, "saves"))


def get_config_path(saves_dir: Path | str | None = None) -> Path:
    """Get path to config file."""
    return Path(saves_dir or default_saves_dir()) / ".historia_config.json"


def load_config(saves_dir: Path | str | None = None) -> EngineConfig:
    """Load config from file (or defaults), then apply environment overrides."""
    path = get_config_path(saves_dir)

    config = DEFAULT_CONFIG.copy()
    if path.exists():
        try:
            with open(path, "r", encoding="utf-8") as f:
                saved = json.load(f)
            # Merge with defaults to handle missing keys
            config.update(saved)
        except (json.JSONDecodeError, IOError):
            pass

    policy = os.environ.get(TIME_POLICY_ENV)
    if policy:
        config["time_policy"] = policy.strip().lower()
    return config


def save_config(config: EngineConfig, saves_dir: Path | str | None = None) -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(saves_dir)

    # Ensure directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def set_provider(provider: str, saves_dir: Path | str | None = None) -> None:
    """Save provider preference."""
    config = load_config(saves_dir)
    config["provider"] = provider
    save_config(config, saves_dir)


def set_model(model: str, saves_dir: Path | str | None = None) -> None:
    """Save model preference."""
    config = load_config(saves_dir)
    config["model"] = model
    save_config(config, saves_dir)


def set_time_policy(policy: str, saves_dir: Path | str | None = None) -> None:
    """Save time policy preference."""
    config = load_config(saves_dir)
    config["time_policy"] = policy
    save_config(config, saves_dir)


def api_key_from_env(provider: str) -> str | None:
    """Credential for a provider from its environment variable, if set."""
    name = API_KEY_ENV.get(provider)
    if name is None:
        return None
    return os.environ.get(name) or None
