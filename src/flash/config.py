import copy
import json
import os
import yaml
import typer
from pathlib import Path
from rich.console import Console
from typing import Dict, Any, List, Mapping, Optional

from dotenv import load_dotenv

from flash.llm import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_SECONDS,
    OPENAI_CHAT_URL,
    PROVIDER_AZURE,
    PROVIDER_OPENAI,
    ProviderSettings,
)
from flash.logger import setup_logger, info, warn

console = Console()
logger = setup_logger(__name__)

# Define paths
APP_NAME = "flash"

# Prefer a repo-local config.yaml; fall back to ~/.flash/config.yaml
REPO_ROOT = Path(__file__).resolve().parents[2]
CONFIG_DIR = REPO_ROOT
CONFIG_FILE = CONFIG_DIR / "config.yaml"
FALLBACK_CONFIG_DIR = Path.home() / f".{APP_NAME}"
FALLBACK_CONFIG_FILE = FALLBACK_CONFIG_DIR / "config.yaml"
ENV_FILE = ".env"

# Default Template
DEFAULT_CONFIG = {
    "core": {
        "log_level": "INFO",
    },
    "llm": {
        "max_tokens": DEFAULT_MAX_TOKENS,
        "temperature": None,
        "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
        "openai": {
            "model": DEFAULT_MODEL,
            "endpoint": OPENAI_CHAT_URL,
        },
    },
    "scan": {
        "extensions": [".go"],
    },
}

ENV_TEMPLATE = """# Choose which API to use (OpenAI or Azure OpenAI)
# Set USE_OPENAI=true if using OpenAI API
# Set USE_AZURE=true if using Azure OpenAI API
USE_OPENAI=true
USE_AZURE=false

# OpenAI API configuration
OPENAI_API_KEY=your_openai_api_key_here
OPENAI_MODEL=gpt-3.5-turbo

# Azure OpenAI API configuration
AZURE_API_KEY=your_azure_api_key_here
AZURE_API_VERSION=2023-03-15-preview
AZURE_API_ENDPOINT=your_azure_endpoint_here
AZURE_DEPLOYMENT_NAME=your_azure_deployment_name_here
"""

AZURE_ENV_VARS = (
    "AZURE_API_KEY",
    "AZURE_API_VERSION",
    "AZURE_API_ENDPOINT",
    "AZURE_DEPLOYMENT_NAME",
)


class ConfigError(ValueError):
    pass


def _normalize_value(value: Any) -> Optional[str]:
    """Treat blanks and template placeholders as unset."""
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    v = value.strip()
    if not v:
        return None
    if v.lower() in ("none", "null"):
        return None
    if v.lower().startswith("your_") and v.lower().endswith("_here"):
        return None
    return v


def _env_flag(value: Any) -> bool:
    return str(value or "").strip().lower() == "true"


def load_env(path: Any = ENV_FILE, create: bool = True) -> Path:
    """
    Load environment variables from a .env file, creating it from the default
    template first when it does not exist. Variables already set in the process win.
    """
    env_path = Path(path)
    if not env_path.exists() and not create:
        return env_path
    if not env_path.exists():
        info(f"{env_path} file not found. Creating a new one with default settings...")
        try:
            env_path.write_text(ENV_TEMPLATE, encoding="utf-8")
            os.chmod(env_path, 0o644)
            info(f"{env_path} file created with default settings. Please update it with your API keys.")
        except OSError as e:
            warn(f"Error creating {env_path} file: {e}")
            return env_path
    else:
        logger.debug(f"{env_path} file found. Loading configuration...")
    load_dotenv(env_path, override=False)
    return env_path


def resolve_provider_settings(
    environ: Optional[Mapping[str, str]] = None,
    llm_config: Optional[Dict[str, Any]] = None,
) -> Optional[ProviderSettings]:
    """
    Pick OpenAI or Azure OpenAI from USE_OPENAI / USE_AZURE.
    Returns None when neither is enabled or Azure is missing a variable.
    """
    env = os.environ if environ is None else environ
    llm_cfg = llm_config if isinstance(llm_config, dict) else {}
    openai_cfg = llm_cfg.get("openai", {}) if isinstance(llm_cfg.get("openai"), dict) else {}

    if _env_flag(env.get("USE_OPENAI")):
        api_key = _normalize_value(env.get("OPENAI_API_KEY"))
        if not api_key:
            return None
        return ProviderSettings(
            provider=PROVIDER_OPENAI,
            api_key=api_key,
            endpoint=_normalize_value(openai_cfg.get("endpoint")) or OPENAI_CHAT_URL,
            model=_normalize_value(env.get("OPENAI_MODEL")) or _normalize_value(openai_cfg.get("model")) or DEFAULT_MODEL,
        )

    if _env_flag(env.get("USE_AZURE")):
        values = {}
        for name in AZURE_ENV_VARS:
            value = _normalize_value(env.get(name))
            if not value:
                warn(f"Missing Azure OpenAI configuration: {name} is not set")
                return None
            values[name] = value
        return ProviderSettings(
            provider=PROVIDER_AZURE,
            api_key=values["AZURE_API_KEY"],
            endpoint=values["AZURE_API_ENDPOINT"],
            deployment_name=values["AZURE_DEPLOYMENT_NAME"],
            api_version=values["AZURE_API_VERSION"],
        )

    return None


def load_credentials_file(path: Any) -> Dict[str, Any]:
    """Load the JSON credentials file ({"azure_openai": {...}, "openai": {...}})."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"error opening config file: {e}") from e
    except ValueError as e:
        raise ConfigError(f"error decoding config file: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError("error decoding config file: expected a JSON object")
    return data


def settings_from_credentials(
    data: Dict[str, Any],
    llm_config: Optional[Dict[str, Any]] = None,
) -> Optional[ProviderSettings]:
    """
    Build ProviderSettings from a credentials file. A complete azure_openai block wins,
    otherwise openai.api_key is used.
    """
    llm_cfg = llm_config if isinstance(llm_config, dict) else {}
    openai_cfg = llm_cfg.get("openai", {}) if isinstance(llm_cfg.get("openai"), dict) else {}

    azure = data.get("azure_openai") if isinstance(data.get("azure_openai"), dict) else {}
    azure_values = {k: _normalize_value(azure.get(k)) for k in ("endpoint", "api_key", "deployment_name", "api_version")}
    if all(azure_values.values()):
        return ProviderSettings(
            provider=PROVIDER_AZURE,
            api_key=azure_values["api_key"],
            endpoint=azure_values["endpoint"],
            deployment_name=azure_values["deployment_name"],
            api_version=azure_values["api_version"],
        )

    openai = data.get("openai") if isinstance(data.get("openai"), dict) else {}
    api_key = _normalize_value(openai.get("api_key"))
    if api_key:
        return ProviderSettings(
            provider=PROVIDER_OPENAI,
            api_key=api_key,
            endpoint=_normalize_value(openai_cfg.get("endpoint")) or OPENAI_CHAT_URL,
            model=_normalize_value(openai.get("model")) or _normalize_value(openai_cfg.get("model")) or DEFAULT_MODEL,
        )
    return None


def describe_api_status(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Returns 'openai' or 'azure' when a key is present, else None."""
    env = os.environ if environ is None else environ
    if _normalize_value(env.get("OPENAI_API_KEY")):
        return PROVIDER_OPENAI
    if _normalize_value(env.get("AZURE_API_KEY")):
        return PROVIDER_AZURE
    return None


class ConfigManager:
    def __init__(self, config_file: Optional[Path] = None, fallback_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else CONFIG_FILE
        self.fallback_file = Path(fallback_file) if fallback_file else FALLBACK_CONFIG_FILE
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """
        Loads config. If missing in the project root, falls back to ~/.flash,
        otherwise creates a default project config.
        """
        target_file = self.config_file if self.config_file.exists() else None
        if not target_file and self.fallback_file.exists():
            target_file = self.fallback_file
            self.config_file = target_file

        if not target_file:
            console.print(f"[yellow][!] Configuration file not found.[/yellow]")
            console.print(f"[green][*] Generating default config at: {self.config_file}[/green]")
            self.save_config(copy.deepcopy(DEFAULT_CONFIG))
            return self.config

        try:
            with open(self.config_file, "r") as f:
                loaded = yaml.safe_load(f)
        except Exception as e:
            console.print(f"[bold red]Error parsing config file:[/bold red] {e}")
            raise typer.Exit(code=1)
        if not loaded or not isinstance(loaded, dict):
            return copy.deepcopy(DEFAULT_CONFIG)
        # Basic merge to ensure structure
        for section, defaults in DEFAULT_CONFIG.items():
            if not isinstance(loaded.get(section), dict):
                loaded[section] = copy.deepcopy(defaults)
        return loaded

    def save_config(self, new_config: Dict[str, Any]):
        """Saves configuration to the YAML file."""
        self.config = new_config
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, "w") as f:
                yaml.dump(new_config, f, default_flow_style=False, sort_keys=False)
        except Exception as e:
            console.print(f"[red]Error saving config: {e}[/red]")

    def get_llm_settings(self) -> Dict[str, Any]:
        """Returns request tunables with defaults filled in."""
        llm = self.config.get("llm", {}) if isinstance(self.config.get("llm"), dict) else {}
        openai_cfg = llm.get("openai", {}) if isinstance(llm.get("openai"), dict) else {}
        try:
            max_tokens = int(llm.get("max_tokens") or DEFAULT_MAX_TOKENS)
        except (TypeError, ValueError):
            max_tokens = DEFAULT_MAX_TOKENS
        temperature = llm.get("temperature")
        try:
            temperature = None if temperature is None else float(temperature)
        except (TypeError, ValueError):
            temperature = None
        timeout = llm.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
        try:
            timeout = None if timeout is None else int(timeout)
        except (TypeError, ValueError):
            timeout = DEFAULT_TIMEOUT_SECONDS
        return {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout_seconds": timeout,
            "model": openai_cfg.get("model") or DEFAULT_MODEL,
            "endpoint": openai_cfg.get("endpoint") or OPENAI_CHAT_URL,
        }

    def get_scan_extensions(self) -> List[str]:
        scan = self.config.get("scan", {}) if isinstance(self.config.get("scan"), dict) else {}
        exts = scan.get("extensions")
        if isinstance(exts, list) and exts:
            return [str(e) for e in exts]
        return list(DEFAULT_CONFIG["scan"]["extensions"])

    def set_model(self, model: str):
        """Sets the OpenAI model used when OPENAI_MODEL is not set."""
        llm = self.config.setdefault("llm", {})
        llm.setdefault("openai", {})["model"] = model
        self.save_config(self.config)

    def set_max_tokens(self, max_tokens: int):
        self.config.setdefault("llm", {})["max_tokens"] = int(max_tokens)
        self.save_config(self.config)

    def set_temperature(self, temperature: Optional[float]):
        self.config.setdefault("llm", {})["temperature"] = temperature
        self.save_config(self.config)

    def set_extensions(self, extensions: List[str]):
        self.config.setdefault("scan", {})["extensions"] = list(extensions)
        self.save_config(self.config)

# Singleton instance
config_manager = ConfigManager()
