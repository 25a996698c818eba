"""Configuration management for the model migrator."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from ..constants import ENV_CONFIG_DIR, ENV_CONFIG_PATH, MANAGEMENT_URL
from ..models.instance import ServiceInstance
from .exceptions import ConfigurationError
from .settings import MigrationSettings

logger = structlog.get_logger()


class ManagementConfig(BaseModel):
    """Management-plane endpoint and access verification settings."""

    url: str = MANAGEMENT_URL
    verify_access: bool = True


class MigratorConfig(BaseSettings):
    """Main configuration for the model migrator."""

    instances: dict[str, ServiceInstance] = Field(default_factory=dict)
    tokens: dict[str, str] = Field(default_factory=dict, repr=False)
    default_token: str | None = Field(default=None, alias="MIGRATOR_MANAGEMENT_TOKEN", repr=False)
    management: ManagementConfig = Field(default_factory=ManagementConfig)
    migration: MigrationSettings = Field(default_factory=MigrationSettings)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    config_file: str = Field(default="config/instances.yml", alias=ENV_CONFIG_PATH)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def get_instance(self, instance_id: str) -> ServiceInstance:
        """Look up a configured instance.

        Raises:
            ConfigurationError: If the instance is not configured
        """
        if instance_id not in self.instances:
            known = ", ".join(sorted(self.instances)) or "none"
            raise ConfigurationError(f"Instance '{instance_id}' not found (configured: {known})")
        return self.instances[instance_id]


def get_config_dir() -> Path:
    """Directory holding the project configuration file."""
    return Path(os.getenv(ENV_CONFIG_DIR, "config"))


def load_config(config_path: str | None = None) -> MigratorConfig:
    """Load configuration from multiple sources (synchronous interface).

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Loaded configuration

    Note:
        This function cannot be called from inside a running event loop.
        For async code, use load_config_async() instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_config_async(config_path))
    raise RuntimeError(
        "load_config() cannot be called from within an async context. "
        "Use 'await load_config_async()' instead."
    )


async def load_config_async(config_path: str | None = None) -> MigratorConfig:
    """Load configuration from multiple sources (async interface).

    Precedence, lowest to highest: defaults, user config
    (~/.config/model-migrator/instances.yml), project config, environment.

    Raises:
        ConfigurationError: If a config file is unreadable or invalid
    """
    load_dotenv()

    try:
        config = MigratorConfig()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in environment: {e}") from e

    user_config_path = Path.home() / ".config" / "model-migrator" / "instances.yml"
    await _load_config_file(config, user_config_path)

    default_config_file = os.getenv(ENV_CONFIG_PATH, str(get_config_dir() / "instances.yml"))
    project_config_path = Path(config_path or default_config_file)
    if config_path and not project_config_path.exists():
        raise ConfigurationError(f"Config file not found: {project_config_path}")
    await _load_config_file(config, project_config_path)

    config.config_file = str(project_config_path)

    _apply_env_overrides(config)

    logger.debug(
        "Configuration loaded",
        config_file=config.config_file,
        instances=sorted(config.instances),
        token_domains=sorted(config.tokens),
    )
    return config


async def _load_config_file(config: MigratorConfig, config_path: Path) -> None:
    """Load and apply configuration from a YAML file."""
    if not config_path.exists():
        return

    yaml_config = await _load_yaml_config(config_path)
    try:
        _apply_instance_config(config, yaml_config)
        _apply_token_config(config, yaml_config)
        _apply_management_config(config, yaml_config)
        _apply_migration_config(config, yaml_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    if "log_level" in yaml_config:
        config.log_level = str(yaml_config["log_level"])


_UNEXPANDED_VAR = re.compile(r"^\$\{[^}]+\}$")


def _is_unexpanded(value: Any) -> bool:
    """True for a value that is still a literal ${VAR} reference."""
    return isinstance(value, str) and bool(_UNEXPANDED_VAR.match(value.strip()))


def _apply_instance_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    """Apply instance definitions from YAML data."""
    for instance_id, instance_data in (yaml_config.get("instances") or {}).items():
        data = dict(instance_data or {})
        if _is_unexpanded(data.get("api_key")):
            logger.warning("Instance api_key variable is not set", instance_id=instance_id)
            data["api_key"] = None
        config.instances[instance_id] = ServiceInstance(instance_id=instance_id, **data)


def _apply_token_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    """Apply per-domain management tokens from YAML data."""
    for domain, token in (yaml_config.get("tokens") or {}).items():
        if token and not _is_unexpanded(token):
            config.tokens[domain] = str(token)


def _apply_management_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    if "management" in yaml_config:
        merged = {**config.management.model_dump(), **(yaml_config["management"] or {})}
        config.management = ManagementConfig(**merged)


def _apply_migration_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    if "migration" in yaml_config:
        merged = {**config.migration.model_dump(), **(yaml_config["migration"] or {})}
        config.migration = MigrationSettings(**merged)


def _apply_env_overrides(config: MigratorConfig) -> None:
    """Apply environment variable overrides (highest priority)."""
    env_values = {
        name: os.environ[field.alias]
        for name, field in MigrationSettings.model_fields.items()
        if field.alias and field.alias in os.environ
    }
    if env_values:
        try:
            config.migration = MigrationSettings(**{**config.migration.model_dump(), **env_values})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid migration settings in environment: {e}") from e

    if os.getenv("LOG_LEVEL"):
        config.log_level = os.getenv("LOG_LEVEL", config.log_level)
    if os.getenv("MIGRATOR_MANAGEMENT_URL"):
        config.management.url = os.getenv("MIGRATOR_MANAGEMENT_URL", config.management.url)
    if os.getenv("MIGRATOR_MANAGEMENT_TOKEN"):
        config.default_token = os.getenv("MIGRATOR_MANAGEMENT_TOKEN")


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    try:
        content = await asyncio.to_thread(config_path.read_text)

        # Securely expand only allowed environment variables
        content = _expand_yaml_config(content)

        loaded = yaml.safe_load(content)
        if not isinstance(loaded, dict):
            return {}
        return loaded
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e


def _is_allowed_env_var(var_name: str) -> bool:
    allowed_env_vars = {
        "HOME",
        "USER",
        "XDG_CONFIG_HOME",
        "XDG_DATA_HOME",
        "LOG_LEVEL",
        ENV_CONFIG_PATH,
        ENV_CONFIG_DIR,
    }
    # Keys and tokens are referenced through MIGRATOR_* variables
    return var_name in allowed_env_vars or var_name.startswith("MIGRATOR_")


def _expand_yaml_config(content: str) -> str:
    """Securely expand environment variables with allowlist."""

    def replace_if_allowed(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        original_pattern = match.group(0)

        if _is_allowed_env_var(var_name):
            return os.getenv(var_name, original_pattern)  # Keep original if not found
        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
            pattern=original_pattern,
        )
        return original_pattern

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", replace_if_allowed, content)
