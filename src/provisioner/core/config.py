"""
provisioner.core.config - Configuration Management
====================================================

Configuration is loaded from the following sources (highest priority first):

    1. Explicit constructor arguments
    2. Environment variables (including ``KEY=VALUE`` command-line overrides,
       which the CLI exports before the config is built)
    3. YAML configuration file (provisioner.yaml)
    4. Default values defined in the models below

Unlike per-run *state* (project, region, generated credentials, which live in
the state file, see core/state.py), configuration holds the operator knobs and
the naming conventions of the resources the pipeline owns.

    ProvisionerConfig
        ├── NetworkConfig   → NetworkSetupStep
        ├── DatabaseConfig  → DatabaseSetupStep
        ├── SecretsConfig   → SecretSetupStep, ServiceDeployStep
        ├── ImageConfig     → ImagePublishStep
        └── ServiceConfig   → ServiceDeployStep, LogTailStep

Environment Variables:
    DB_ACTION=drop_db
    CONNECTOR_RANGE=10.128.0.0/28
    STATE_FILE=.env
    PROVIDER=memory
    DATABASE__TIER=db-custom-1-3840
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from provisioner.core.enums import ActionMode
from provisioner.core.exceptions import ConfigurationError


DEFAULT_STEPS = "network,database,secrets,image,deploy"


# =============================================================================
# Network Configuration
# =============================================================================
class NetworkConfig(BaseModel):
    """Naming and sizing of the private-connectivity resources.

    Attributes:
        network: VPC network the database and connector attach to.
        connector_name: Name of the serverless VPC access connector.
        peering_prefix_length: Prefix length of the reserved peering range.
        peering_service: Managed service the VPC is peered with.
        required_services: Provider APIs the pipeline needs enabled.
    """

    network: str = Field(default="default", description="VPC network name")
    connector_name: str = Field(
        default="vpc-connector",
        description="Serverless VPC access connector name",
    )
    peering_prefix_length: int = Field(
        default=24,
        ge=8,
        le=29,
        description="Prefix length of the reserved peering address range",
    )
    peering_service: str = Field(
        default="servicenetworking.googleapis.com",
        description="Service the VPC is peered with for private IP",
    )
    required_services: list[str] = Field(
        default_factory=lambda: [
            "run.googleapis.com",
            "sqladmin.googleapis.com",
            "secretmanager.googleapis.com",
            "cloudbuild.googleapis.com",
            "artifactregistry.googleapis.com",
            "servicenetworking.googleapis.com",
            "vpcaccess.googleapis.com",
        ],
        description="Provider services enabled before anything else",
    )


# =============================================================================
# Database Configuration
# =============================================================================
class DatabaseConfig(BaseModel):
    """Cloud SQL instance, database and user settings."""

    instance_name: str = Field(default="n8n-postgres-instance")
    database_name: str = Field(default="n8n_db")
    user_name: str = Field(default="n8n_user")
    database_version: str = Field(default="POSTGRES_15")
    tier: str = Field(default="db-g1-small")
    password_bytes: int = Field(
        default=12,
        ge=8,
        le=64,
        description="Random bytes in a generated database credential",
    )


class SecretsConfig(BaseModel):
    """Names of the secrets the service reads at startup."""

    db_password_secret: str = Field(default="n8n-db-password")
    encryption_key_secret: str = Field(default="n8n-encryption-key")
    basic_auth_secret: str = Field(default="n8n-basic-auth-password")
    encryption_key_bytes: int = Field(default=32, ge=16, le=128)
    replication_policy: str = Field(default="automatic")


class ImageConfig(BaseModel):
    """Upstream image and the registry repository it is re-published to."""

    upstream_image: str = Field(
        default="n8nio/n8n:1.108.2",
        description="Public image pulled by the remote build",
    )
    repository: str = Field(default="n8n-repo")
    image_name: str = Field(default="n8n")
    builder_image: str = Field(
        default="gcr.io/cloud-builders/docker",
        description="Builder used for the pull/tag/push build steps",
    )

    @property
    def upstream_tag(self) -> str:
        """Tag part of the upstream reference ("latest" when untagged)."""
        name = self.upstream_image.rsplit("/", 1)[-1]
        if ":" in name:
            return name.rsplit(":", 1)[1]
        return "latest"


class ServiceConfig(BaseModel):
    """Serverless service sizing and runtime settings."""

    name: str = Field(default="n8n-service")
    port: int = Field(default=5678, ge=1, le=65535)
    cpu: str = Field(default="1")
    memory: str = Field(default="2Gi")
    min_instances: int = Field(default=0, ge=0)
    max_instances: int = Field(default=1, ge=1)
    timeout: str = Field(default="300s")
    cpu_boost: bool = Field(default=True)
    allow_unauthenticated: bool = Field(default=True)
    vpc_egress: str = Field(default="private-ranges-only")
    admin_user: str = Field(default="admin")
    admin_password_bytes: int = Field(default=12, ge=8, le=64)


# =============================================================================
# Main Configuration
# =============================================================================
# No env prefix: the pipeline honours the variable names operators already
# use (DB_ACTION, CONNECTOR_RANGE, GCLOUD_PROJECT, ...).
# =============================================================================
class ProvisionerConfig(BaseSettings):
    """Top-level provisioner configuration.

    Attributes:
        log_level: Logging level for structlog output.
        state_file: Path of the KEY='value' state file.
        provider: "gcloud" for the real platform, "memory" for a dry run.
        gcloud_binary: Executable used by the gcloud provider.
        db_action: Global ActionMode applied to every step.
        default_region: Region used when REGION is not set anywhere.
        connector_range: CIDR range of the VPC access connector.
        fallback_project: Project used when neither state nor the provider
            names one (GCLOUD_PROJECT or GCP_PROJECT).
        steps: Comma-separated step names, run in order.
        logs_limit: Number of log entries read by the log tail.

    Example:
        >>> config = ProvisionerConfig(db_action="drop", provider="memory")
        >>> config.db_action
        <ActionMode.DROP: 'drop_db'>
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO")
    state_file: str = Field(default=".env")
    provider: Literal["gcloud", "memory"] = Field(default="gcloud")
    gcloud_binary: str = Field(default="gcloud")

    # -------------------------------------------------------------------------
    # Pipeline Behaviour
    # -------------------------------------------------------------------------
    db_action: ActionMode = Field(default=ActionMode.IGNORE)
    default_region: str = Field(default="us-central1")
    connector_range: str = Field(default="10.88.0.0/28")
    fallback_project: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("fallback_project", "GCLOUD_PROJECT", "GCP_PROJECT"),
    )
    steps: str = Field(default=DEFAULT_STEPS)
    logs_limit: int = Field(default=200, ge=1, le=10000)

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

    model_config = {
        "env_prefix": "",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "populate_by_name": True,
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # The YAML file ranks below the environment; reads nothing unless
        # ``yaml_file`` is set (see load_config).
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("db_action", mode="before")
    @classmethod
    def _parse_action_mode(cls, value: Any) -> ActionMode:
        return ActionMode.parse(value)

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {value}")
        return level

    @property
    def step_names(self) -> list[str]:
        """The configured step names in run order."""
        return [name.strip() for name in self.steps.split(",") if name.strip()]


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> ProvisionerConfig:
    """Load configuration from an optional YAML file plus the environment.

    Args:
        path: YAML file path. When None, ``provisioner.yaml`` in the current
            directory is used if present.

    Returns:
        A validated ProvisionerConfig.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigurationError: If the file is not valid YAML or fails validation.
    """
    if path is None:
        default_path = Path("provisioner.yaml")
        if default_path.exists():
            path = str(default_path)

    settings_cls: type[ProvisionerConfig] = ProvisionerConfig
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(config_path) as f:
            try:
                raw_data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(
                    message=f"Invalid YAML in {path}: {e}",
                    details={"path": path},
                ) from e

        if isinstance(raw_data, dict) and raw_data:
            class FileBackedConfig(ProvisionerConfig):
                model_config = SettingsConfigDict(yaml_file=str(config_path))

            settings_cls = FileBackedConfig

    try:
        return settings_cls()
    except ValueError as e:
        raise ConfigurationError(
            message=f"Invalid configuration: {e}",
            hint="Check DB_ACTION, LOG_LEVEL and PROVIDER values.",
        ) from e
