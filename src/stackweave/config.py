"""
Topology configuration models for stackweave.

Configuration is loaded from the stackweave.toml [topology] section.
AWS_ACCOUNT and AWS_REGION in the environment override the
[topology.environment] table.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .models import DatabaseEngine, ValidationMethod

DEFAULT_CONFIG_FILE = "stackweave.toml"

# =============================================================================
# Sub-configuration Models
# =============================================================================


class EnvironmentConfig(BaseModel):
    """Target account and region."""

    account: str | None = None
    region: str = "us-west-2"


class NetworkConfig(BaseModel):
    """VPC and subnet layout."""

    vpc_cidr: str = "10.0.0.0/16"
    availability_zones: int = Field(default=2, ge=2, le=6)
    nat_gateways: int = Field(default=1, ge=0, le=6)
    subnet_prefix: int = Field(default=24, ge=16, le=28)


class ComputeConfig(BaseModel):
    """Launch template and scaling group."""

    instance_class: str = "t4g.medium"
    image: str = "resolve:ssm:/aws/service/ami-amazon-linux-latest/amzn2-ami-hvm-arm64-gp2"
    min_capacity: int = Field(default=2, ge=1)
    max_capacity: int = Field(default=5, ge=1)
    desired_capacity: int | None = None
    app_port: int = 80
    health_check_path: str = "/index.php"
    health_check_interval: int = Field(default=30, ge=5, le=300)
    healthy_threshold: int = Field(default=5, ge=2, le=10)
    unhealthy_threshold: int = Field(default=2, ge=2, le=10)
    artifact_url: str = "https://wordpress.org/latest.tar.gz"

    @model_validator(mode="after")
    def _check_bounds(self) -> ComputeConfig:
        if self.min_capacity > self.max_capacity:
            raise ValueError(
                f"min_capacity ({self.min_capacity}) exceeds max_capacity ({self.max_capacity})"
            )
        return self


class DatabaseConfig(BaseModel):
    """RDS instance configuration."""

    engine: DatabaseEngine = DatabaseEngine.MYSQL
    engine_version: str = "8.0"
    instance_class: str = "db.t3.micro"
    multi_az: bool = True
    allocated_storage: int = Field(default=20, ge=20, le=65536)
    database_name: str = "wordpress"

    @property
    def port(self) -> int:
        return self.engine.default_port


class CredentialsConfig(BaseModel):
    """Database credential secret."""

    username: str = "admin"
    password_key: str = "password"
    password_length: int = 32
    exclude_punctuation: bool = True
    exclude_characters: str = ""


class DNSConfig(BaseModel):
    """Route53 and TLS configuration."""

    domain_name: str = "example.com"
    record_name: str | None = None
    hosted_zones: dict[str, str] = Field(default_factory=dict)
    validation_method: ValidationMethod = ValidationMethod.DNS
    validation_timeout_seconds: float = Field(default=300.0, ge=0)

    @property
    def fqdn(self) -> str:
        """Name the alias record is bound to."""
        return self.record_name or self.domain_name


# =============================================================================
# Main Configuration Model
# =============================================================================


class TopologyConfig(BaseModel):
    """Complete topology configuration."""

    name: str = "wordpress"
    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    compute: ComputeConfig = Field(default_factory=ComputeConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    dns: DNSConfig = Field(default_factory=DNSConfig)

    def zone_names(self) -> list[str]:
        """Availability zone names for the configured region."""
        letters = "abcdef"
        region = self.environment.region
        return [f"{region}{letters[i]}" for i in range(self.network.availability_zones)]


# =============================================================================
# Configuration Loading
# =============================================================================


def load_topology_config(
    toml_path: Path,
    environ: dict[str, str] | None = None,
) -> TopologyConfig:
    """
    Load topology configuration from stackweave.toml.

    Args:
        toml_path: Path to the TOML file
        environ: Environment mapping (defaults to os.environ)

    Returns:
        TopologyConfig with values from file, environment or defaults
    """
    data: dict[str, Any] = {}

    if toml_path.exists():
        with open(toml_path, "rb") as f:
            data = tomllib.load(f).get("topology", {})

    return _parse_config(data, os.environ if environ is None else environ)


def _parse_config(data: dict[str, Any], environ: dict[str, str]) -> TopologyConfig:
    """Parse config dict into TopologyConfig, applying environment overrides."""
    config_data: dict[str, Any] = {}

    if "name" in data:
        config_data["name"] = data["name"]

    nested_sections = [
        "environment",
        "network",
        "compute",
        "database",
        "credentials",
        "dns",
    ]

    for section in nested_sections:
        if section in data:
            config_data[section] = dict(data[section])

    env_section = config_data.setdefault("environment", {})
    if environ.get("AWS_ACCOUNT"):
        env_section["account"] = environ["AWS_ACCOUNT"]
    if environ.get("AWS_REGION"):
        env_section["region"] = environ["AWS_REGION"]

    return TopologyConfig.model_validate(config_data)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "EnvironmentConfig",
    "NetworkConfig",
    "ComputeConfig",
    "DatabaseConfig",
    "CredentialsConfig",
    "DNSConfig",
    "TopologyConfig",
    "load_topology_config",
]
