"""Deploy configuration: YAML file, environment variables and CLI flags merged into one DeployConfig."""

import logging
import os
from dataclasses import dataclass, field, fields

import yaml

from bluegreen.errors import ConfigurationError
from bluegreen.provisioning.types import AddressKind, BackendSetRef, TargetSpec

logger = logging.getLogger(__name__)

STRATEGIES = ("update", "replace")

# Environment variable -> config field, as used by the CI pipeline
ENV_VARS = {
    "COMPARTMENT_ID": "compartment_id",
    "SUBNET_ID": "subnet_id",
    "SHAPE": "shape",
    "CONTAINER_INSTANCE_NAME": "target_name",
    "CONTAINER_DISPLAY_NAME": "container_name",
    "IMAGE": "image",
    "DB_HOST": "db_host",
    "DB_NAME": "db_name",
    "DB_USER": "db_user",
    "DB_PASS": "db_password",
    "BACKEND_LB_OCID": "load_balancer_id",
    "BACKEND_SET_NAME": "backend_set_name",
    "BACKEND_PORT": "backend_port",
    "BACKEND_IP_TYPE": "address_kind",
    "DEPLOY_STRATEGY": "strategy",
    "CLEANUP_DUPLICATES": "cleanup_duplicates",
    "FALLBACK_TO_REPLACE_ON_IMAGE_MISMATCH": "fallback_to_replace",
    "SHAPE_OCPUS": "ocpus",
    "SHAPE_MEMORY_GB": "memory_gb",
    "HEALTH_TIMEOUT": "health_timeout",
    "HEALTH_INTERVAL": "health_interval",
    "CONTAINER_PORT": "container_port",
    "AVAILABILITY_DOMAIN": "availability_domain",
    "GITHUB_SHA": "git_sha",
    "GITHUB_REPOSITORY": "repository",
    "SMOKE_URL": "smoke_url",
}

REQUIRED_FIELDS = (
    "compartment_id",
    "subnet_id",
    "shape",
    "target_name",
    "container_name",
    "image",
    "db_host",
    "db_name",
    "db_user",
    "db_password",
    "load_balancer_id",
    "backend_set_name",
)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class DeployConfig:
    """All inputs for one deploy run. Built once at startup and passed to every component."""

    compartment_id: str
    subnet_id: str
    shape: str
    target_name: str
    container_name: str
    image: str
    db_host: str
    db_name: str
    db_user: str
    db_password: str = field(repr=False)
    load_balancer_id: str
    backend_set_name: str
    backend_port: int = 8080
    strategy: str = "update"
    cleanup_duplicates: bool = True
    fallback_to_replace: bool = True
    ocpus: float = 1
    memory_gb: float = 2
    address_kind: AddressKind = AddressKind.PRIVATE
    health_timeout: float = 600
    health_interval: float = 10
    operation_timeout: float = 1800
    operation_interval: float = 15
    state_timeout: float = 1800
    state_interval: float = 10
    image_verify_attempts: int = 4
    image_verify_interval: float = 10
    container_port: int = 8080
    availability_domain: str | None = None
    git_sha: str = "unknown"
    repository: str = "unknown"
    deployed_by: str = "bluegreen"
    smoke_url: str | None = None
    smoke_timeout: float = 300
    dry_run: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> "DeployConfig":
        """Build and validate a config from a flat dict of field values.

        Raises:
            ConfigurationError: listing every missing required field, or the
                first invalid value.
        """
        missing = [name for name in REQUIRED_FIELDS if d.get(name) in (None, "")]
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(d) - set(known))
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")

        values = {}
        for name, f in known.items():
            if name not in d or d[name] is None:
                continue
            values[name] = _coerce(name, f.type, d[name])

        config = cls(**values)
        if config.strategy not in STRATEGIES:
            raise ConfigurationError(f"Unknown strategy '{config.strategy}'. Expected one of: {', '.join(STRATEGIES)}")
        if config.image_verify_attempts < 1:
            raise ConfigurationError("image_verify_attempts must be at least 1")
        return config

    @property
    def backend_set(self) -> BackendSetRef:
        return BackendSetRef(self.load_balancer_id, self.backend_set_name)

    def container_environment(self) -> dict[str, str]:
        """Environment of the application container (datasource settings)."""
        return {
            "SPRING_DATASOURCE_URL": f"jdbc:postgresql://{self.db_host}:5432/{self.db_name}",
            "SPRING_DATASOURCE_USERNAME": self.db_user,
            "SPRING_DATASOURCE_PASSWORD": self.db_password,
            "SERVER_ADDRESS": "0.0.0.0",
        }

    def provenance_tags(self) -> dict[str, str]:
        return {
            "deployedBy": self.deployed_by,
            "gitSha": self.git_sha,
            "image": self.image,
            "repo": self.repository,
        }

    def target_spec(self) -> TargetSpec:
        return TargetSpec(
            name=self.target_name,
            image=self.image,
            container_name=self.container_name,
            shape=self.shape,
            subnet_id=self.subnet_id,
            ocpus=self.ocpus,
            memory_gb=self.memory_gb,
            container_port=self.container_port,
            environment=self.container_environment(),
            tags=self.provenance_tags(),
        )


def _coerce(name, field_type, value):
    """Convert a raw (often string) value to the field's declared type."""
    try:
        if field_type is bool:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(value)
        if field_type is int:
            return int(value)
        if field_type is float:
            return float(value)
        if field_type is AddressKind:
            return value if isinstance(value, AddressKind) else AddressKind(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from None
    return str(value).strip()


def load_config(config_path) -> dict:
    """Load a YAML config file into a flat dict.

    A top-level ``deploy:`` section is accepted as well as a flat mapping.
    """
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Config file '{config_path}' not found.") from None
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Error parsing YAML config: {e}") from None
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file '{config_path}' must contain a mapping")
    if isinstance(data.get("deploy"), dict):
        data = data["deploy"]
    return data


def config_from_env(environ=None) -> dict:
    """Collect config values from environment variables (unset and empty ones are skipped)."""
    environ = os.environ if environ is None else environ
    return {key: environ[var] for var, key in ENV_VARS.items() if environ.get(var)}


def build_config(config_path=None, environ=None, overrides=None) -> DeployConfig:
    """Merge file < environment < overrides and validate."""
    merged = {}
    if config_path:
        merged.update(load_config(config_path))
    merged.update(config_from_env(environ))
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})
    return DeployConfig.from_dict(merged)
