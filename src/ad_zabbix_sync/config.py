"""
Configuration loader.

Loads settings from a YAML file. Environment variables prefixed with
ADZBX_ (e.g. ADZBX_ZABBIX_PASSWORD) override values from the file, so
secrets can be injected by the scheduler instead of written to disk.

Config file location: /etc/ad-zabbix-sync/config.yaml
"""

import logging
import re
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/ad-zabbix-sync/config.yaml")


class SyncConfig(BaseSettings):
    """Configuration for one reconciliation run."""

    # ========================================================================
    # Zabbix API
    # ========================================================================

    zabbix_url: str = Field(
        ...,
        description="Zabbix API endpoint, e.g. https://zabbix.example.com/api_jsonrpc.php"
    )
    zabbix_user: str = Field(..., description="Zabbix API user")
    zabbix_password: str = Field(..., repr=False, description="Zabbix API password")

    verify_ssl: bool = Field(
        default=True,
        description="Validate the Zabbix server certificate"
    )
    min_tls_version: str = Field(
        default="1.2",
        description="Lowest TLS version to negotiate: 1.2 or 1.3"
    )
    request_timeout: float = Field(
        default=30,
        gt=0,
        le=600,
        description="Per-request timeout in seconds"
    )

    # ========================================================================
    # Active Directory
    # ========================================================================

    search_base: str = Field(
        ...,
        description="OU to reconcile, e.g. OU=Servers,DC=corp,DC=local"
    )
    domain_controller: Optional[str] = Field(
        default=None,
        description="DC passed to Get-ADComputer -Server (default: any DC)"
    )
    directory_host: Optional[str] = Field(
        default=None,
        description="Windows host to run the AD query on via WinRM (default: local PowerShell)"
    )
    directory_username: Optional[str] = Field(
        default=None,
        description="WinRM username (domain\\user or user@domain)"
    )
    directory_password: Optional[str] = Field(
        default=None,
        repr=False,
        description="WinRM password"
    )
    directory_port: int = Field(
        default=5985,
        ge=1,
        le=65535,
        description="WinRM port"
    )
    directory_use_ssl: bool = Field(
        default=False,
        description="Use HTTPS for WinRM"
    )
    directory_transport: str = Field(
        default="ntlm",
        description="WinRM transport: ntlm, kerberos, certificate"
    )
    directory_verify_ssl: bool = Field(
        default=True,
        description="Validate the WinRM server certificate (HTTPS only)"
    )
    directory_cert_pem: Optional[str] = Field(
        default=None,
        description="Client certificate file for the certificate transport"
    )
    directory_cert_key_pem: Optional[str] = Field(
        default=None,
        description="Client certificate key file for the certificate transport"
    )
    directory_timeout: int = Field(
        default=120,
        ge=10,
        description="AD query timeout in seconds"
    )

    # ========================================================================
    # Reconciliation
    # ========================================================================

    exclude_pattern: Optional[str] = Field(
        default=None,
        description="Regex searched in lower-cased host names; matches are skipped"
    )
    lookup_concurrency: int = Field(
        default=1,
        ge=1,
        le=32,
        description="Parallel Zabbix lookups (1 = sequential)"
    )
    treat_failures_as_missing: bool = Field(
        default=False,
        description="Count failed lookups as missing (legacy behaviour)"
    )

    # ========================================================================
    # Provisioning
    # ========================================================================

    group_id: str = Field(..., description="Host group id for created hosts")
    inventory_mode: int = Field(
        default=0,
        ge=-1,
        le=1,
        description="Inventory mode: -1 disabled, 0 manual, 1 automatic"
    )
    use_ip: bool = Field(
        default=True,
        description="Agent interface connects by IP (False: by DNS name)"
    )
    default_ip: str = Field(
        default="127.0.0.1",
        description="Interface IP for created hosts"
    )
    default_dns: str = Field(
        default="",
        description="Interface DNS name (default: the host's AD DNSHostName)"
    )
    agent_port: int = Field(
        default=10050,
        ge=1,
        le=65535,
        description="Zabbix agent port"
    )

    # ========================================================================
    # Logging
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)"
    )

    model_config = SettingsConfigDict(
        env_prefix='ADZBX_',
        extra='forbid',
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values loaded from the YAML file
        return env_settings, init_settings, file_secret_settings

    # ========================================================================
    # Validators
    # ========================================================================

    @field_validator('zabbix_url')
    @classmethod
    def validate_zabbix_url(cls, v):
        if not re.match(r'^https?://', v):
            raise ValueError('zabbix_url must start with http:// or https://')
        return v

    @field_validator('min_tls_version', mode='before')
    @classmethod
    def validate_min_tls_version(cls, v):
        v = str(v)
        if v not in ['1.2', '1.3']:
            raise ValueError('min_tls_version must be 1.2 or 1.3')
        return v

    @field_validator('directory_transport')
    @classmethod
    def validate_directory_transport(cls, v):
        if v not in ['ntlm', 'kerberos', 'certificate']:
            raise ValueError('directory_transport must be ntlm, kerberos or certificate')
        return v

    @field_validator('exclude_pattern')
    @classmethod
    def validate_exclude_pattern(cls, v):
        if v:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f'exclude_pattern is not a valid regex: {e}')
        return v or None

    @field_validator('group_id', mode='before')
    @classmethod
    def validate_group_id(cls, v):
        return str(v) if isinstance(v, int) else v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, or ERROR')
        return v.upper()

    @model_validator(mode='after')
    def check_certificate_transport(self):
        if self.directory_transport == 'certificate':
            if not (self.directory_cert_pem and self.directory_cert_key_pem):
                raise ValueError(
                    'directory_cert_pem and directory_cert_key_pem are required '
                    'for the certificate transport'
                )
        return self


def load_config(config_path: Optional[Path] = None) -> SyncConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config file (default: /etc/ad-zabbix-sync/config.yaml)

    Returns:
        SyncConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading config from {config_path}")

    with open(config_path, 'r') as f:
        config_dict = yaml.safe_load(f)

    if config_dict is None:
        raise ValueError(f"Config file is empty: {config_path}")
    if not isinstance(config_dict, dict):
        raise ValueError(f"Config file must contain a mapping: {config_path}")

    return SyncConfig(**config_dict)
