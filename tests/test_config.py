"""
Tests for configuration loading.
"""

import pytest
import yaml
from pydantic import ValidationError

from ad_zabbix_sync.config import SyncConfig, load_config

MINIMAL = {
    "zabbix_url": "https://zabbix.example.com/api_jsonrpc.php",
    "zabbix_user": "Admin",
    "zabbix_password": "zabbix",
    "search_base": "OU=Servers,DC=corp,DC=local",
    "group_id": "2",
}


@pytest.fixture
def config_file(tmp_path):
    def write(data):
        path = tmp_path / "config.yaml"
        path.write_text(data if isinstance(data, str) else yaml.safe_dump(data))
        return path
    return write


class TestLoadConfig:
    """Tests for load_config."""

    def test_minimal(self, config_file):
        config = load_config(config_file(MINIMAL))

        assert config.zabbix_url == MINIMAL["zabbix_url"]
        assert config.verify_ssl is True
        assert config.min_tls_version == "1.2"
        assert config.request_timeout == 30
        assert config.lookup_concurrency == 1
        assert config.treat_failures_as_missing is False
        assert config.use_ip is True
        assert config.default_ip == "127.0.0.1"
        assert config.agent_port == 10050
        assert config.directory_host is None
        assert config.log_level == "INFO"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, config_file):
        with pytest.raises(ValueError, match="empty"):
            load_config(config_file(""))

    def test_non_mapping(self, config_file):
        with pytest.raises(ValueError, match="mapping"):
            load_config(config_file("- a\n- b\n"))

    def test_missing_required(self, config_file):
        data = dict(MINIMAL)
        del data["search_base"]

        with pytest.raises(ValidationError):
            load_config(config_file(data))

    def test_unknown_key_rejected(self, config_file):
        with pytest.raises(ValidationError):
            load_config(config_file({**MINIMAL, "zabix_url": "typo"}))

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("ADZBX_ZABBIX_PASSWORD", "from-env")
        monkeypatch.setenv("ADZBX_LOOKUP_CONCURRENCY", "4")

        config = load_config(config_file(MINIMAL))

        assert config.zabbix_password == "from-env"
        assert config.lookup_concurrency == 4

    def test_password_not_in_repr(self, config_file):
        config = load_config(config_file(MINIMAL))

        assert "zabbix_password" not in repr(config)


class TestValidation:
    """Field validators."""

    def test_float_tls_version(self):
        config = SyncConfig(**{**MINIMAL, "min_tls_version": 1.3})
        assert config.min_tls_version == "1.3"

    def test_unsupported_tls_version(self):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "min_tls_version": "1.1"})

    def test_url_scheme(self):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "zabbix_url": "zabbix.example.com/api_jsonrpc.php"})

    def test_bad_exclude_pattern(self):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "exclude_pattern": "^wks-("})

    def test_empty_exclude_pattern(self):
        assert SyncConfig(**{**MINIMAL, "exclude_pattern": ""}).exclude_pattern is None

    def test_group_id_int(self):
        assert SyncConfig(**{**MINIMAL, "group_id": 2}).group_id == "2"

    def test_directory_transport(self):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "directory_transport": "basic-ish"})

    def test_log_level_normalized(self):
        assert SyncConfig(**{**MINIMAL, "log_level": "debug"}).log_level == "DEBUG"

    def test_certificate_transport_requires_cert_files(self):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "directory_transport": "certificate", "directory_cert_pem": "/etc/ssl/sync.pem"})

    def test_certificate_transport(self):
        config = SyncConfig(**{
            **MINIMAL,
            "directory_transport": "certificate",
            "directory_cert_pem": "/etc/ssl/sync.pem",
            "directory_cert_key_pem": "/etc/ssl/sync.key",
        })

        assert config.directory_cert_pem == "/etc/ssl/sync.pem"
        assert config.directory_verify_ssl is True

    @pytest.mark.parametrize("concurrency", [0, 33])
    def test_concurrency_bounds(self, concurrency):
        with pytest.raises(ValidationError):
            SyncConfig(**{**MINIMAL, "lookup_concurrency": concurrency})
