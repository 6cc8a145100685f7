"""Tests for configuration loading"""

from pathlib import Path

import pytest

from aptwrap.core import config as config_module
from aptwrap.core.config import (
    DEFAULT_LOCK_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    LOCK_PATHS,
    LockPolicy,
    get_config,
    load_config,
    reset_config,
)


@pytest.fixture
def config_file(tmp_path):
    """Write a config file and return its path."""
    def write(text):
        path = tmp_path / "aptwrap.conf"
        path.write_text(text)
        return path
    return write


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_file_missing(self, tmp_path):
        config = load_config(tmp_path / "missing.conf", environ={})
        assert config.lock_attempts == DEFAULT_LOCK_ATTEMPTS
        assert config.poll_interval == DEFAULT_POLL_INTERVAL
        assert config.lock_policy is LockPolicy.FAIL_OPEN
        assert config.lock_paths == LOCK_PATHS
        assert config.env == {'DEBIAN_FRONTEND': 'noninteractive', 'LANG': 'C'}

    def test_file_values(self, config_file):
        path = config_file(
            "# aptwrap settings\n"
            "\n"
            "lock_attempts = 100\n"
            "poll_interval=0.5\n"
            "lock_policy=fail-closed\n"
            "lock_paths=/tmp/a:/tmp/b\n"
        )
        config = load_config(path, environ={})
        assert config.lock_attempts == 100
        assert config.poll_interval == 0.5
        assert config.lock_policy is LockPolicy.FAIL_CLOSED
        assert config.lock_paths == [Path("/tmp/a"), Path("/tmp/b")]

    def test_environment_overrides_file(self, config_file):
        path = config_file("lock_attempts=100\n")
        config = load_config(path, environ={
            'APTWRAP_LOCK_ATTEMPTS': '7',
            'APTWRAP_LOCK_POLICY': 'FAIL-CLOSED',
        })
        assert config.lock_attempts == 7
        assert config.lock_policy is LockPolicy.FAIL_CLOSED

    def test_invalid_values_ignored(self, config_file, caplog):
        path = config_file("lock_attempts=many\npoll_interval=-1\nlock_policy=maybe\n")
        config = load_config(path, environ={})
        assert config.lock_attempts == DEFAULT_LOCK_ATTEMPTS
        assert config.poll_interval == DEFAULT_POLL_INTERVAL
        assert config.lock_policy is LockPolicy.FAIL_OPEN
        assert "lock_attempts" in caplog.text

    def test_instances_do_not_share_lists(self, tmp_path):
        a = load_config(tmp_path / "missing.conf", environ={})
        b = load_config(tmp_path / "missing.conf", environ={})
        a.apt_get_args.append('--no-install-recommends')
        assert b.apt_get_args == ['-y', '--allow-downgrades']


class TestCachedConfig:
    """Tests for get_config caching."""

    def test_cached_until_reset(self, monkeypatch, tmp_path):
        monkeypatch.setattr(config_module, 'CONFIG_FILE', tmp_path / "missing.conf")
        reset_config()
        try:
            first = get_config()
            assert get_config() is first
            reset_config()
            assert get_config() is not first
        finally:
            reset_config()
