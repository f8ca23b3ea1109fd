"""Tests for VaultSettings."""

from __future__ import annotations

import dataclasses

import pytest

from docvault.settings import VaultSettings


def test_defaults_are_valid_for_local():
    settings = VaultSettings()
    assert settings.is_local
    assert settings.validate() == []
    assert settings.expiring_window_days == 7


def test_non_local_requires_supabase():
    errors = VaultSettings(environment='production').validate()
    assert any('supabase_url' in e for e in errors)
    assert any('supabase_service_role_key' in e for e in errors)


def test_non_local_with_supabase_is_valid():
    settings = VaultSettings(
        environment='staging',
        public_base_url='https://docs.example.com',
        supabase_url='https://xyz.supabase.co',
        supabase_service_role_key='svc',
    )
    assert settings.validate() == []


@pytest.mark.parametrize('overrides, fragment', [
    ({'environment': 'qa'}, 'unknown environment'),
    ({'public_base_url': 'docs.example.com'}, 'public_base_url'),
    ({'store_timeout_seconds': 0}, 'store_timeout_seconds'),
    ({'expiring_window_days': -1}, 'expiring_window_days'),
    ({'log_level': 'TRACE'}, 'unknown log level'),
])
def test_invalid_values_reported(overrides, fragment):
    errors = VaultSettings(**overrides).validate()
    assert any(fragment in e for e in errors)


def test_from_env():
    settings = VaultSettings.from_env({
        'ENVIRONMENT': 'dev',
        'PUBLIC_BASE_URL': 'https://dev.docs.example.com',
        'SUPABASE_URL': 'https://xyz.supabase.co',
        'SUPABASE_SERVICE_ROLE_KEY': 'svc',
        'STORE_TIMEOUT_SECONDS': '2.5',
        'EXPIRING_WINDOW_DAYS': '14',
        'CORS_ORIGINS': 'https://a.example.com, https://b.example.com',
    })
    assert settings.environment == 'dev'
    assert settings.public_base_url == 'https://dev.docs.example.com'
    assert settings.store_timeout_seconds == 2.5
    assert settings.expiring_window_days == 14
    assert settings.cors_origins == ('https://a.example.com', 'https://b.example.com')


def test_from_env_defaults():
    settings = VaultSettings.from_env({})
    assert settings == VaultSettings()


def test_settings_are_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        VaultSettings().environment = 'production'


@pytest.mark.parametrize('log_format, expected', [
    ('json', True),
    ('JSON', True),
    ('console', False),
])
def test_from_env_log_format(log_format, expected):
    settings = VaultSettings.from_env({'LOG_FORMAT': log_format, 'LOG_LEVEL': 'debug'})
    assert settings.log_json is expected
    assert settings.log_level == 'debug'
    assert settings.validate() == []


def test_from_env_rejects_non_numeric_timeout():
    with pytest.raises(ValueError):
        VaultSettings.from_env({'STORE_TIMEOUT_SECONDS': 'soon'})
