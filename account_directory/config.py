"""
Configuration for the account directory.

Settings are read from the Flask application config when one is available,
and from the process environment otherwise. Every key has a default in
:data:`DEFAULTS`; values read from the environment are strings, so numeric
settings go through :func:`get_int`.
"""

from typing import Any, Mapping, Optional
import os

from flask import Flask, current_app, has_app_context

DEFAULTS = {
    'USER_SERVICE_BACKEND': 'memory',
    'ACCOUNTS_DATABASE_URI': 'sqlite:///accounts.db',
    'ACCOUNTS_DATABASE_ECHO': '0',
    'REDIS_HOST': 'localhost',
    'REDIS_PORT': '6379',
    'REDIS_DATABASE': '0',
    'REDIS_PREFIX': 'accounts',
    'REDIS_FAKE': '0',
    'PENDING_ACTIVATION_MAX_AGE': '86400',
    'PASSWORD_RESET_DURATION': '3600',
    'LOGLEVEL': 'INFO',
}
"""Default value for every supported setting."""

BACKENDS = ('memory', 'database', 'redis')
"""Valid values for ``USER_SERVICE_BACKEND``."""


def get_application_config(app: Optional[Flask] = None) -> Mapping[str, Any]:
    """
    Get the configuration for the current context.

    Prefers the config of ``app``, then that of the current Flask
    application, and falls back to ``os.environ``.
    """
    if app is not None:
        return app.config
    if has_app_context():
        return current_app.config
    return os.environ


def init_app(app: Flask) -> None:
    """Set configuration defaults for an application instance."""
    for key, value in DEFAULTS.items():
        app.config.setdefault(key, value)


def get(config: Mapping[str, Any], key: str) -> Any:
    """Get a setting, falling back to its default."""
    return config.get(key, DEFAULTS[key])


def get_int(config: Mapping[str, Any], key: str) -> int:
    """Get a numeric setting."""
    return int(get(config, key))


def get_flag(config: Mapping[str, Any], key: str) -> bool:
    """Get a boolean setting; ``'1'``, ``'true'`` and ``True`` are truthy."""
    value = get(config, key)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)
