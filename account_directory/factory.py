"""Build user service backends from configuration, and bind them."""

from typing import Any, Mapping, Optional
import logging

from flask import Flask

from . import config, facade
from .exceptions import ConfigurationError
from .services.base import UserService
from .services.database import SQLUserService
from .services.database.helpers import new_engine
from .services.memory import InMemoryUserService
from .services.redis_store import RedisUserService

logger = logging.getLogger(__name__)


def create_user_service(settings: Optional[Mapping[str, Any]] = None) \
        -> UserService:
    """
    Create the backend named by ``USER_SERVICE_BACKEND``.

    Parameters
    ----------
    settings : mapping
        Configuration; defaults to :func:`.config.get_application_config`.

    Returns
    -------
    :class:`.UserService`

    Raises
    ------
    :class:`.ConfigurationError`
        If the backend name is unknown or a numeric setting is malformed or
        out of range.

    """
    if settings is None:
        settings = config.get_application_config()
    backend = str(config.get(settings, 'USER_SERVICE_BACKEND')).lower()
    try:
        pending_max_age = config.get_int(settings,
                                         'PENDING_ACTIVATION_MAX_AGE')
        reset_duration = config.get_int(settings, 'PASSWORD_RESET_DURATION')
        if pending_max_age < 0:
            raise ConfigurationError('PENDING_ACTIVATION_MAX_AGE must not be'
                                     ' negative')
        if reset_duration <= 0:
            raise ConfigurationError('PASSWORD_RESET_DURATION must be'
                                     ' positive')
        if backend == 'memory':
            service: UserService = InMemoryUserService(
                pending_max_age=pending_max_age,
                reset_duration=reset_duration
            )
        elif backend == 'database':
            service = SQLUserService(
                new_engine(config.get(settings, 'ACCOUNTS_DATABASE_URI'),
                           echo=config.get_flag(settings,
                                                'ACCOUNTS_DATABASE_ECHO')),
                pending_max_age=pending_max_age,
                reset_duration=reset_duration
            )
        elif backend == 'redis':
            service = RedisUserService(
                host=config.get(settings, 'REDIS_HOST'),
                port=config.get_int(settings, 'REDIS_PORT'),
                db=config.get_int(settings, 'REDIS_DATABASE'),
                prefix=config.get(settings, 'REDIS_PREFIX'),
                pending_max_age=pending_max_age,
                reset_duration=reset_duration,
                fake=config.get_flag(settings, 'REDIS_FAKE')
            )
        else:
            raise ConfigurationError(
                f'Unknown USER_SERVICE_BACKEND {backend!r}; expected one of'
                f' {", ".join(config.BACKENDS)}'
            )
    except ValueError as e:
        raise ConfigurationError(f'Invalid setting: {e}') from e
    logger.debug('Created %s backend', backend)
    return service


def init_app(app: Flask,
             binding: Optional[facade.ServiceBinding] = None) -> UserService:
    """
    Create the configured backend and bind it for ``app``.

    Intended for use in a Flask application factory, for example:

    .. code-block:: python

       from flask import Flask
       from account_directory import factory


       def create_web_app() -> Flask:
          app = Flask('someapp')
          app.config.from_pyfile('config.py')
          factory.init_app(app)
          return app

    The backend is bound to the process-wide :data:`.facade.binding` unless
    another ``binding`` is given, and is also available as
    ``app.extensions['account_directory']``.
    """
    config.init_app(app)
    service = create_user_service(app.config)
    if binding is None:
        binding = facade.binding
    binding.bind(service)
    app.extensions['account_directory'] = binding
    return service
