"""
Maintenance commands for the account directory.

Settings are read from the environment (see :mod:`.config`). For example, to
sweep activations that were never completed, from cron:

.. code-block:: bash

   $ USER_SERVICE_BACKEND=database \
     ACCOUNTS_DATABASE_URI=mysql://user:pass@db/accounts \
     account-directory purge-pending

"""

import logging
import os

import click

from . import app_logging, config, facade, factory
from .exceptions import ConfigurationError
from .services.database import SQLUserService

logger = logging.getLogger(__name__)


@click.group()
@click.pass_context
@click.option('--loglevel', default=None,
              help='Overrides the LOGLEVEL setting.')
def main(ctx: click.Context, loglevel: str) -> None:
    """Maintain accounts and tokens in the configured backend."""
    handler = app_logging.setup_logger(
        loglevel or config.get(os.environ, 'LOGLEVEL')
    )
    ctx.call_on_close(lambda: logging.getLogger().removeHandler(handler))


@main.command('init-db')
def init_db() -> None:
    """Create the tables used by the database backend."""
    try:
        service = factory.create_user_service(os.environ)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    if not isinstance(service, SQLUserService):
        raise click.ClickException('USER_SERVICE_BACKEND is not "database"')
    service.create_all()
    logger.info('Created account tables')
    click.echo('Created account tables')


@main.command('purge-pending')
def purge_pending() -> None:
    """Delete activations, and unverified accounts, that were never completed."""
    try:
        service = factory.create_user_service(os.environ)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    binding = facade.ServiceBinding()
    binding.bind(service)
    binding.delete_pending_activations()
    click.echo('Deleted pending activations older than '
               f'{config.get(os.environ, "PENDING_ACTIVATION_MAX_AGE")}s')


if __name__ == '__main__':
    main()
