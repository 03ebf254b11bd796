"""Tests for the ``account-directory`` command."""

from unittest import TestCase
from datetime import timedelta
import os
import shutil
import tempfile

from click.testing import CliRunner

from .. import cli, domain, util
from ..services.database import SQLUserService


class TestCommands(TestCase):
    """Run the maintenance commands against a SQLite file."""

    def setUp(self):
        """Point the commands at a fresh database file."""
        self.workdir = tempfile.mkdtemp()
        self.uri = f'sqlite:///{os.path.join(self.workdir, "accounts.db")}'
        self.env = {
            'USER_SERVICE_BACKEND': 'database',
            'ACCOUNTS_DATABASE_URI': self.uri,
            'PENDING_ACTIVATION_MAX_AGE': '86400',
            'LOGLEVEL': 'ERROR'
        }
        self.runner = CliRunner()

    def tearDown(self):
        """Remove the database file."""
        shutil.rmtree(self.workdir)

    def _service(self, **kwargs) -> SQLUserService:
        service = SQLUserService(self.uri, **kwargs)
        self.addCleanup(service.engine.dispose)
        return service

    def test_init_db(self):
        """The tables are created."""
        result = self.runner.invoke(cli.main, ['init-db'], env=self.env)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Created account tables', result.output)

        service = self._service()
        self.assertIsNone(service.find(domain.UserId('userpass', 'x')))

    def test_init_db_requires_database_backend(self):
        """There is nothing to create for other backends."""
        env = dict(self.env, USER_SERVICE_BACKEND='memory')
        result = self.runner.invoke(cli.main, ['init-db'], env=env)
        self.assertNotEqual(result.exit_code, 0)
        self.assertIn('database', result.output)

    def test_unknown_backend(self):
        """A bad configuration is reported, not raised."""
        env = dict(self.env, USER_SERVICE_BACKEND='ldap')
        result = self.runner.invoke(cli.main, ['purge-pending'], env=env)
        self.assertEqual(result.exit_code, 1)
        self.assertIn('ldap', result.output)

    def test_purge_pending(self):
        """Stale unverified accounts are removed; recent ones are kept."""
        result = self.runner.invoke(cli.main, ['init-db'], env=self.env)
        self.assertEqual(result.exit_code, 0, result.output)

        two_days_ago = util.utcnow() - timedelta(days=2)
        old = self._service(clock=lambda: two_days_ago)
        stale = domain.Account(user_id=domain.UserId('userpass', 'stale'),
                               email='stale@example.com')
        old.save(stale)
        old.create_activation(stale)

        fresh = domain.Account(user_id=domain.UserId('userpass', 'fresh'),
                               email='fresh@example.com')
        current = self._service()
        current.save(fresh)
        token = current.create_activation(fresh)

        result = self.runner.invoke(cli.main, ['purge-pending'],
                                    env=self.env)
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('older than 86400s', result.output)

        self.assertIsNone(current.find(stale.user_id))
        self.assertEqual(current.find(fresh.user_id), fresh)
        self.assertTrue(current.activate(token))

    def test_loglevel_option(self):
        """The log level can be set on the command line."""
        result = self.runner.invoke(cli.main,
                                    ['--loglevel', 'DEBUG', 'init-db'],
                                    env=self.env)
        self.assertEqual(result.exit_code, 0, result.output)
