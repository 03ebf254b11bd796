"""Tests for :class:`account_directory.services.database.SQLUserService`."""

from unittest import TestCase, mock

from sqlalchemy.exc import OperationalError

import account_directory

from .... import domain, util
from ....services import UserService
from ....exceptions import DuplicateEmail, Unavailable
from ...tests.contract import UserServiceContract
from .. import SQLUserService, models
from ... import database
from ..helpers import transaction


class TestSQLUserService(UserServiceContract, TestCase):
    """The SQL backend satisfies the user service contract."""

    def new_service(self, clock, pending_max_age, reset_duration):
        """Create an empty in-memory SQLite database."""
        service = SQLUserService('sqlite://', pending_max_age=pending_max_age,
                                 reset_duration=reset_duration, clock=clock)
        service.create_all()
        return service

    def tearDown(self):
        """Drop the tables."""
        self.service.drop_all()

    def test_is_available(self):
        """The in-memory database is reachable."""
        self.assertTrue(self.service.is_available())

    def test_email_is_stored_as_given(self):
        """The account keeps the address as given; lookups use the key."""
        account = self.alice._replace(email='Alice@Example.com')
        self.service.save(account)
        with transaction(self.service._sessions) as session:
            db_account = session.query(models.DBAccount).one()
            self.assertEqual(db_account.email, 'Alice@Example.com')
            self.assertEqual(db_account.email_key, 'alice@example.com')
        self.assertEqual(self.service.find_by_email('alice@example.com'),
                         account)

    def test_consumed_activation_is_kept(self):
        """Consumed requests stay on record in their terminal state."""
        self.service.save(self.alice)
        token = self.service.create_activation(self.alice)
        self.assertTrue(self.service.activate(token))
        request = self.service.get_activation(token)
        self.assertEqual(request.state, domain.ActivationState.CONSUMED)

    def test_joined_date_is_set_once(self):
        """The join date is recorded on first save and kept afterwards."""
        self.service.save(self.alice)
        self.advance(100)
        self.service.save(self.alice._replace(first_name='Al'))
        with transaction(self.service._sessions) as session:
            db_account = session.query(models.DBAccount).one()
            self.assertEqual(db_account.joined_date, 1709294400)

    def test_first_save_loses_race(self):
        """A save that collides with a concurrent first save updates instead."""
        self.service.save(self.alice)
        real_get_account = database._get_account
        calls = []

        def stale_then_real(session, user_id):
            calls.append(user_id)
            if len(calls) == 1:
                return None
            return real_get_account(session, user_id)

        renamed = self.alice._replace(first_name='Al',
                                      email='al@example.org')
        with mock.patch(f'{database.__name__}._get_account',
                        side_effect=stale_then_real):
            self.assertEqual(self.service.save(renamed), renamed)
        self.assertEqual(len(calls), 2)
        self.assertEqual(self.service.find(self.alice.user_id), renamed)

    def test_first_save_without_email_loses_race(self):
        """A primary key collision is never reported as a duplicate e-mail."""
        account = domain.Account(user_id=domain.UserId('github', '42'))
        self.service.save(account)
        real_get_account = database._get_account
        calls = []

        def stale_then_real(session, user_id):
            calls.append(user_id)
            if len(calls) == 1:
                return None
            return real_get_account(session, user_id)

        with mock.patch(f'{database.__name__}._get_account',
                        side_effect=stale_then_real):
            self.service.save(account._replace(display_name='octocat'))
        self.assertEqual(self.service.find(account.user_id).display_name,
                         'octocat')

    def test_email_claimed_concurrently(self):
        """An address taken after the ownership check is still a duplicate."""
        self.service.save(self.alice)
        real_get_owner = database._get_owner
        calls = []

        def stale_then_real(session, email_key):
            calls.append(email_key)
            if len(calls) == 1:
                return None
            return real_get_owner(session, email_key)

        impostor = self.bob._replace(email='alice@example.com')
        with mock.patch(f'{database.__name__}._get_owner',
                        side_effect=stale_then_real):
            with self.assertRaises(DuplicateEmail):
                self.service.save(impostor)
        self.assertIsNone(self.service.find(self.bob.user_id))
        self.assertEqual(self.service.find_by_email('alice@example.com'),
                         self.alice)


class TestDefaults(TestCase):
    """The package imports and its backends construct with defaults."""

    def test_package_exports(self):
        """The contract is available from the top-level package."""
        self.assertIs(account_directory.UserService, UserService)

    def test_default_clock(self):
        """Without a clock, the backend uses the wall clock in UTC."""
        service = SQLUserService('sqlite://')
        self.assertIs(service._clock, util.utcnow)
        self.assertTrue(service.is_available())
        service.engine.dispose()


class TestDatabaseFaults(TestCase):
    """Storage failures propagate as :class:`.Unavailable`."""

    def setUp(self):
        """Create a service whose sessions cannot reach the database."""
        self.service = SQLUserService('sqlite://')
        session = mock.MagicMock()
        session.query.side_effect = OperationalError('SELECT 1', {},
                                                     Exception('gone away'))
        self.session_factory = mock.MagicMock(return_value=session)
        self.service._sessions = self.session_factory
        self.session = session

    def test_write_is_not_retried(self):
        """A failed save raises once, and the transaction is rolled back."""
        account = domain.Account(user_id=domain.UserId('userpass', 'x'),
                                 email='x@example.com')
        with self.assertRaises(Unavailable):
            self.service.save(account)
        self.assertEqual(self.session_factory.call_count, 1)
        self.assertEqual(self.session.rollback.call_count, 1)
        self.assertEqual(self.session.close.call_count, 1)

    @mock.patch('retry.api.time.sleep')
    def test_read_is_retried(self, mock_sleep):
        """Lookups are attempted three times before giving up."""
        with self.assertRaises(Unavailable):
            self.service.find(domain.UserId('userpass', 'x'))
        self.assertEqual(self.session_factory.call_count, 3)
        self.assertEqual(mock_sleep.call_count, 2)
