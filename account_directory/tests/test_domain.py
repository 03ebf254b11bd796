"""Tests for :mod:`account_directory.domain`."""

from unittest import TestCase
from typing import NamedTuple, Optional
from datetime import datetime, timedelta
from pytz import UTC

from .. import domain


class TestDictCoercion(TestCase):
    """Tests for :func:`domain.from_dict` and :func:`domain.to_dict`."""

    def test_class_with_nested_children(self):
        """Child NamedTuple classes are combined with Optional types."""
        class ChildClass(NamedTuple):
            foo: str

        class ParentClass(NamedTuple):
            baz: Optional[ChildClass] = None

        parent = ParentClass(baz=ChildClass(foo='bar'))
        self.assertEqual(parent,
                         domain.from_dict(ParentClass, domain.to_dict(parent)))
        parent = ParentClass(baz=None)
        self.assertEqual(parent,
                         domain.from_dict(ParentClass, domain.to_dict(parent)))

    def test_account(self):
        """Accounts survive a trip through a JSON-compatible dict."""
        account = domain.Account(
            user_id=domain.UserId('twitter', '12345'),
            email='joe@bloggs.com',
            first_name='Joe',
            auth_method=domain.AuthenticationMethod.OAUTH1,
            password=domain.PasswordInfo('bcrypt', 'secret', 'salt'),
            attributes={'locale': 'en', 'langs': ['en', 'fr']}
        )
        data = domain.to_dict(account)
        self.assertEqual(data['auth_method'], 'oauth1')
        self.assertEqual(data['user_id'],
                         {'provider_id': 'twitter', 'user_id': '12345'})
        self.assertEqual(domain.from_dict(domain.Account, data), account)

    def test_activation_request(self):
        """Datetimes and states are cast back to their types."""
        request = domain.ActivationRequest(
            token='abc',
            user_id=domain.UserId('userpass', 'joe'),
            created=datetime(2024, 3, 1, 12, 0, tzinfo=UTC),
            state=domain.ActivationState.CONSUMED
        )
        data = domain.to_dict(request)
        self.assertEqual(data['created'], '2024-03-01T12:00:00+00:00')
        loaded = domain.from_dict(domain.ActivationRequest, data)
        self.assertEqual(loaded, request)
        self.assertIs(loaded.state, domain.ActivationState.CONSUMED)


class TestUserId(TestCase):
    """Tests for :class:`domain.UserId`."""

    def test_str(self):
        """The identity key renders as provider:user."""
        self.assertEqual(str(domain.UserId('github', 'joe')), 'github:joe')

    def test_username(self):
        """The username of an account is its provider-scoped id."""
        account = domain.Account(user_id=domain.UserId('userpass', 'joe'))
        self.assertEqual(account.username, 'joe')


class TestTokenStates(TestCase):
    """Tests for the token records."""

    def setUp(self):
        """Pick a creation time."""
        self.created = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)

    def test_is_stale(self):
        """Pending requests become stale once they reach the maximum age."""
        request = domain.ActivationRequest(
            token='abc', user_id=domain.UserId('userpass', 'joe'),
            created=self.created
        )
        later = self.created + timedelta(seconds=60)
        self.assertFalse(request.is_stale(later - timedelta(seconds=1), 60))
        self.assertTrue(request.is_stale(later, 60))
        self.assertTrue(request.is_stale(self.created, 0))

    def test_consumed_request_is_never_stale(self):
        """Only pending requests are swept."""
        request = domain.ActivationRequest(
            token='abc', user_id=domain.UserId('userpass', 'joe'),
            created=self.created, state=domain.ActivationState.CONSUMED
        )
        self.assertFalse(request.pending)
        self.assertFalse(request.is_stale(self.created + timedelta(days=9), 60))

    def test_is_usable(self):
        """Reset requests are usable while active and unexpired."""
        reset = domain.PasswordReset(
            token='abc', username='joe',
            user_id=domain.UserId('userpass', 'joe'),
            created=self.created,
            expires=self.created + timedelta(seconds=60)
        )
        self.assertTrue(reset.is_usable(self.created))
        self.assertFalse(reset.is_usable(reset.expires))
        disabled = reset._replace(state=domain.ResetState.DISABLED)
        self.assertFalse(disabled.is_usable(self.created))
