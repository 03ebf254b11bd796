"""Tests for :mod:`account_directory.services.memory`."""

from unittest import TestCase

from hypothesis import given, settings
from hypothesis import strategies as st

from ... import domain
from ..memory import InMemoryUserService
from .contract import UserServiceContract


class TestInMemoryUserService(UserServiceContract, TestCase):
    """The in-memory backend satisfies the user service contract."""

    def new_service(self, clock, pending_max_age, reset_duration):
        """Create an empty in-memory backend."""
        return InMemoryUserService(pending_max_age=pending_max_age,
                                   reset_duration=reset_duration,
                                   clock=clock)

    def test_immediate_sweep(self):
        """With a zero threshold every pending activation is swept."""
        service = InMemoryUserService(pending_max_age=0, clock=lambda: self.now)
        service.save(self.alice)
        service.create_activation(self.alice)
        service.delete_pending_activations()
        self.assertIsNone(service.find(self.alice.user_id))

    def test_consumed_activation_is_kept(self):
        """Consumed requests stay on record in their terminal state."""
        self.service.save(self.alice)
        token = self.service.create_activation(self.alice)
        self.service.activate(token)
        request = self.service.get_activation(token)
        self.assertEqual(request.state, domain.ActivationState.CONSUMED)

    @given(st.emails())
    @settings(max_examples=200)
    def test_email_lookup_is_case_insensitive(self, email):
        """Any capitalization of a saved address finds the account."""
        service = InMemoryUserService()
        account = domain.Account(user_id=domain.UserId('userpass', 'someone'),
                                 email=email)
        service.save(account)
        self.assertEqual(service.find_by_email(email.upper()), account)
        self.assertEqual(service.find_by_email(email.lower()), account)
