"""
Process-wide access to the configured user service.

Callers use the module-level functions here without knowing which backend is
active. A backend is bound once, during application start-up, with
:func:`set_service` (or :func:`.factory.init_app`); every function checks the
binding first and fails fast with :class:`.ServiceNotConfigured` if nothing
has been bound.

Code that prefers explicit wiring can create its own :class:`ServiceBinding`
and pass it around: the binding is itself a :class:`.UserService`.
"""

from typing import Optional
from functools import wraps
import logging
import threading

from . import domain
from .exceptions import ServiceNotConfigured, ServiceAlreadyConfigured
from .services.base import UserService

logger = logging.getLogger(__name__)


class ServiceBinding(UserService):
    """
    A write-once reference to a :class:`.UserService` backend.

    Binding is serialized with a lock; reading the binding is a single
    attribute load, so request handlers on any thread see either nothing or
    the fully constructed backend.
    """

    def __init__(self) -> None:
        self._service: Optional[UserService] = None
        self._lock = threading.Lock()

    def bind(self, service: UserService) -> None:
        """
        Set the backend that will be used.

        Binding the same backend again is harmless; binding a different one
        raises :class:`.ServiceAlreadyConfigured`.
        """
        with self._lock:
            if self._service is not None and self._service is not service:
                raise ServiceAlreadyConfigured(
                    'UserService is already bound to '
                    f'{type(self._service).__name__}'
                )
            self._service = service
        logger.debug('Bound user service %s', type(service).__name__)

    @property
    def is_bound(self) -> bool:
        """Whether a backend has been bound."""
        return self._service is not None

    @property
    def service(self) -> UserService:
        """Get the bound backend."""
        service = self._service
        if service is None:
            raise ServiceNotConfigured(
                'UserService was not properly initialized.'
            )
        return service

    def find(self, user_id: domain.UserId) -> Optional[domain.Account]:
        return self.service.find(user_id)

    def find_by_email(self, email: str) -> Optional[domain.Account]:
        return self.service.find_by_email(email)

    def save(self, account: domain.Account) -> domain.Account:
        return self.service.save(account)

    def create_activation(self, account: domain.Account) -> str:
        return self.service.create_activation(account)

    def activate(self, token: str) -> bool:
        return self.service.activate(token)

    def create_password_reset(self, account: domain.Account) -> str:
        return self.service.create_password_reset(account)

    def fetch_for_password_reset(self, username: str,
                                 token: str) -> Optional[domain.Account]:
        return self.service.fetch_for_password_reset(username, token)

    def disable_reset_code(self, username: str, token: str) -> None:
        self.service.disable_reset_code(username, token)

    def delete_pending_activations(self) -> None:
        self.service.delete_pending_activations()

    def get_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        return self.service.get_activation(token)

    def get_password_reset(self, username: str, token: str) \
            -> Optional[domain.PasswordReset]:
        return self.service.get_password_reset(username, token)


binding = ServiceBinding()
"""The process-wide binding used by the module-level functions."""


def set_service(service: UserService) -> None:
    """Bind the process-wide user service backend."""
    binding.bind(service)


def is_configured() -> bool:
    """Determine whether a backend has been bound."""
    return binding.is_bound


def current_service() -> UserService:
    """Get the bound backend, or raise :class:`.ServiceNotConfigured`."""
    return binding.service


@wraps(UserService.find)
def find(user_id: domain.UserId) -> Optional[domain.Account]:
    """Find the account that matches an identity key."""
    return binding.find(user_id)


@wraps(UserService.find_by_email)
def find_by_email(email: str) -> Optional[domain.Account]:
    """Find the account that uses an e-mail address."""
    return binding.find_by_email(email)


@wraps(UserService.save)
def save(account: domain.Account) -> domain.Account:
    """Create or update an account."""
    return binding.save(account)


@wraps(UserService.create_activation)
def create_activation(account: domain.Account) -> str:
    """Create an activation request for an account."""
    return binding.create_activation(account)


@wraps(UserService.activate)
def activate(token: str) -> bool:
    """Activate the account bound to ``token``."""
    return binding.activate(token)


@wraps(UserService.create_password_reset)
def create_password_reset(account: domain.Account) -> str:
    """Create a password reset request."""
    return binding.create_password_reset(account)


@wraps(UserService.fetch_for_password_reset)
def fetch_for_password_reset(username: str,
                             token: str) -> Optional[domain.Account]:
    """Get the account for a usable reset request."""
    return binding.fetch_for_password_reset(username, token)


@wraps(UserService.disable_reset_code)
def disable_reset_code(username: str, token: str) -> None:
    """Disable a reset request."""
    binding.disable_reset_code(username, token)


@wraps(UserService.delete_pending_activations)
def delete_pending_activations() -> None:
    """Delete activations that the user never completed."""
    binding.delete_pending_activations()
