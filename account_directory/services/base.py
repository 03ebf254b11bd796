"""
The contract that every user service backend implements.

A backend owns two concerns: the account directory (lookup and persistence
of :class:`.domain.Account`) and the lifecycle of the single-use tokens that
activate accounts and authorize password resets.

Token state machines
--------------------

Activation: ``pending -> consumed``. Password reset: ``active -> disabled``.
There is no transition out of a terminal state, and a token in a terminal
state is indistinguishable from an unknown token to callers of
:meth:`UserService.activate` and :meth:`UserService.fetch_for_password_reset`.
Transitions must be atomic check-and-set operations so that concurrent
callers cannot both succeed.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .. import domain


class UserService(ABC):
    """Finds, saves and activates accounts; issues and redeems tokens."""

    @abstractmethod
    def find(self, user_id: domain.UserId) -> Optional[domain.Account]:
        """
        Find the account that matches an identity key.

        Parameters
        ----------
        user_id : :class:`.domain.UserId`

        Returns
        -------
        :class:`.domain.Account` or None
            ``None`` if no account is bound to ``user_id``.

        """

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[domain.Account]:
        """
        Find the account that uses an e-mail address.

        Addresses are compared in their normalized form (see
        :func:`.util.normalize_email`).

        Parameters
        ----------
        email : str

        Returns
        -------
        :class:`.domain.Account` or None

        """

    @abstractmethod
    def save(self, account: domain.Account) -> domain.Account:
        """
        Create or update an account, keyed by its identity key.

        Only the fields of ``account`` are written; outstanding activation and
        password reset tokens are left alone.

        Raises
        ------
        :class:`.exceptions.DuplicateEmail`
            If a different account already uses the same e-mail address.

        """

    @abstractmethod
    def create_activation(self, account: domain.Account) -> str:
        """
        Create an activation request for an account.

        This is needed for accounts that register with a username and
        password, rather than through a third-party identity provider.

        Returns
        -------
        str
            A token to embed in the welcome e-mail.

        """

    @abstractmethod
    def activate(self, token: str) -> bool:
        """
        Mark the account bound to ``token`` as having a verified e-mail.

        Returns
        -------
        bool
            ``True`` the first time a pending token is redeemed; ``False``
            for unknown, consumed or purged tokens.

        """

    @abstractmethod
    def create_password_reset(self, account: domain.Account) -> str:
        """
        Create a password reset request for a username/password account.

        Returns
        -------
        str
            A token to embed in the password reset e-mail.

        """

    @abstractmethod
    def fetch_for_password_reset(self, username: str,
                                 token: str) -> Optional[domain.Account]:
        """
        Get the account for a reset request, if the request is usable.

        This does not disable the request; call :meth:`disable_reset_code`
        once the password has been changed.
        """

    @abstractmethod
    def disable_reset_code(self, username: str, token: str) -> None:
        """Disable a reset request. Unknown or disabled requests are ignored."""

    @abstractmethod
    def delete_pending_activations(self) -> None:
        """
        Delete activations that the user never completed.

        Accounts that are still unverified are deleted along with their
        requests. Verified accounts are never deleted.
        """

    @abstractmethod
    def get_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        """
        Get an activation request without changing its state.

        Backends may drop consumed requests, in which case this returns
        ``None`` for them.
        """

    @abstractmethod
    def get_password_reset(self, username: str, token: str) \
            -> Optional[domain.PasswordReset]:
        """
        Get a password reset request without changing its state.

        A disabled request is returned in its ``disabled`` state. Backends
        may drop a request once it has expired.
        """
