"""
A user service that keeps everything in process memory.

Useful for tests and development. Every operation runs under a single
re-entrant lock, which makes each check-and-transition atomic with respect to
other threads.
"""

from typing import Callable, Dict, Optional, Tuple
from datetime import datetime, timedelta
import logging
import threading

from .. import domain, util
from ..exceptions import DuplicateEmail, NoSuchAccount
from .base import UserService

logger = logging.getLogger(__name__)


class InMemoryUserService(UserService):
    """Stores accounts and tokens in dicts."""

    def __init__(self, pending_max_age: int = 86400,
                 reset_duration: int = 3600,
                 clock: Callable[[], datetime] = util.utcnow) -> None:
        self._pending_max_age = pending_max_age
        self._reset_duration = reset_duration
        self._clock = clock
        self._lock = threading.RLock()
        self._accounts: Dict[domain.UserId, domain.Account] = {}
        self._emails: Dict[str, domain.UserId] = {}
        self._activations: Dict[str, domain.ActivationRequest] = {}
        self._resets: Dict[Tuple[str, str], domain.PasswordReset] = {}

    def find(self, user_id: domain.UserId) -> Optional[domain.Account]:
        with self._lock:
            return self._accounts.get(user_id)

    def find_by_email(self, email: str) -> Optional[domain.Account]:
        with self._lock:
            user_id = self._emails.get(util.normalize_email(email))
            if user_id is None:
                return None
            return self._accounts.get(user_id)

    def save(self, account: domain.Account) -> domain.Account:
        with self._lock:
            email_key = None
            if account.email is not None:
                email_key = util.normalize_email(account.email)
                owner = self._emails.get(email_key)
                if owner is not None and owner != account.user_id:
                    raise DuplicateEmail(f'{account.email} is already in use')

            previous = self._accounts.get(account.user_id)
            if previous is not None and previous.email is not None:
                self._emails.pop(util.normalize_email(previous.email), None)
            if email_key is not None:
                self._emails[email_key] = account.user_id
            self._accounts[account.user_id] = account
        return account

    def create_activation(self, account: domain.Account) -> str:
        with self._lock:
            self._require(account)
            token = util.generate_token()
            while token in self._activations:
                token = util.generate_token()
            self._activations[token] = domain.ActivationRequest(
                token=token,
                user_id=account.user_id,
                created=self._clock()
            )
        logger.debug('Created activation %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    def activate(self, token: str) -> bool:
        with self._lock:
            request = self._activations.get(token)
            if request is None or not request.pending:
                return False
            self._activations[token] = request._replace(
                state=domain.ActivationState.CONSUMED
            )
            account = self._accounts.get(request.user_id)
            if account is not None:
                self._accounts[request.user_id] = \
                    account._replace(is_email_verified=True)
        logger.debug('Activated %s', request.user_id)
        return True

    def create_password_reset(self, account: domain.Account) -> str:
        created = self._clock()
        with self._lock:
            self._require(account)
            token = util.generate_token()
            while (account.username, token) in self._resets:
                token = util.generate_token()
            self._resets[(account.username, token)] = domain.PasswordReset(
                token=token,
                username=account.username,
                user_id=account.user_id,
                created=created,
                expires=created + timedelta(seconds=self._reset_duration)
            )
        logger.debug('Created password reset %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    def fetch_for_password_reset(self, username: str,
                                 token: str) -> Optional[domain.Account]:
        with self._lock:
            reset = self._resets.get((username, token))
            if reset is None or not reset.is_usable(self._clock()):
                return None
            return self._accounts.get(reset.user_id)

    def disable_reset_code(self, username: str, token: str) -> None:
        with self._lock:
            reset = self._resets.get((username, token))
            if reset is not None:
                self._resets[(username, token)] = \
                    reset._replace(state=domain.ResetState.DISABLED)

    def delete_pending_activations(self) -> None:
        now = self._clock()
        deleted = 0
        with self._lock:
            stale = [request for request in self._activations.values()
                     if request.is_stale(now, self._pending_max_age)]
            for request in stale:
                # Already removed along with an earlier account.
                if self._activations.pop(request.token, None) is None:
                    continue
                account = self._accounts.get(request.user_id)
                if account is None or account.is_email_verified:
                    continue
                self._delete_account(account)
                deleted += 1
        logger.info('Swept %i pending activations, deleted %i accounts',
                    len(stale), deleted)

    def get_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        with self._lock:
            return self._activations.get(token)

    def get_password_reset(self, username: str, token: str) \
            -> Optional[domain.PasswordReset]:
        with self._lock:
            return self._resets.get((username, token))

    def _require(self, account: domain.Account) -> None:
        if account.user_id not in self._accounts:
            raise NoSuchAccount(f'No account for {account.user_id}')

    def _delete_account(self, account: domain.Account) -> None:
        """Remove an account and every token bound to it. Caller holds lock."""
        del self._accounts[account.user_id]
        if account.email is not None:
            self._emails.pop(util.normalize_email(account.email), None)
        for token, request in list(self._activations.items()):
            if request.user_id == account.user_id:
                del self._activations[token]
        for key, reset in list(self._resets.items()):
            if reset.user_id == account.user_id:
                del self._resets[key]
