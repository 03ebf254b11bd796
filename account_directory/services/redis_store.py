"""
A user service backed by Redis.

Keys, all under a configurable prefix::

    {prefix}:account:{provider}:{user}       hash: data (JSON), verified (0/1)
    {prefix}:email:{normalized address}      string: "{provider}:{user}"
    {prefix}:activation:{token}              string: JSON ActivationRequest
    {prefix}:activations:pending             sorted set: token -> issued epoch
    {prefix}:activations:{provider}:{user}   set of activation tokens for an account
    {prefix}:reset:{username}:{token}        string: JSON PasswordReset, TTL
    {prefix}:resets:{provider}:{user}        set of reset keys for an account

A pending activation is claimed with ``GETDEL``, which Redis executes
atomically: exactly one of any number of concurrent :meth:`activate` calls
or sweeps receives the record. A consumed activation no longer exists, which
is what callers should see anyway. Disabling a reset rewrites its record in
place and keeps the TTL.

Marking an account verified and deleting an unverified account both run as
``WATCH``/``MULTI`` transactions on the account key, so an activation that
races the sweep either verifies a live account or finds it gone.
"""

from typing import Any, Callable, Dict, Optional
from datetime import datetime, timedelta
from functools import wraps
import json
import logging

import redis

from .. import domain, util
from ..exceptions import DuplicateEmail, NoSuchAccount, Unavailable
from .base import UserService

logger = logging.getLogger(__name__)


def _translate_errors(func: Callable) -> Callable:
    """Raise :class:`.Unavailable` when Redis cannot be reached."""
    @wraps(func)
    def inner(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except redis.exceptions.ConnectionError as e:
            raise Unavailable(f'Connection failed: {e}') from e
        except redis.exceptions.TimeoutError as e:
            raise Unavailable(f'Connection timed out: {e}') from e
    return inner


class RedisUserService(UserService):
    """
    Manages accounts and tokens in Redis.

    The StrictRedis instance is thread safe and connections are attached at
    the time a command is executed. This class holds the client and the
    token policy.
    """

    def __init__(self, host: str = 'localhost', port: int = 6379,
                 db: int = 0, prefix: str = 'accounts',
                 pending_max_age: int = 86400, reset_duration: int = 3600,
                 fake: bool = False,
                 clock: Callable[[], datetime] = util.utcnow) -> None:
        """Open the connection to Redis."""
        if fake:
            import fakeredis
            logger.debug('Using fake Redis')
            self.r = fakeredis.FakeStrictRedis(decode_responses=True)
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.StrictRedis(host=host, port=port, db=db,
                                       decode_responses=True)
        self._prefix = prefix
        self._pending_max_age = pending_max_age
        self._reset_duration = reset_duration
        self._clock = clock

    @_translate_errors
    def find(self, user_id: domain.UserId) -> Optional[domain.Account]:
        return self._load_account(self._account_key(user_id))

    @_translate_errors
    def find_by_email(self, email: str) -> Optional[domain.Account]:
        owner = self.r.get(self._email_key(email))
        if owner is None:
            return None
        provider_id, user_id = owner.split(':', 1)
        return self.find(domain.UserId(provider_id, user_id))

    @_translate_errors
    def save(self, account: domain.Account) -> domain.Account:
        key = self._account_key(account.user_id)
        owner = str(account.user_id)
        previous = self._load_account(key)

        if account.email is not None:
            email_key = self._email_key(account.email)
            if not self.r.set(email_key, owner, nx=True) \
                    and self.r.get(email_key) != owner:
                raise DuplicateEmail(f'{account.email} is already in use')

        pipe = self.r.pipeline()
        if previous is not None and previous.email is not None \
                and util.normalize_email(previous.email) \
                != util.normalize_email(account.email or ''):
            pipe.delete(self._email_key(previous.email))
        pipe.hset(key, mapping={
            'data': json.dumps(domain.to_dict(account)),
            'verified': int(account.is_email_verified)
        })
        pipe.execute()
        return account

    @_translate_errors
    def create_activation(self, account: domain.Account) -> str:
        self._require(account)
        token = util.generate_token()
        request = domain.ActivationRequest(
            token=token,
            user_id=account.user_id,
            created=self._clock()
        )
        # NX guards against reissuing a token that is already out there.
        while not self.r.set(self._activation_key(token),
                             json.dumps(domain.to_dict(request)), nx=True):
            token = util.generate_token()
            request = request._replace(token=token)
        pipe = self.r.pipeline()
        pipe.zadd(self._pending_key(), {token: util.epoch(request.created)})
        pipe.sadd(self._activations_key(account.user_id), token)
        pipe.execute()
        logger.debug('Created activation %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    @_translate_errors
    def activate(self, token: str) -> bool:
        request = self._claim_activation(token)
        if request is None:
            return False
        key = self._account_key(request.user_id)

        def _verify(pipe: redis.client.Pipeline) -> bool:
            if not pipe.hexists(key, 'data'):
                return False
            pipe.multi()
            pipe.hset(key, 'verified', 1)
            return True

        if not self.r.transaction(_verify, key, value_from_callable=True):
            return False
        logger.debug('Activated %s', request.user_id)
        return True

    @_translate_errors
    def create_password_reset(self, account: domain.Account) -> str:
        self._require(account)
        created = self._clock()
        token = util.generate_token()
        reset = domain.PasswordReset(
            token=token,
            username=account.username,
            user_id=account.user_id,
            created=created,
            expires=created + timedelta(seconds=self._reset_duration)
        )
        key = self._reset_key(account.username, token)
        pipe = self.r.pipeline()
        pipe.set(key, json.dumps(domain.to_dict(reset)),
                 ex=self._reset_duration)
        pipe.sadd(self._resets_key(account.user_id), key)
        pipe.execute()
        logger.debug('Created password reset %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    @_translate_errors
    def fetch_for_password_reset(self, username: str,
                                 token: str) -> Optional[domain.Account]:
        reset = self.get_password_reset(username, token)
        if reset is None or not reset.is_usable(self._clock()):
            return None
        return self.find(reset.user_id)

    @_translate_errors
    def disable_reset_code(self, username: str, token: str) -> None:
        reset = self.get_password_reset(username, token)
        if reset is None or reset.state is domain.ResetState.DISABLED:
            return
        reset = reset._replace(state=domain.ResetState.DISABLED)
        # XX: an expired record is not brought back.
        self.r.set(self._reset_key(username, token),
                   json.dumps(domain.to_dict(reset)), xx=True, keepttl=True)

    @_translate_errors
    def delete_pending_activations(self) -> None:
        cutoff = util.epoch(self._clock()) - self._pending_max_age
        stale = self.r.zrangebyscore(self._pending_key(), '-inf', cutoff)
        deleted = 0
        for token in stale:
            request = self._claim_activation(token)
            if request is None:
                continue
            if self._delete_if_unverified(request.user_id):
                deleted += 1
        logger.info('Swept %i pending activations, deleted %i accounts',
                    len(stale), deleted)

    @_translate_errors
    def get_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        raw = self.r.get(self._activation_key(token))
        if raw is None:
            return None
        return domain.from_dict(domain.ActivationRequest, json.loads(raw))

    @_translate_errors
    def get_password_reset(self, username: str, token: str) \
            -> Optional[domain.PasswordReset]:
        raw = self.r.get(self._reset_key(username, token))
        if raw is None:
            return None
        return domain.from_dict(domain.PasswordReset, json.loads(raw))

    def _claim_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        raw = self.r.getdel(self._activation_key(token))
        self.r.zrem(self._pending_key(), token)
        if raw is None:
            return None
        request: domain.ActivationRequest = domain.from_dict(
            domain.ActivationRequest, json.loads(raw)
        )
        self.r.srem(self._activations_key(request.user_id), token)
        return request

    def _delete_if_unverified(self, user_id: domain.UserId) -> bool:
        """Delete an unverified account and all of its tokens."""
        key = self._account_key(user_id)
        resets_key = self._resets_key(user_id)
        activations_key = self._activations_key(user_id)

        def _delete(pipe: redis.client.Pipeline) -> bool:
            account = self._load_account(key, pipe)
            if account is None or account.is_email_verified:
                return False
            reset_keys = pipe.smembers(resets_key)
            tokens = pipe.smembers(activations_key)
            pipe.multi()
            if account.email is not None:
                pipe.delete(self._email_key(account.email))
            for reset_key in reset_keys:
                pipe.delete(reset_key)
            for token in tokens:
                pipe.delete(self._activation_key(token))
                pipe.zrem(self._pending_key(), token)
            pipe.delete(resets_key, activations_key, key)
            return True

        return self.r.transaction(_delete, key, resets_key, activations_key,
                                  value_from_callable=True)

    def _load_account(self, key: str, client: Optional[redis.Redis] = None) \
            -> Optional[domain.Account]:
        if client is None:
            client = self.r
        data: Dict[str, str] = client.hgetall(key)
        if 'data' not in data:
            return None
        account: domain.Account = domain.from_dict(domain.Account,
                                                   json.loads(data['data']))
        return account._replace(is_email_verified=data.get('verified') == '1')

    def _require(self, account: domain.Account) -> None:
        if not self.r.exists(self._account_key(account.user_id)):
            raise NoSuchAccount(f'No account for {account.user_id}')

    def _account_key(self, user_id: domain.UserId) -> str:
        return f'{self._prefix}:account:{user_id}'

    def _email_key(self, email: str) -> str:
        return f'{self._prefix}:email:{util.normalize_email(email)}'

    def _activation_key(self, token: str) -> str:
        return f'{self._prefix}:activation:{token}'

    def _pending_key(self) -> str:
        return f'{self._prefix}:activations:pending'

    def _activations_key(self, user_id: domain.UserId) -> str:
        return f'{self._prefix}:activations:{user_id}'

    def _reset_key(self, username: str, token: str) -> str:
        return f'{self._prefix}:reset:{username}:{token}'

    def _resets_key(self, user_id: domain.UserId) -> str:
        return f'{self._prefix}:resets:{user_id}'
