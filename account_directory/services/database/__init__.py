"""
A user service backed by a relational database, via SQLAlchemy.

Token transitions are conditional ``UPDATE``/``DELETE`` statements filtered on
the current state; the affected row count tells us whether this caller won
the transition. That keeps :meth:`.SQLUserService.activate` and
:meth:`.SQLUserService.delete_pending_activations` correct when they race.
"""

from typing import Any, Callable, Optional, Union
from datetime import datetime
import json
import logging

from retry import retry
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from ... import domain, util
from ...exceptions import DuplicateEmail, NoSuchAccount, Unavailable
from ..base import UserService
from . import models
from .models import DBAccount, DBActivation, DBPasswordReset
from .helpers import new_engine, new_session_factory, transaction, \
    create_all, drop_all, is_available

logger = logging.getLogger(__name__)


class SQLUserService(UserService):
    """Stores accounts and tokens in the ``accounts`` tables."""

    def __init__(self, engine: Union[Engine, str],
                 pending_max_age: int = 86400,
                 reset_duration: int = 3600,
                 clock: Callable[[], datetime] = util.utcnow) -> None:
        """
        Set up the session factory.

        Parameters
        ----------
        engine : :class:`Engine` or str
            An engine, or a database URI from which to create one.
        pending_max_age : int
            Seconds after which a pending activation is swept.
        reset_duration : int
            Seconds for which a password reset token can be used.
        clock : callable
            Returns the current time as an aware :class:`datetime`.

        """
        if isinstance(engine, str):
            engine = new_engine(engine)
        self.engine = engine
        self._sessions = new_session_factory(engine)
        self._pending_max_age = pending_max_age
        self._reset_duration = reset_duration
        self._clock = clock

    def create_all(self) -> None:
        """Create all tables in the database."""
        create_all(self.engine)

    def drop_all(self) -> None:
        """Drop all tables in the database."""
        drop_all(self.engine)

    def is_available(self) -> bool:
        """Check our connection to the database."""
        return is_available(self.engine)

    @retry(Unavailable, tries=3, delay=0.5, backoff=2, logger=logger)
    def find(self, user_id: domain.UserId) -> Optional[domain.Account]:
        with transaction(self._sessions) as session:
            db_account = _get_account(session, user_id)
            if db_account is None:
                return None
            return _to_domain(db_account)

    @retry(Unavailable, tries=3, delay=0.5, backoff=2, logger=logger)
    def find_by_email(self, email: str) -> Optional[domain.Account]:
        with transaction(self._sessions) as session:
            db_account = session.query(DBAccount) \
                .filter(DBAccount.email_key == util.normalize_email(email)) \
                .first()
            if db_account is None:
                return None
            return _to_domain(db_account)

    def save(self, account: domain.Account) -> domain.Account:
        email_key = None
        if account.email is not None:
            email_key = util.normalize_email(account.email)
        try:
            self._save(account, email_key)
        except IntegrityError:
            # A concurrent save committed this account, or this address, after
            # we looked. The second attempt sees that row.
            logger.debug('Save of %s conflicted; retrying', account.user_id)
            try:
                self._save(account, email_key)
            except IntegrityError as e:
                if email_key is None:
                    raise
                raise DuplicateEmail(f'{account.email} is already in use') \
                    from e
        return account

    def _save(self, account: domain.Account, email_key: Optional[str]) -> None:
        with transaction(self._sessions) as session:
            if email_key is not None:
                owner = _get_owner(session, email_key)
                if owner is not None \
                        and _user_id(owner) != account.user_id:
                    raise DuplicateEmail(f'{account.email} is already in use')

            db_account = _get_account(session, account.user_id)
            if db_account is None:
                db_account = DBAccount(
                    provider_id=account.user_id.provider_id,
                    user_id=account.user_id.user_id,
                    joined_date=util.epoch(self._clock())
                )
                session.add(db_account)
            _update_from_domain(db_account, account, email_key)
            session.flush()

    def create_activation(self, account: domain.Account) -> str:
        token = util.generate_token()
        with transaction(self._sessions) as session:
            _require_account(session, account.user_id)
            session.add(DBActivation(
                token=token,
                provider_id=account.user_id.provider_id,
                user_id=account.user_id.user_id,
                issued_when=util.epoch(self._clock()),
                state=models.PENDING
            ))
        logger.debug('Created activation %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    def activate(self, token: str) -> bool:
        with transaction(self._sessions) as session:
            claimed = session.query(DBActivation) \
                .filter(DBActivation.token == token) \
                .filter(DBActivation.state == models.PENDING) \
                .update({DBActivation.state: models.CONSUMED},
                        synchronize_session=False)
            if claimed != 1:
                return False

            db_activation = session.query(DBActivation) \
                .filter(DBActivation.token == token) \
                .one()
            session.query(DBAccount) \
                .filter(DBAccount.provider_id == db_activation.provider_id) \
                .filter(DBAccount.user_id == db_activation.user_id) \
                .update({DBAccount.flag_email_verified: 1},
                        synchronize_session=False)
            user_id = _user_id(db_activation)
        logger.debug('Activated %s', user_id)
        return True

    def create_password_reset(self, account: domain.Account) -> str:
        token = util.generate_token()
        issued = util.epoch(self._clock())
        with transaction(self._sessions) as session:
            _require_account(session, account.user_id)
            session.add(DBPasswordReset(
                username=account.username,
                token=token,
                provider_id=account.user_id.provider_id,
                user_id=account.user_id.user_id,
                issued_when=issued,
                expires=issued + self._reset_duration,
                state=models.ACTIVE
            ))
        logger.debug('Created password reset %s for %s',
                     util.token_prefix(token), account.user_id)
        return token

    @retry(Unavailable, tries=3, delay=0.5, backoff=2, logger=logger)
    def fetch_for_password_reset(self, username: str,
                                 token: str) -> Optional[domain.Account]:
        now = util.epoch(self._clock())
        with transaction(self._sessions) as session:
            db_reset = session.query(DBPasswordReset) \
                .filter(DBPasswordReset.username == username) \
                .filter(DBPasswordReset.token == token) \
                .filter(DBPasswordReset.state == models.ACTIVE) \
                .filter(DBPasswordReset.expires > now) \
                .first()
            if db_reset is None:
                return None
            db_account = _get_account(session, _user_id(db_reset))
            if db_account is None:
                return None
            return _to_domain(db_account)

    def disable_reset_code(self, username: str, token: str) -> None:
        with transaction(self._sessions) as session:
            session.query(DBPasswordReset) \
                .filter(DBPasswordReset.username == username) \
                .filter(DBPasswordReset.token == token) \
                .filter(DBPasswordReset.state == models.ACTIVE) \
                .update({DBPasswordReset.state: models.DISABLED},
                        synchronize_session=False)

    def delete_pending_activations(self) -> None:
        cutoff = util.epoch(self._clock()) - self._pending_max_age
        deleted = 0
        with transaction(self._sessions) as session:
            stale = session.query(DBActivation.token, DBActivation.provider_id,
                                  DBActivation.user_id) \
                .filter(DBActivation.state == models.PENDING) \
                .filter(DBActivation.issued_when <= cutoff) \
                .all()
            for token, provider_id, user_id in stale:
                # Whoever removes the pending row first owns it; a concurrent
                # activate() will find nothing to consume.
                claimed = session.query(DBActivation) \
                    .filter(DBActivation.token == token) \
                    .filter(DBActivation.state == models.PENDING) \
                    .delete(synchronize_session=False)
                if claimed != 1:
                    continue
                if _delete_if_unverified(session, provider_id, user_id):
                    deleted += 1
        logger.info('Swept %i pending activations, deleted %i accounts',
                    len(stale), deleted)

    def get_activation(self, token: str) \
            -> Optional[domain.ActivationRequest]:
        with transaction(self._sessions) as session:
            db_activation = session.query(DBActivation) \
                .filter(DBActivation.token == token) \
                .first()
            if db_activation is None:
                return None
            return domain.ActivationRequest(
                token=db_activation.token,
                user_id=_user_id(db_activation),
                created=util.from_epoch(db_activation.issued_when),
                state=domain.ActivationState(db_activation.state)
            )

    def get_password_reset(self, username: str, token: str) \
            -> Optional[domain.PasswordReset]:
        with transaction(self._sessions) as session:
            db_reset = session.query(DBPasswordReset) \
                .filter(DBPasswordReset.username == username) \
                .filter(DBPasswordReset.token == token) \
                .first()
            if db_reset is None:
                return None
            return domain.PasswordReset(
                token=db_reset.token,
                username=db_reset.username,
                user_id=_user_id(db_reset),
                created=util.from_epoch(db_reset.issued_when),
                expires=util.from_epoch(db_reset.expires),
                state=domain.ResetState(db_reset.state)
            )


def _user_id(row: Any) -> domain.UserId:
    return domain.UserId(row.provider_id, row.user_id)


def _get_account(session: Session,
                 user_id: domain.UserId) -> Optional[DBAccount]:
    return session.query(DBAccount) \
        .filter(DBAccount.provider_id == user_id.provider_id) \
        .filter(DBAccount.user_id == user_id.user_id) \
        .first()


def _get_owner(session: Session, email_key: str) -> Optional[DBAccount]:
    return session.query(DBAccount) \
        .filter(DBAccount.email_key == email_key) \
        .first()


def _require_account(session: Session, user_id: domain.UserId) -> None:
    if _get_account(session, user_id) is None:
        raise NoSuchAccount(f'No account for {user_id}')


def _delete_if_unverified(session: Session, provider_id: str,
                          user_id: str) -> bool:
    """Delete an unverified account and all of its tokens."""
    db_account = session.query(DBAccount) \
        .filter(DBAccount.provider_id == provider_id) \
        .filter(DBAccount.user_id == user_id) \
        .filter(DBAccount.flag_email_verified == 0) \
        .with_for_update() \
        .first()
    if db_account is None:
        return False
    for table in (DBActivation, DBPasswordReset):
        session.query(table) \
            .filter(table.provider_id == provider_id) \
            .filter(table.user_id == user_id) \
            .delete(synchronize_session=False)
    session.delete(db_account)
    return True


def _update_field_if_changed(obj: Any, field: Any, update_with: Any) -> None:
    if getattr(obj, field) != update_with:
        setattr(obj, field, update_with)


def _update_from_domain(db_account: DBAccount, account: domain.Account,
                        email_key: Optional[str]) -> None:
    password = account.password
    _update_field_if_changed(db_account, 'email', account.email)
    _update_field_if_changed(db_account, 'email_key', email_key)
    _update_field_if_changed(db_account, 'first_name', account.first_name)
    _update_field_if_changed(db_account, 'last_name', account.last_name)
    _update_field_if_changed(db_account, 'display_name', account.display_name)
    _update_field_if_changed(db_account, 'avatar_url', account.avatar_url)
    _update_field_if_changed(db_account, 'auth_method',
                             account.auth_method.value)
    _update_field_if_changed(db_account, 'flag_email_verified',
                             int(account.is_email_verified))
    _update_field_if_changed(db_account, 'password_hasher',
                             password.hasher if password else None)
    _update_field_if_changed(db_account, 'password_enc',
                             password.password if password else None)
    _update_field_if_changed(db_account, 'password_salt',
                             password.salt if password else None)
    _update_field_if_changed(db_account, 'attributes',
                             json.dumps(account.attributes, sort_keys=True))


def _to_domain(db_account: DBAccount) -> domain.Account:
    password = None
    if db_account.password_hasher is not None:
        password = domain.PasswordInfo(
            hasher=db_account.password_hasher,
            password=db_account.password_enc,
            salt=db_account.password_salt
        )
    return domain.Account(
        user_id=_user_id(db_account),
        email=db_account.email,
        first_name=db_account.first_name,
        last_name=db_account.last_name,
        display_name=db_account.display_name,
        avatar_url=db_account.avatar_url,
        auth_method=domain.AuthenticationMethod(db_account.auth_method),
        is_email_verified=bool(db_account.flag_email_verified),
        password=password,
        attributes=json.loads(db_account.attributes or '{}')
    )
