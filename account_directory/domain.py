"""Defines account and token concepts for the account directory."""

from typing import Any, Optional, NamedTuple, Dict, Callable, Tuple, \
    get_type_hints, get_origin, get_args, Union
from datetime import datetime
from enum import Enum
from functools import partial

import dateutil.parser


class UserId(NamedTuple):
    """Identifies an account across identity providers."""

    provider_id: str
    """The identity provider, e.g. ``userpass``, ``github``."""

    user_id: str
    """Identifier of the user, scoped to :attr:`.provider_id`."""

    def __str__(self) -> str:
        """Return this key as a :-delimited string."""
        return f'{self.provider_id}:{self.user_id}'


class AuthenticationMethod(Enum):
    """How an account authenticates."""

    OAUTH1 = 'oauth1'
    OAUTH2 = 'oauth2'
    OPENID = 'openid'
    USER_PASSWORD = 'userpass'


class PasswordInfo(NamedTuple):
    """
    Credential for username/password accounts.

    The contents are produced and checked by the authentication layer; the
    directory stores them as given.
    """

    hasher: str
    password: str
    salt: Optional[str] = None


class Account(NamedTuple):
    """Represents one registered user."""

    user_id: UserId
    """Identity key. Immutable once assigned."""

    email: Optional[str] = None
    """The user's primary e-mail address, as given."""

    first_name: str = ''
    last_name: str = ''
    display_name: str = ''

    avatar_url: Optional[str] = None
    """Profile picture URL provided by the identity provider."""

    auth_method: AuthenticationMethod = AuthenticationMethod.USER_PASSWORD

    is_email_verified: bool = False
    """Whether or not the user's e-mail address has been verified."""

    password: Optional[PasswordInfo] = None
    """Opaque credential, for :attr:`.AuthenticationMethod.USER_PASSWORD`."""

    attributes: Dict[str, Any] = {}
    """
    Arbitrary profile attributes.

    Values must be JSON-compatible (strings, numbers, booleans, ``None``, and
    lists and dicts of those) so that every backend stores them unchanged.
    """

    @property
    def username(self) -> str:
        """The provider-scoped user id, used to scope password resets."""
        return self.user_id.user_id


class ActivationState(Enum):
    """States of an :class:`.ActivationRequest`."""

    PENDING = 'pending'
    CONSUMED = 'consumed'


class ResetState(Enum):
    """States of a :class:`.PasswordReset`."""

    ACTIVE = 'active'
    DISABLED = 'disabled'


class ActivationRequest(NamedTuple):
    """A single-use token that verifies the e-mail address of an account."""

    token: str
    user_id: UserId
    created: datetime
    state: ActivationState = ActivationState.PENDING

    @property
    def pending(self) -> bool:
        """Whether the token can still activate the account."""
        return self.state is ActivationState.PENDING

    def is_stale(self, now: datetime, max_age: int) -> bool:
        """
        Determine whether this request is old enough to be swept.

        A pending request is stale once ``max_age`` seconds have elapsed since
        it was created. With ``max_age == 0`` every pending request is stale.
        """
        return self.pending \
            and (now - self.created).total_seconds() >= max_age


class PasswordReset(NamedTuple):
    """A single-use token that authorizes one password change."""

    token: str
    username: str
    user_id: UserId
    created: datetime
    expires: datetime
    state: ResetState = ResetState.ACTIVE

    def is_usable(self, now: datetime) -> bool:
        """Active and not yet expired."""
        return self.state is ResetState.ACTIVE and now < self.expires


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This uses the built-in ``_asdict`` method on the instance, and also casts
    child NamedTuple instances (recursively), datetimes and enums so that the
    result can be serialized as JSON.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}

    def _cast(value: Any) -> Any:
        if hasattr(value, '_asdict'):
            return to_dict(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, list):
            return [_cast(o) for o in value]
        if isinstance(value, dict):
            return {k: _cast(v) for k, v in value.items()}
        return value

    return {key: _cast(value) for key, value in obj._asdict().items()}


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.

    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    return cls(**_data)


def _candidate_types(field_type: Any) -> Tuple[Any, ...]:
    """Unpack ``Optional[X]`` and other unions into their member types."""
    if get_origin(field_type) is Union:
        return get_args(field_type)
    return (field_type,)


def _get_cast_type(field_type: Any, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    for candidate in _candidate_types(field_type):
        if not isinstance(candidate, type):
            continue
        if isinstance(value, dict) and hasattr(candidate, '_fields'):
            return partial(from_dict, candidate)
        if isinstance(value, str) and candidate is datetime:
            return dateutil.parser.parse
        if issubclass(candidate, Enum) and not isinstance(value, candidate):
            return candidate
    return None
