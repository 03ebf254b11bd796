"""Database models for the SQL user service."""

from sqlalchemy import Column, ForeignKeyConstraint, Index, Integer, \
    String, Text, text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

PENDING = 'pending'
CONSUMED = 'consumed'
ACTIVE = 'active'
DISABLED = 'disabled'


class DBAccount(Base):  # type: ignore
    """
    Registered accounts.

    +--------------------+--------------+------+-----+---------+
    | Field              | Type         | Null | Key | Default |
    +--------------------+--------------+------+-----+---------+
    | provider_id        | varchar(64)  | NO   | PRI |         |
    | user_id            | varchar(255) | NO   | PRI |         |
    | email              | varchar(255) | YES  |     | NULL    |
    | email_key          | varchar(255) | YES  | UNI | NULL    |
    | flag_email_verified| int(1)       | NO   |     | 0       |
    | ...                |              |      |     |         |
    +--------------------+--------------+------+-----+---------+
    """

    __tablename__ = 'accounts'

    provider_id = Column(String(64), primary_key=True)
    user_id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=True)
    email_key = Column(String(255), nullable=True, unique=True, index=True)
    """Normalized e-mail address, used for lookups."""
    first_name = Column(String(255), nullable=False, server_default=text("''"))
    last_name = Column(String(255), nullable=False, server_default=text("''"))
    display_name = Column(String(255), nullable=False,
                          server_default=text("''"))
    avatar_url = Column(String(1024), nullable=True)
    auth_method = Column(String(16), nullable=False)
    flag_email_verified = Column(Integer, nullable=False,
                                 server_default=text("'0'"))
    password_hasher = Column(String(64), nullable=True)
    password_enc = Column(String(255), nullable=True)
    password_salt = Column(String(255), nullable=True)
    attributes = Column(Text, nullable=False, server_default=text("'{}'"))
    """JSON object of profile attributes."""
    joined_date = Column(Integer, nullable=False, server_default=text("'0'"))
    """Epoch time."""


class DBActivation(Base):  # type: ignore
    """
    Activation requests for accounts with unverified e-mail addresses.

    +-------------+--------------+------+-----+---------+
    | Field       | Type         | Null | Key | Default |
    +-------------+--------------+------+-----+---------+
    | token       | varchar(36)  | NO   | PRI |         |
    | provider_id | varchar(64)  | NO   | MUL |         |
    | user_id     | varchar(255) | NO   | MUL |         |
    | issued_when | int(11)      | NO   | MUL | 0       |
    | state       | varchar(16)  | NO   |     | pending |
    +-------------+--------------+------+-----+---------+
    """

    __tablename__ = 'account_activations'
    __table_args__ = (
        ForeignKeyConstraint(['provider_id', 'user_id'],
                             ['accounts.provider_id', 'accounts.user_id']),
        Index('ix_account_activations_user', 'provider_id', 'user_id'),
        Index('ix_account_activations_state', 'state', 'issued_when'),
    )

    token = Column(String(36), primary_key=True)
    provider_id = Column(String(64), nullable=False)
    user_id = Column(String(255), nullable=False)
    issued_when = Column(Integer, nullable=False, server_default=text("'0'"))
    """Epoch time."""
    state = Column(String(16), nullable=False, server_default=PENDING)


class DBPasswordReset(Base):  # type: ignore
    """
    Password reset requests.

    +-------------+--------------+------+-----+---------+
    | Field       | Type         | Null | Key | Default |
    +-------------+--------------+------+-----+---------+
    | username    | varchar(255) | NO   | PRI |         |
    | token       | varchar(36)  | NO   | PRI |         |
    | provider_id | varchar(64)  | NO   | MUL |         |
    | user_id     | varchar(255) | NO   | MUL |         |
    | issued_when | int(11)      | NO   |     | 0       |
    | expires     | int(11)      | NO   |     | 0       |
    | state       | varchar(16)  | NO   |     | active  |
    +-------------+--------------+------+-----+---------+
    """

    __tablename__ = 'account_password_resets'
    __table_args__ = (
        ForeignKeyConstraint(['provider_id', 'user_id'],
                             ['accounts.provider_id', 'accounts.user_id']),
        Index('ix_account_password_resets_user', 'provider_id', 'user_id'),
    )

    username = Column(String(255), primary_key=True)
    token = Column(String(36), primary_key=True)
    provider_id = Column(String(64), nullable=False)
    user_id = Column(String(255), nullable=False)
    issued_when = Column(Integer, nullable=False, server_default=text("'0'"))
    expires = Column(Integer, nullable=False, server_default=text("'0'"))
    state = Column(String(16), nullable=False, server_default=ACTIVE)
