"""
A pluggable directory of user accounts for authentication layers.

This package finds and saves accounts, and manages two single-use token
workflows: activating accounts whose e-mail address has not been verified,
and resetting passwords. Storage is pluggable; any
:class:`.services.UserService` implementation can be bound, and three are
provided (in memory, SQL via SQLAlchemy, and Redis).

Quick start
-----------

1. Install this package into your virtual environment.
2. Bind a backend once at start-up, with :func:`.factory.init_app` in a
   Flask application factory or :func:`.facade.set_service` elsewhere.
3. Use the functions in :mod:`.facade` from request handlers.

.. code-block:: python

   # yourapp/factory.py
   from flask import Flask
   from account_directory import factory


   def create_web_app() -> Flask:
       app = Flask('foo')
       app.config['USER_SERVICE_BACKEND'] = 'database'
       factory.init_app(app)    # <- Bind the configured backend.
       return app


   # yourapp/controllers.py
   from account_directory import facade

   def confirm(token: str) -> bool:
       return facade.activate(token)

Pending activations that are never completed should be swept periodically
with ``account-directory purge-pending``.
"""

from .domain import UserId, Account, PasswordInfo, AuthenticationMethod, \
    ActivationRequest, ActivationState, PasswordReset, ResetState
from .services import UserService
