"""Exceptions."""


class ServiceNotConfigured(RuntimeError):
    """No user service backend has been bound."""


class ServiceAlreadyConfigured(RuntimeError):
    """A different user service backend is already bound."""


class ConfigurationError(RuntimeError):
    """The user service cannot be built from the provided configuration."""


class Unavailable(RuntimeError):
    """The storage backend is temporarily unavailable."""


class DuplicateEmail(RuntimeError):
    """Another account already uses this e-mail address."""


class NoSuchAccount(RuntimeError):
    """Tokens can only be issued for accounts that have been saved."""
