"""User service backends."""

from .base import UserService
from .memory import InMemoryUserService
from .database import SQLUserService
from .redis_store import RedisUserService
