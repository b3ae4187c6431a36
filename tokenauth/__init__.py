"""tokenauth: opaque bearer tokens bound to audiences, with persistent storage."""

from .auth import TokenAuth
from .config import StoreConfig, TokenAuthConfig, load_config
from .errors import (
    InvalidTokenError,
    TokenAuthError,
    TokenEmptyError,
    TokenExpiredError,
    ValidationError,
)
from .janitor import Janitor
from .models import Audience, Token
from .providers import DefaultProvider, generate_random_string
from .stores import (
    BucketFileStore,
    InMemoryTokenStore,
    StoreRegistry,
    TokenStore,
    default_registry,
    get_store,
)

__version__ = "0.3.0"
__all__ = [
    "Audience",
    "Token",
    "TokenAuth",
    "TokenAuthConfig",
    "StoreConfig",
    "load_config",
    "TokenStore",
    "BucketFileStore",
    "InMemoryTokenStore",
    "StoreRegistry",
    "default_registry",
    "get_store",
    "Janitor",
    "DefaultProvider",
    "generate_random_string",
    "TokenAuthError",
    "ValidationError",
    "InvalidTokenError",
    "TokenEmptyError",
    "TokenExpiredError",
]
