"""Tax authority transports (adapter interface + implementations).

Adapters send signed fiscal documents and query authorization status. They do
not know about invoices, retries or persistence.
"""

from .base import (
    AuthorityAdapterBase,
    AuthorityAdapterError,
    AuthorityRejectionError,
    AuthorityTechnicalError,
    AuthorityTimeoutError,
)
from .factory import get_authority_adapter
from .http import HttpAuthorityAdapter
from .mock import MockAuthorityAdapter

__all__ = [
    "AuthorityAdapterBase",
    "AuthorityAdapterError",
    "AuthorityRejectionError",
    "AuthorityTechnicalError",
    "AuthorityTimeoutError",
    "HttpAuthorityAdapter",
    "MockAuthorityAdapter",
    "get_authority_adapter",
]
