"""
Source adapters.

Provides the ContentSource protocol, the BaseSource ABC, a generic JSON HTTP
adapter, an in-memory mock adapter, and a factory building adapters from
configuration.
"""

from .base import (
    MANDATORY_OPERATIONS,
    OPTIONAL_OPERATIONS,
    BaseSource,
    ContentSource,
    resolve_capabilities,
    validate_source,
)
from .factory import create_source
from .http import HttpSource
from .mock import MockSource


__all__ = [
    "ContentSource",
    "BaseSource",
    "HttpSource",
    "MockSource",
    "create_source",
    "resolve_capabilities",
    "validate_source",
    "MANDATORY_OPERATIONS",
    "OPTIONAL_OPERATIONS",
]
