"""BerryMX core module."""

from .store import ResourceStore
from .sanitizer import sanitize, SanitizeResult
from .resources import RESOURCES, ResourceSpec, get_resource
from .exceptions import BerryMXException, StorageError

__all__ = [
    'ResourceStore',
    'sanitize',
    'SanitizeResult',
    'RESOURCES',
    'ResourceSpec',
    'get_resource',
    'BerryMXException',
    'StorageError',
]
