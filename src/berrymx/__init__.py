"""
BerryMX - flat-file JSON content API
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Server for a bilingual (tr/en) marketing site. Content lives in one JSON
file per resource; admin writes are authenticated with SSH signatures.
Basic usage:

   >>> from berrymx import ResourceStore, sanitize
   >>> result = sanitize("projects", {"title": " Berry ", "extra": 1})
   >>> result.cleaned
   {'title': 'Berry'}

:license: MIT, see LICENSE for more details.
"""

__version__ = "1.0.0"
__author__ = "BerryMX Team"
__license__ = "MIT"

from berrymx.core.store import ResourceStore
from berrymx.core.sanitizer import sanitize, SanitizeResult
from berrymx.core.exceptions import BerryMXException, StorageError

__all__ = [
    'ResourceStore',
    'sanitize',
    'SanitizeResult',
    'BerryMXException',
    'StorageError',
    '__version__'
]
