"""Ximera provider for Stratus.

Example:
    from stratus.providers.ximera import Ximera, XimeraProvider

    provider = XimeraProvider(Ximera.from_env())
"""

from stratus.providers.ximera.config import Ximera
from stratus.providers.ximera.provider import XimeraProvider

__all__ = ["Ximera", "XimeraProvider"]
