"""
Pydantic schemas for API request/response models and stored records.

These schemas define the structure of API data for serialization and validation.
"""

from .blob import BlobStoreResponse, StoredBlobOut, WalrusConfigOut
from .event import MintEvent
from .mint import MintCheckResponse, MintRequest, MintResponse, MintResultOut

__all__ = [
    "BlobStoreResponse", "StoredBlobOut", "WalrusConfigOut",
    "MintEvent",
    "MintCheckResponse", "MintRequest", "MintResponse", "MintResultOut",
]
