"""Business logic services for the mint pipeline and blob storage."""

from .blob_store import BlobStore, RetentionPolicy
from .events import EventRepository
from .ledger import MintLedger
from .mint import MintOrchestrator
from .signature import SignatureVerifier
from .sponsor import SponsorDelegator

__all__ = [
    "BlobStore",
    "EventRepository",
    "MintLedger",
    "MintOrchestrator",
    "RetentionPolicy",
    "SignatureVerifier",
    "SponsorDelegator",
]
