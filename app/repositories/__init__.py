"""Repository layer modules."""

from app.repositories.policy_repository import PolicyRecordStore, SupabasePolicyRepository

__all__ = [
    "PolicyRecordStore",
    "SupabasePolicyRepository",
]
