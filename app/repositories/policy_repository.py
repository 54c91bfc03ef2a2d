"""Record store access for policy records."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.base_http_client import BaseHTTPClient
from app.core.exceptions import APIClientError, RecordNotFoundError, RecordStoreError
from app.schemas.policy import PolicyRecord
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class PolicyRecordStore(ABC):
    """Interface to the external store holding committed policy records.

    All operations are scoped to one owner. ``query`` returns records in
    creation order so duplicate screening is reproducible.
    """

    @abstractmethod
    async def query(
        self, owner_id: str, filters: Optional[Dict[str, Any]] = None
    ) -> List[PolicyRecord]:
        """Return the owner's records matching ``filters`` (column -> value)."""

    @abstractmethod
    async def get(self, owner_id: str, record_id: str) -> Optional[PolicyRecord]:
        """Return one record, or None when the owner has no such record."""

    @abstractmethod
    async def insert(self, owner_id: str, fields: Dict[str, Any]) -> PolicyRecord:
        """Create a record from store-column ``fields``."""

    @abstractmethod
    async def update(
        self, owner_id: str, record_id: str, fields: Dict[str, Any]
    ) -> PolicyRecord:
        """Apply store-column ``fields`` to an existing record."""

    @abstractmethod
    async def delete(self, owner_id: str, record_id: str) -> bool:
        """Delete a record; True when something was deleted."""


class SupabasePolicyRepository(PolicyRecordStore):
    """Policy records kept in a Supabase (PostgREST) table."""

    def __init__(self, rest_url: str, service_role_key: str, table: str = "policies",
                 timeout: float = 30.0):
        self.table = table
        self.client = BaseHTTPClient(
            api_key=service_role_key,
            base_url=rest_url,
            timeout=timeout,
            max_retries=2,
        )

    @staticmethod
    def _owner_filter(owner_id: str, **columns: Any) -> Dict[str, str]:
        params = {"user_id": f"eq.{owner_id}"}
        for column, value in columns.items():
            params[column] = f"eq.{value}"
        return params

    def _to_records(self, rows: List[Dict[str, Any]]) -> List[PolicyRecord]:
        try:
            return [PolicyRecord.model_validate(row) for row in rows]
        except PydanticValidationError as e:
            LOGGER.error("Record store returned an invalid row", exc_info=True)
            raise RecordStoreError("Record store returned an invalid policy row", original_error=e)

    async def query(
        self, owner_id: str, filters: Optional[Dict[str, Any]] = None
    ) -> List[PolicyRecord]:
        params = self._owner_filter(owner_id, **(filters or {}))
        params["select"] = "*"
        params["order"] = "created_at.asc"
        try:
            response = await self.client.request("GET", self.table, params=params)
        except APIClientError as e:
            LOGGER.error(
                "Failed to query policy records",
                exc_info=True,
                extra={"owner_id": owner_id, "status_code": e.status_code},
            )
            raise RecordStoreError(f"Failed to load policies: {e.reason}", original_error=e)
        return self._to_records(response.json())

    async def get(self, owner_id: str, record_id: str) -> Optional[PolicyRecord]:
        records = await self.query(owner_id, {"id": record_id})
        return records[0] if records else None

    async def insert(self, owner_id: str, fields: Dict[str, Any]) -> PolicyRecord:
        payload = {**fields, "user_id": owner_id}
        try:
            response = await self.client.request(
                "POST",
                self.table,
                json=[payload],
                headers={"Prefer": "return=representation"},
            )
        except APIClientError as e:
            LOGGER.error(
                "Failed to insert policy record",
                exc_info=True,
                extra={"owner_id": owner_id, "status_code": e.status_code},
            )
            raise RecordStoreError(f"Failed to save policy: {e.reason}", original_error=e)

        records = self._to_records(response.json())
        if not records:
            raise RecordStoreError("Record store did not return the created policy")
        LOGGER.info("Policy record created", extra={"record_id": records[0].id})
        return records[0]

    async def update(
        self, owner_id: str, record_id: str, fields: Dict[str, Any]
    ) -> PolicyRecord:
        try:
            response = await self.client.request(
                "PATCH",
                self.table,
                params=self._owner_filter(owner_id, id=record_id),
                json=fields,
                headers={"Prefer": "return=representation"},
            )
        except APIClientError as e:
            LOGGER.error(
                "Failed to update policy record",
                exc_info=True,
                extra={"record_id": record_id, "status_code": e.status_code},
            )
            raise RecordStoreError(f"Failed to update policy: {e.reason}", original_error=e)

        records = self._to_records(response.json())
        if not records:
            raise RecordNotFoundError(f"Policy {record_id} not found")
        LOGGER.info("Policy record updated", extra={"record_id": record_id})
        return records[0]

    async def delete(self, owner_id: str, record_id: str) -> bool:
        try:
            response = await self.client.request(
                "DELETE",
                self.table,
                params=self._owner_filter(owner_id, id=record_id),
                headers={"Prefer": "return=representation"},
            )
        except APIClientError as e:
            raise RecordStoreError(f"Failed to delete policy: {e.reason}", original_error=e)
        return bool(response.json())
