"""
Issue Repository
================
Per-entity helpers for citizen issue reports, routed through the
resilience layer. Reads are cached per key; writes are validated.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument

from .driver import DatabaseDriver
from .operations import DatabaseOperations

logger = structlog.get_logger(__name__)

ISSUES_COLLECTION = "issues"
DEFAULT_STATUS = "Pending"
RESOLVED_STATUS = "Resolved"


def _object_id(issue_id: str) -> Any:
    try:
        return ObjectId(issue_id)
    except (InvalidId, TypeError):
        return issue_id


def serialize_issue(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Render ``_id`` as a string so documents are JSON friendly."""
    if doc is None:
        return None
    doc = dict(doc)
    if isinstance(doc.get("_id"), ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


class IssueRepository:
    """
    Issue lookups and updates.

    Example:
        repo = IssueRepository(context.operations, context.driver)
        issue = await repo.find_issue_by_id("64f0c2...")
    """

    def __init__(self, operations: DatabaseOperations, driver: DatabaseDriver):
        self.operations = operations
        self.driver = driver

    @property
    def collection(self) -> Any:
        return self.driver.collection(ISSUES_COLLECTION)

    async def find_issue_by_id(
        self,
        issue_id: str,
        fallback_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        async def find_issue_by_id() -> Optional[Dict[str, Any]]:
            doc = await self.collection.find_one({"_id": _object_id(issue_id)})
            return serialize_issue(doc)

        return await self.operations.read_with_cache(
            find_issue_by_id, f"issue_{issue_id}", fallback_data
        )

    async def find_issues_by_status(
        self,
        status: str,
        fallback_data: Optional[List[Dict[str, Any]]] = None,
    ) -> List[Dict[str, Any]]:
        async def find_issues_by_status() -> List[Dict[str, Any]]:
            cursor = self.collection.find({"status": status}).sort("createdAt", DESCENDING)
            return [serialize_issue(doc) for doc in await cursor.to_list(length=None)]

        return await self.operations.read_with_cache(
            find_issues_by_status,
            f"issues_status_{status}",
            [] if fallback_data is None else fallback_data,
        )

    async def create_issue(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        document = {"status": DEFAULT_STATUS, **data, "createdAt": now, "updatedAt": now}

        async def create_issue() -> Dict[str, Any]:
            result = await self.collection.insert_one(document)
            return serialize_issue({**document, "_id": result.inserted_id})

        issue = await self.operations.write_with_retry(
            create_issue, lambda result: bool(result and result.get("_id"))
        )
        logger.info("issue_created", issue_id=issue["_id"])
        return issue

    async def update_issue_status(self, issue_id: str, status: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        update: Dict[str, Any] = {"$set": {"status": status, "updatedAt": now}}
        if status == RESOLVED_STATUS:
            update["$set"]["resolvedAt"] = now
        else:
            update["$unset"] = {"resolvedAt": ""}

        async def update_issue_status() -> Optional[Dict[str, Any]]:
            doc = await self.collection.find_one_and_update(
                {"_id": _object_id(issue_id)},
                update,
                return_document=ReturnDocument.AFTER,
            )
            return serialize_issue(doc)

        issue = await self.operations.write_with_retry(
            update_issue_status,
            lambda result: bool(result and result.get("status") == status),
        )
        # The cached copy is stale now
        self.operations.cache.delete(f"issue_{issue_id}")
        logger.info("issue_status_updated", issue_id=issue_id, status=status)
        return issue
