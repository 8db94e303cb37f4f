# herbtrace/storage/metadata_store.py
"""
Off-ledger metadata blobs (images, lab sheets, form dumps).

The ledger only keeps the returned reference in Event.externalRef and never
looks inside the document. References are content-addressed ("Qm" + digest),
so storing the same document twice yields the same reference.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pymongo.errors import PyMongoError

from herbtrace.errors import StorageError
from herbtrace.services.traceability.integrity import canonical_json, content_tag


def make_ref(document: Dict[str, Any]) -> str:
    return "Qm" + content_tag(document)[:44]


class MetadataStore(ABC):

    @abstractmethod
    def put(self, document: Dict[str, Any], name: str = "") -> str:
        ...

    @abstractmethod
    def get(self, ref: str) -> Optional[Dict[str, Any]]:
        ...


class InMemoryMetadataStore(MetadataStore):

    def __init__(self):
        self._blobs: Dict[str, Dict[str, Any]] = {}

    def put(self, document: Dict[str, Any], name: str = "") -> str:
        ref = make_ref(document)
        self._blobs[ref] = {
            "ref": ref,
            "name": name,
            "data": copy.deepcopy(document),
            "size": len(canonical_json(document)),
            "created_at": datetime.now(timezone.utc),
        }
        return ref

    def get(self, ref: str) -> Optional[Dict[str, Any]]:
        blob = self._blobs.get(ref)
        return copy.deepcopy(blob["data"]) if blob else None


class MongoMetadataStore(MetadataStore):

    def __init__(self, db, collection: str = "metadata_blobs"):
        self.col = db[collection]

    def put(self, document: Dict[str, Any], name: str = "") -> str:
        ref = make_ref(document)
        try:
            self.col.update_one(
                {"ref": ref},
                {
                    "$set": {"name": name, "data": document, "size": len(canonical_json(document))},
                    "$setOnInsert": {"created_at": datetime.now(timezone.utc)},
                },
                upsert=True,
            )
        except PyMongoError as e:
            raise StorageError(f"metadata put failed: {e}", cause=e, ref=ref) from e
        return ref

    def get(self, ref: str) -> Optional[Dict[str, Any]]:
        try:
            doc = self.col.find_one({"ref": ref}, {"_id": 0, "data": 1})
        except PyMongoError as e:
            raise StorageError(f"metadata get failed: {e}", cause=e, ref=ref) from e
        return doc.get("data") if doc else None
