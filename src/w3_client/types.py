# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# src/w3_client/types.py

"""
w3 Type Definitions

Dataclasses for library return types with serialization support.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import json


@dataclass
class AgentMeta:
    """Who a delegation was made for."""
    name: str = "agent"
    type: str = "device"            # "device", "app", "service"

    def to_dict(self) -> dict:
        return {"name": self.name, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict) -> "AgentMeta":
        return cls(name=data.get("name", "agent"), type=data.get("type", "device"))


@dataclass
class Space:
    """A namespace for uploads, identified by its own did:key."""
    did: str
    name: Optional[str] = None
    registered: bool = False

    def to_dict(self) -> dict:
        return {"did": self.did, "name": self.name, "registered": self.registered}

    @classmethod
    def from_dict(cls, did: str, data: dict) -> "Space":
        return cls(
            did=did,
            name=data.get("name"),
            registered=data.get("registered", False),
        )


@dataclass
class UploadResult:
    """Result of uploading a file or directory."""
    root_cid: str                           # CID of the uploaded DAG root
    car_cid: str                            # CID of the CAR shard that was stored
    size: int                               # CAR size in bytes
    path: Optional[str]                     # Original filesystem path if any
    uploaded_at: datetime
    shards: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "root_cid": self.root_cid,
            "car_cid": self.car_cid,
            "size": self.size,
            "path": self.path,
            "uploaded_at": self.uploaded_at.isoformat(),
            "shards": self.shards,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_dict(cls, data: dict) -> "UploadResult":
        uploaded_at = data["uploaded_at"]
        if isinstance(uploaded_at, str):
            # Parse ISO format, handle both with and without timezone
            if uploaded_at.endswith("Z"):
                uploaded_at = uploaded_at[:-1] + "+00:00"
            uploaded_at = datetime.fromisoformat(uploaded_at)

        return cls(
            root_cid=data["root_cid"],
            car_cid=data["car_cid"],
            size=data.get("size", 0),
            path=data.get("path"),
            uploaded_at=uploaded_at,
            shards=data.get("shards", [data["car_cid"]]),
        )


@dataclass
class UploadEntry:
    """One upload as listed by upload/list."""
    root: str
    shards: list[str] = field(default_factory=list)
    inserted_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "root": self.root,
            "shards": self.shards,
            "inserted_at": self.inserted_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_service(cls, item: dict) -> "UploadEntry":
        """Create from an upload/list result item."""
        return cls(
            root=_link_str(item.get("root", item.get("dataCID", ""))),
            shards=[_link_str(s) for s in item.get("shards", item.get("carCIDs", []))],
            inserted_at=item.get("insertedAt"),
            updated_at=item.get("updatedAt"),
        )


def _link_str(value) -> str:
    """Render a link the service returned, whether a CID, {"/": cid} or str."""
    if isinstance(value, dict) and "/" in value:
        return str(value["/"])
    return str(value)
