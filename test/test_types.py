# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# test/test_types.py

"""Tests for w3 type definitions."""

import json
from datetime import datetime, timezone

from w3_client.types import AgentMeta, Space, UploadEntry, UploadResult


class TestAgentMeta:
    def test_defaults(self):
        assert AgentMeta().to_dict() == {"name": "agent", "type": "device"}

    def test_from_dict(self):
        meta = AgentMeta.from_dict({"name": "ci", "type": "service"})
        assert meta == AgentMeta(name="ci", type="service")

    def test_from_partial_dict(self):
        assert AgentMeta.from_dict({"name": "ci"}).type == "device"


class TestSpace:
    def test_to_dict(self):
        space = Space(did="did:key:z6Mk1", name="photos")
        assert space.to_dict() == {"did": "did:key:z6Mk1", "name": "photos", "registered": False}

    def test_from_dict(self):
        space = Space.from_dict("did:key:z6Mk1", {"name": "photos", "registered": True})
        assert space.did == "did:key:z6Mk1"
        assert space.registered is True

    def test_from_empty_dict(self):
        space = Space.from_dict("did:key:z6Mk1", {})
        assert space.name is None
        assert space.registered is False


class TestUploadResult:
    def test_to_json(self):
        result = UploadResult(
            root_cid="bafyroot",
            car_cid="bagcar",
            size=123,
            path="/tmp/file.txt",
            uploaded_at=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
            shards=["bagcar"],
        )
        parsed = json.loads(result.to_json())
        assert parsed["root_cid"] == "bafyroot"
        assert parsed["uploaded_at"] == "2026-10-19T12:00:00+00:00"
        assert parsed["shards"] == ["bagcar"]

    def test_from_dict_z_suffix(self):
        result = UploadResult.from_dict({
            "root_cid": "bafyroot",
            "car_cid": "bagcar",
            "uploaded_at": "2026-10-19T12:00:00Z",
        })
        assert result.uploaded_at == datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        assert result.shards == ["bagcar"]
        assert result.size == 0
        assert result.path is None

    def test_round_trip(self):
        original = UploadResult(
            root_cid="bafyroot",
            car_cid="bagcar",
            size=5,
            path=None,
            uploaded_at=datetime.now(timezone.utc),
            shards=["bagcar", "bagcar2"],
        )
        assert UploadResult.from_dict(original.to_dict()) == original


class TestUploadEntry:
    def test_from_service_links(self):
        entry = UploadEntry.from_service({
            "root": {"/": "bafyroot"},
            "shards": [{"/": "bagcar1"}, {"/": "bagcar2"}],
            "insertedAt": "2026-10-19T12:00:00Z",
            "updatedAt": "2026-10-19T13:00:00Z",
        })
        assert entry.root == "bafyroot"
        assert entry.shards == ["bagcar1", "bagcar2"]
        assert entry.updated_at == "2026-10-19T13:00:00Z"

    def test_from_service_legacy_keys(self):
        entry = UploadEntry.from_service({"dataCID": "bafyroot", "carCIDs": ["bagcar"]})
        assert entry.root == "bafyroot"
        assert entry.shards == ["bagcar"]
        assert entry.inserted_at is None

    def test_to_dict(self):
        entry = UploadEntry(root="bafyroot", shards=["bagcar"])
        assert entry.to_dict() == {
            "root": "bafyroot",
            "shards": ["bagcar"],
            "inserted_at": None,
            "updated_at": None,
        }
