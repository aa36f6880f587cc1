# Author: PB and Claude
# Date: 2026-10-19
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ---
# test/test_settings.py

"""Tests for settings import/export and the JSON settings store."""

import base64
import json
import stat

import pytest

from w3_client import principal
from w3_client import ucan
from w3_client.delegation import Delegation, DelegationError, delegate, generate_delegation
from w3_client.settings import SettingsStore, export_settings, import_settings
from w3_client.ucan import UCANError


AUDIENCE_DID = "did:key:z6MkrZ1r5XBFZjBU34qyD8fueMbMRkKw17BZaq2ivKFjnz2z"


@pytest.fixture
def agent():
    return principal.generate()


@pytest.fixture
def account():
    return principal.generate()


@pytest.fixture
def exported(agent, account):
    proof = generate_delegation(issuer=account, to=agent.did())
    return {
        "agent_secret": principal.format(agent),
        "account_secret": principal.format(account),
        "email": "someone@example.org",
        "delegations": {account.did(): {"ucan": proof.data.jwt, "alias": "laptop"}},
    }


class TestImportSettings:
    def test_secrets_are_formatted(self, exported, agent):
        settings = import_settings(json.dumps(exported))
        assert settings["agent_secret"] == principal.format(agent)

    def test_legacy_base64_secret_is_normalized(self, agent):
        legacy = base64.b64encode(agent.encode()).decode("ascii")
        settings = import_settings(json.dumps({"secret": legacy}))
        assert settings["secret"] == principal.format(agent)

    def test_undecodable_secret_is_dropped(self):
        settings = import_settings(json.dumps({"agent_secret": "garbage!", "email": "a@b.co"}))
        assert "agent_secret" not in settings
        assert settings["email"] == "a@b.co"

    def test_delegations_become_objects(self, exported, account):
        settings = import_settings(json.dumps(exported))
        entry = settings["delegations"][account.did()]
        assert isinstance(entry["ucan"], Delegation)
        assert entry["ucan"].issuer == account.did()
        assert entry["alias"] == "laptop"

    def test_other_keys_copied(self, exported):
        assert import_settings(json.dumps(exported))["email"] == "someone@example.org"

    def test_null_is_empty(self):
        assert import_settings("null") == {}

    def test_invalid_delegation_raises(self):
        with pytest.raises(UCANError):
            import_settings(json.dumps({"delegations": {"x": {"ucan": "nope"}}}))

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            import_settings("{not json")

    @pytest.mark.parametrize("text", ["[1]", "42", '"secret"'])
    def test_non_object_raises(self, text):
        with pytest.raises(ValueError, match="must be a JSON object"):
            import_settings(text)


class TestExportSettings:
    def test_round_trip(self, exported):
        assert export_settings(import_settings(json.dumps(exported))) == exported

    def test_principal_object_secret(self, agent):
        output = export_settings({"secret": agent})
        assert output == {"secret": principal.format(agent)}

    def test_only_present_keys(self):
        assert export_settings({}) == {}

    def test_delegation_exported_as_jwt(self, agent):
        token = ucan.issue(agent, AUDIENCE_DID, [{"with": agent.did(), "can": "*"}])
        settings = {
            "created_delegations": {
                "k": {"ucan": Delegation(ucan.write(token)), "alias": "phone"},
            },
        }
        output = export_settings(settings)
        assert output["created_delegations"]["k"] == {"ucan": token.jwt, "alias": "phone"}


class TestSettingsStore:
    def test_load_missing_is_empty(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        assert store.load() == {}

    def test_save_then_load(self, tmp_path, exported):
        store = SettingsStore(tmp_path / "nested" / "settings.json")
        store.save(import_settings(json.dumps(exported)))

        assert store.path.exists()
        assert json.loads(store.path.read_text()) == exported
        loaded = store.load()
        assert loaded["email"] == "someone@example.org"

    def test_file_is_private(self, tmp_path, agent):
        store = SettingsStore(tmp_path / "settings.json")
        store.save({"agent_secret": principal.format(agent)})
        mode = stat.S_IMODE(store.path.stat().st_mode)
        assert mode == 0o600

    def test_proof_chain_survives_reload(self, tmp_path, agent):
        space = principal.generate()
        space_proof = delegate(space, agent, [{"with": space.did(), "can": "*"}])
        chained = delegate(
            agent, AUDIENCE_DID, [{"with": space.did(), "can": "store/add"}], proofs=[space_proof]
        )
        store = SettingsStore(tmp_path / "settings.json")
        store.save({"created_delegations": {str(chained.cid): {"ucan": chained, "alias": None}}})

        loaded = store.load()["created_delegations"][str(chained.cid)]["ucan"]
        assert loaded == chained
        assert loaded.proofs == [space_proof]

    def test_archive_must_match_ucan(self, agent):
        first = delegate(agent, AUDIENCE_DID, [{"with": agent.did(), "can": "*"}])
        second = delegate(agent, AUDIENCE_DID, [{"with": agent.did(), "can": "store/*"}])
        entry = {
            "ucan": first.data.jwt,
            "archive": base64.b64encode(second.archive()).decode("ascii"),
        }
        with pytest.raises(DelegationError, match="does not match"):
            import_settings(json.dumps({"delegations": {"k": entry}}))

    def test_failed_save_leaves_no_temp_file(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        with pytest.raises(Exception):
            store.save({"agent_secret": "not a key"})
        assert list(tmp_path.iterdir()) == []
