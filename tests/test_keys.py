import json
import os
import stat

import pytest

from lance_node.errors import CryptoError, InvalidKeyFile
from lance_node.voting_runtime.keys import KeyManager


def test_serialize_dispute_scoped_record(keypair):
    km = KeyManager()
    kp = km.generate(1, dispute_id=7)
    rec = km.serialize(kp)
    assert rec["projectId"] == 1
    assert rec["disputeId"] == 7
    assert rec["description"] == "Lance Protocol - Dispute #7 Anonymous Voting Keys"
    assert rec["createdAt"].endswith("Z")
    assert km.filename(rec) == "lance-dispute-7-keys.json"


def test_serialize_project_scoped_record(keypair):
    km = KeyManager()
    rec = km.serialize(keypair)
    assert "disputeId" not in rec
    assert rec["description"] == "Lance Protocol - Project #1 Anonymous Voting Keys"
    assert km.filename(rec) == "lance-project-1-keys.json"


def test_repr_hides_private_key(keypair):
    assert keypair.private_key not in repr(keypair)


def test_persist_once_with_private_mode(tmp_path, keypair):
    km = KeyManager()
    rec = km.serialize(keypair)
    path = km.persist(rec, tmp_path)
    assert json.loads(path.read_text()) == rec
    if os.name == "posix":
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    with pytest.raises(CryptoError):
        km.persist(rec, tmp_path)
    # untouched
    assert json.loads(path.read_text()) == rec


def test_load_roundtrip(keypair):
    km = KeyManager()
    loaded = km.load(json.dumps(km.serialize(keypair)).encode())
    assert loaded.public_key == keypair.public_key
    assert loaded.private_key == keypair.private_key
    assert loaded.project_id == 1


@pytest.mark.parametrize("field", ["publicKey", "privateKey", "projectId"])
def test_load_missing_field(keypair, field):
    km = KeyManager()
    rec = km.serialize(keypair)
    rec.pop(field)
    with pytest.raises(InvalidKeyFile) as ei:
        km.load(json.dumps(rec))
    assert ei.value.detail["missing"] == [field]


def test_load_rejects_non_object():
    with pytest.raises(InvalidKeyFile):
        KeyManager().load("[1, 2, 3]")
    with pytest.raises(InvalidKeyFile):
        KeyManager().load("not json")


def test_load_rejects_mismatched_halves(keypair, other_keypair):
    km = KeyManager()
    rec = km.serialize(keypair)
    rec["privateKey"] = other_keypair.private_key
    with pytest.raises(InvalidKeyFile):
        km.load(json.dumps(rec))


@pytest.mark.asyncio
async def test_load_file(keyfile, keypair):
    kp = await KeyManager().load_file(keyfile)
    assert kp.public_key == keypair.public_key


@pytest.mark.asyncio
async def test_load_file_missing(tmp_path):
    with pytest.raises(InvalidKeyFile):
        await KeyManager().load_file(tmp_path / "nope.json")
