"""
lance_node/voting_runtime/keys.py
---------------------------------

Ballot-encryption key pairs for anonymous voting.

Lifecycle:

    generate()  -> KeyPair            (maintainer, once per project/dispute)
    serialize() -> record dict        (the JSON key file)
    persist()   -> one-shot local write, never overwritten, mode 0600
    load()      -> KeyPair            (settlement, before tallying)

Key file format (camelCase, shared with the browser client):

    {
      "publicKey":  "<base64 SPKI DER>",
      "privateKey": "<base64 PKCS#8 DER>",
      "projectId":  1,
      "disputeId":  7,             # optional
      "createdAt":  "2026-01-01T00:00:00Z",
      "description": "Lance Protocol - Dispute #7 Anonymous Voting Keys"
    }

There is no rotation or recovery: a lost private key leaves every ballot for
that voting config permanently un-tallyable. A new key pair means a new
voting config.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .. import crypto_utils
from ..errors import CryptoError, InvalidKeyFile

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("publicKey", "privateKey", "projectId")


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class KeyPair:
    public_key: str
    private_key: str
    project_id: int
    dispute_id: Optional[int] = None
    created_at: str = ""

    def __repr__(self) -> str:
        # never leak the private half into logs/tracebacks
        return (
            f"KeyPair(project_id={self.project_id}, dispute_id={self.dispute_id}, "
            f"created_at={self.created_at!r})"
        )


class KeyManager:
    def generate(self, project_id: int, dispute_id: Optional[int] = None) -> KeyPair:
        public_key, private_key = crypto_utils.rsa_generate_keypair()
        kp = KeyPair(
            public_key=public_key,
            private_key=private_key,
            project_id=int(project_id),
            dispute_id=int(dispute_id) if dispute_id is not None else None,
            created_at=_utc_now_iso(),
        )
        log.info("generated voting key pair project=%s dispute=%s", kp.project_id, kp.dispute_id)
        return kp

    @staticmethod
    def description(kp: KeyPair) -> str:
        if kp.dispute_id is not None:
            return f"Lance Protocol - Dispute #{kp.dispute_id} Anonymous Voting Keys"
        return f"Lance Protocol - Project #{kp.project_id} Anonymous Voting Keys"

    @staticmethod
    def filename(record: Dict[str, Any]) -> str:
        if record.get("disputeId") is not None:
            return f"lance-dispute-{record['disputeId']}-keys.json"
        return f"lance-project-{record['projectId']}-keys.json"

    def serialize(self, kp: KeyPair) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "publicKey": kp.public_key,
            "privateKey": kp.private_key,
            "projectId": kp.project_id,
            "createdAt": kp.created_at,
            "description": self.description(kp),
        }
        if kp.dispute_id is not None:
            record["disputeId"] = kp.dispute_id
        return record

    def persist(self, record: Dict[str, Any], directory: Union[str, Path]) -> Path:
        """
        Write the key file exactly once. An existing file is never replaced.
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.filename(record)
        data = json.dumps(record, indent=2, ensure_ascii=False).encode("utf-8")

        try:
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError as e:
            raise CryptoError(f"key file already exists, refusing to overwrite: {path}") from e
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            path.unlink(missing_ok=True)
            raise CryptoError(f"failed writing key file: {e}") from e

        log.info("persisted voting key file %s", path.name)
        return path

    def load(self, raw: Union[bytes, str]) -> KeyPair:
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8-sig")
            except UnicodeDecodeError as e:
                raise InvalidKeyFile("key file is not UTF-8") from e
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise InvalidKeyFile("key file is not valid JSON") from e
        if not isinstance(data, dict):
            raise InvalidKeyFile("key file must be a JSON object")

        missing = [k for k in REQUIRED_FIELDS if data.get(k) in (None, "")]
        if missing:
            raise InvalidKeyFile(
                "invalid key file - missing " + ", ".join(missing),
                detail={"missing": missing},
            )

        try:
            project_id = int(data["projectId"])
            dispute_id = data.get("disputeId")
            dispute_id = int(dispute_id) if dispute_id not in (None, "") else None
        except (TypeError, ValueError) as e:
            raise InvalidKeyFile("projectId/disputeId must be integers") from e

        try:
            matched = crypto_utils.keys_match(str(data["publicKey"]), str(data["privateKey"]))
        except CryptoError as e:
            raise InvalidKeyFile(f"key file holds an unreadable key: {e.message}") from e
        if not matched:
            raise InvalidKeyFile("privateKey does not belong to publicKey")

        return KeyPair(
            public_key=str(data["publicKey"]),
            private_key=str(data["privateKey"]),
            project_id=project_id,
            dispute_id=dispute_id,
            created_at=str(data.get("createdAt") or ""),
        )

    async def load_file(self, path: Union[str, Path]) -> KeyPair:
        """
        Read + parse a key file without blocking the event loop.

        Cancelling the awaiting task abandons the import; nothing is cached.
        """
        path = Path(path)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise InvalidKeyFile(f"key file not found: {path}") from e
        except OSError as e:
            raise InvalidKeyFile(f"cannot read key file: {e}") from e
        return await asyncio.to_thread(self.load, raw)
