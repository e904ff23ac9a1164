"""
lance_node/service.py
---------------------

Wires the voting runtime together from Settings.

One VotingService per process (API app or CLI invocation). It owns the
httpx clients of the gateway and signer; call ``aclose()`` when done.

    svc = VotingService.from_settings(get_settings())
    kp, keyfile = await svc.setup_voting(maintainer)
    dispute = await svc.ledger.get_dispute(7)
    result  = await svc.tally(7, "keys/lance-dispute-7-keys.json")
    await svc.proofs.finalize(maintainer, 7, result.tallies, result.seeds)
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from . import crypto_utils
from .errors import AuthorizationError, CryptoError, InvalidKeyFile, StateError
from .ledger.client import LedgerClient
from .ledger.gateway import HttpLedgerGateway, LedgerGateway
from .ledger.signer import HttpSigner, Signer
from .settings import Settings
from .voting_runtime.ballot_codec import VoteEncoder
from .voting_runtime.ballots import BallotSubmitter
from .voting_runtime.commitments import CommitmentOracle, LedgerCommitmentOracle
from .voting_runtime.finalize import ProofSubmitter
from .voting_runtime.keys import KeyManager, KeyPair
from .voting_runtime.lifecycle import DisputeLifecycleCoordinator, LifecycleState
from .voting_runtime.models import Dispute, TallyResult, validate_address
from .voting_runtime.tally import TallyDecryptor

log = logging.getLogger(__name__)


class VotingService:
    def __init__(
        self,
        settings: Settings,
        ledger: LedgerClient,
        *,
        oracle: Optional[CommitmentOracle] = None,
        clock=None,
    ) -> None:
        v = settings.voting
        self.settings = settings
        self.ledger = ledger
        self.keys = KeyManager()
        self.coordinator = DisputeLifecycleCoordinator(
            v.maintainer_address,
            min_votes=v.min_votes,
            clock=clock,
        )
        self.oracle = oracle or LedgerCommitmentOracle(ledger)
        self.ballots = BallotSubmitter(
            ledger,
            self.coordinator,
            self.oracle,
            encoder=VoteEncoder(seed_bits=v.seed_bits),
            project_id=v.project_id,
            default_weight=v.default_weight,
            max_weight=v.max_weight,
        )
        self.decryptor = TallyDecryptor(strict=v.strict_decrypt, max_workers=v.max_workers)
        self.proofs = ProofSubmitter(ledger, self.coordinator, project_id=v.project_id)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        gateway: Optional[LedgerGateway] = None,
        signer: Optional[Signer] = None,
        **kwargs: Any,
    ) -> "VotingService":
        if gateway is None:
            gateway = HttpLedgerGateway(
                settings.ledger.rpc_url,
                settings.ledger.contract_id,
                network_passphrase=settings.ledger.network_passphrase,
                timeout=settings.ledger.timeout_sec,
            )
        if signer is None and settings.signer.url:
            signer = HttpSigner(settings.signer.url, timeout=settings.signer.timeout_sec)
        ledger = LedgerClient(
            gateway,
            signer,
            network_passphrase=settings.ledger.network_passphrase,
            max_attempts=settings.confirm.max_attempts,
            delay_sec=settings.confirm.delay_sec,
        )
        return cls(settings, ledger, **kwargs)

    async def aclose(self) -> None:
        for part in (self.ledger.gateway, self.ledger.signer):
            close = getattr(part, "aclose", None)
            if close is not None:
                await close()

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    def describe(self, dispute: Dispute) -> Dict[str, Any]:
        state = self.coordinator.observe(dispute)
        return {
            "dispute_id": dispute.dispute_id,
            "project_id": dispute.project_id,
            "creator": dispute.creator,
            "counterpart": dispute.counterpart,
            "proof": dispute.proof,
            "voting_ends_at": dispute.voting_ends_at,
            "status": dispute.status.value,
            "lifecycle": state.value,
            "winner": dispute.winner,
            "vote_counts": list(dispute.vote_counts),
            "ballot_count": len(dispute.ballots),
            "voters": list(dispute.voters),
            "able_to_vote": list(dispute.able_to_vote),
        }

    async def list_disputes(self) -> List[Dict[str, Any]]:
        return [self.describe(d) async for d in self.ledger.iter_disputes()]

    async def get_dispute(self, dispute_id: int) -> Dict[str, Any]:
        return self.describe(await self.ledger.get_dispute(dispute_id))

    # ------------------------------------------------------------------
    # setup
    # ------------------------------------------------------------------

    async def setup_voting(
        self,
        maintainer: str,
        project_id: Optional[int] = None,
        dispute_id: Optional[int] = None,
        *,
        out_dir: Optional[Union[str, Path]] = None,
    ) -> Tuple[KeyPair, Path]:
        """
        Generate a ballot key pair, publish its public half as the project's
        anonymous voting config and write the key file.

        The key file is written only after the ledger accepted the publish,
        so a failed setup leaves nothing on disk.
        """
        maintainer = validate_address(maintainer, field_name="maintainer")
        if not self.coordinator.is_maintainer(maintainer):
            raise AuthorizationError("only the configured maintainer may set up anonymous voting")
        project_id = self.settings.voting.project_id if project_id is None else int(project_id)
        directory = Path(out_dir) if out_dir is not None else self.settings.KEYS_DIR

        kp = await asyncio.to_thread(self.keys.generate, project_id, dispute_id)
        record = self.keys.serialize(kp)
        target = directory / self.keys.filename(record)
        if target.exists():
            raise CryptoError(f"key file already exists, refusing to overwrite: {target}")

        await self.ledger.anonymous_voting_setup(maintainer, project_id, kp.public_key)
        log.info("published anonymous voting key for project %s", project_id)
        path = await asyncio.to_thread(self.keys.persist, record, directory)
        return kp, path

    # ------------------------------------------------------------------
    # settlement
    # ------------------------------------------------------------------

    async def tally(self, dispute_id: int, keyfile: Union[str, Path]) -> TallyResult:
        """
        Load the key file, decrypt every ballot of ``dispute_id`` and record
        the resulting tally with the coordinator.
        """
        kp = await self.keys.load_file(keyfile)
        log.info("loaded tally key for project %s dispute %s", kp.project_id, dispute_id)
        dispute = await self.ledger.get_dispute(dispute_id)

        state = self.coordinator.observe(dispute)
        if state is LifecycleState.FINALIZED:
            raise StateError(f"dispute {dispute_id} is already finalized")
        if state is LifecycleState.OPEN:
            raise StateError(f"voting for dispute {dispute_id} is still open")

        config = await self.ledger.get_anonymous_voting_config(self.settings.voting.project_id)
        if crypto_utils.b64d(config.public_key) != crypto_utils.b64d(kp.public_key):
            raise InvalidKeyFile(
                f"key file does not match the voting config of project {config.project_id}",
                detail={"project_id": config.project_id},
            )

        result = await self.decryptor.aggregate_async(dispute.ballots, kp.private_key)
        self.coordinator.record_tally(dispute_id, result)
        return result
