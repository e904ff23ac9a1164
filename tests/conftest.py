import copy
import itertools
import json

import pytest

from lance_node.errors import AuthorizationError
from lance_node.ledger.gateway import map_contract_error
from lance_node.service import VotingService
from lance_node.settings import ConfirmConf, KeysConf, Settings, VotingConf
from lance_node.voting_runtime.keys import KeyManager

# Linear commitment over a Mersenne prime field: C = v*G + s*H (mod P).
# Additively homomorphic like the contract's curve points, so the aggregate
# check in execute/proof behaves the same way.
P = (1 << 521) - 1
G = 0x1D1C3A7F5B2E9D4C8A6F0E3B7D9C1A5E
H = 0x6B4F8E2D0C9A7B5E3F1D8C6A4B2E0F9D


def addr(tag: str) -> str:
    return "G" + (tag.upper() * 55)[:55]


CREATOR = addr("creator")
COUNTERPART = addr("counter")
MAINTAINER = addr("maint")
ALICE = addr("alice")
BOB = addr("bob")
CAROL = addr("carol")
DAVE = addr("dave")

VOTING_ENDS_AT = 1_000


class Clock:
    def __init__(self, now: int = 100) -> None:
        self.now = now

    def __call__(self) -> float:
        return float(self.now)


def commit(vote: int, seed: int) -> str:
    return format((vote * G + seed * H) % P, "x")


def _plain(arg):
    """Typed contract argument -> plain python value."""
    if not isinstance(arg, dict) or "type" not in arg:
        return arg
    t, v = arg["type"], arg["value"]
    if t == "vec":
        return [_plain(x) for x in v]
    if t == "map":
        return {k: _plain(x) for k, x in v.items()}
    if t == "enum":
        return [_plain(x) for x in v]
    if t == "option":
        return None if v is None else _plain(v)
    if t == "u128":
        return int(v)
    return v


class ContractFailure(Exception):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name


class FakeLedger:
    """In-memory stand-in for the ledger node + lance-protocol contract."""

    def __init__(self, clock: Clock, public_key: str, *, maintainer: str = MAINTAINER) -> None:
        self.clock = clock
        self.maintainer = maintainer
        self.configs = {1: public_key}
        self.disputes = {}
        self.txs = {}
        self.sent = []
        self.not_found_polls = 0
        self.fail_next_send = None
        self._hashes = itertools.count(1)

    # -- fixtures ---------------------------------------------------------

    def add_dispute(self, *, ends_at: int = VOTING_ENDS_AT, weights=None) -> int:
        dispute_id = len(self.disputes) + 1
        self.disputes[dispute_id] = {
            "dispute_id": dispute_id,
            "project_id": 1,
            "creator": CREATOR,
            "counterpart": COUNTERPART,
            "proof": "delivered late",
            "voting_ends_at": ends_at,
            "status": ["Open"],
            "winner": None,
            "vote_counts": [0, 0, 0],
            "ballots": [],
            "able_to_vote": [],
            "voter_weights": dict(weights or {}),
            "initial_timestamp": self.clock.now,
        }
        return dispute_id

    def _dispute(self, state, dispute_id):
        d = state.get(dispute_id)
        if d is None:
            raise ContractFailure("DisputeNotFound")
        return d

    # -- contract ---------------------------------------------------------

    def _aggregate_ok(self, d, tallies, seeds) -> bool:
        if len(tallies) != 3 or len(seeds) != 3:
            return False
        for i in range(3):
            acc = 0
            for b in d["ballots"]:
                body = b["AnonymousVote"]
                acc += body["weight"] * int(body["commitments"][i], 16)
            if acc % P != (tallies[i] * G + seeds[i] * H) % P:
                return False
        return True

    def _read(self, function, a):
        if function == "get_dispute":
            return copy.deepcopy(self._dispute(self.disputes, a[0]))
        if function == "get_dispute_count":
            return len(self.disputes)
        if function == "get_anonymous_voting_config":
            if a[0] not in self.configs:
                raise ContractFailure("NoAnonymousVotingConfig")
            return {"public_key": self.configs[a[0]]}
        if function == "build_commitments_from_votes":
            votes, seeds = a[1], a[2]
            if len(votes) != len(seeds):
                raise ContractFailure("TallySeedError")
            return [commit(v, s) for v, s in zip(votes, seeds)]
        if function == "proof":
            return self._aggregate_ok(self._dispute(self.disputes, a[0]), a[1], a[2])
        raise ContractFailure(f"unknown function {function}")

    def _apply(self, state, function, a, source, *, dry_run=False):
        if function == "anonymous_voting_setup":
            maintainer, project_id, public_key = a
            if maintainer != self.maintainer:
                raise ContractFailure("NotAuthorized")
            if not dry_run:
                self.configs[project_id] = public_key
            return None
        if function == "register_to_vote":
            voter, d = a[0], self._dispute(state, a[1])
            if d["status"] != ["Open"]:
                raise ContractFailure("InvalidDisputeStatus")
            if voter in (d["creator"], d["counterpart"]):
                raise ContractFailure("NotAuthorized")
            if voter in d["able_to_vote"]:
                raise ContractFailure("JudgeAlreadyVoted")
            d["able_to_vote"].append(voter)
            return None
        if function == "vote":
            voter, d = a[0], self._dispute(state, a[1])
            body = a[2][1]
            if self.clock.now >= d["voting_ends_at"]:
                raise ContractFailure("ProposalVotingTime")
            if any(b["AnonymousVote"]["address"] == voter for b in d["ballots"]):
                raise ContractFailure("AlreadyVoted")
            if len(body["commitments"]) != 3:
                raise ContractFailure("BadCommitment")
            if body["address"] != voter:
                raise ContractFailure("WrongVoter")
            d["ballots"].append({"AnonymousVote": body})
            return None
        if function == "execute":
            maintainer, _project_id, dispute_id, tallies, seeds = a
            d = self._dispute(state, dispute_id)
            if maintainer != self.maintainer:
                raise ContractFailure("NotAuthorized")
            if d["status"] != ["Open"]:
                raise ContractFailure("DisputeAlreadyResolved")
            if self.clock.now < d["voting_ends_at"]:
                raise ContractFailure("ProposalVotingTime")
            if tallies is None or not self._aggregate_ok(d, tallies, seeds):
                raise ContractFailure("InvalidReveal")
            if tallies[0] > tallies[1]:
                d["status"], d["winner"] = ["Creator"], d["creator"]
            elif tallies[1] > tallies[0]:
                d["status"], d["winner"] = ["Counterpart"], d["counterpart"]
            else:
                d["status"] = ["Abstain"]
            d["vote_counts"] = list(tallies)
            d["finish_timestamp"] = self.clock.now
            return d["status"]
        raise ContractFailure(f"unknown function {function}")

    @staticmethod
    def _error(name: str, *, simulation: bool):
        return map_contract_error({"message": f"contract error {name}", "data": {"contractError": name}}, simulation=simulation)

    # -- gateway protocol -------------------------------------------------

    async def simulate(self, function, args):
        try:
            return self._read(function, [_plain(x) for x in args])
        except ContractFailure as e:
            raise self._error(e.name, simulation=True) from None

    async def prepare(self, function, args, source):
        plain = [_plain(x) for x in args]
        try:
            # dry run on a copy, like transaction preparation does
            self._apply(copy.deepcopy(self.disputes), function, plain, source, dry_run=True)
        except ContractFailure as e:
            raise self._error(e.name, simulation=True) from None
        return json.dumps({"function": function, "args": plain, "source": source})

    async def send(self, signed_tx):
        signed = json.loads(signed_tx)
        tx = json.loads(signed["tx"])
        if signed["signer"] != tx["source"]:
            return {"status": "ERROR", "errorResult": "txBadAuth"}
        if self.fail_next_send:
            status, self.fail_next_send = self.fail_next_send, None
            return {"status": status}

        tx_hash = f"tx{next(self._hashes)}"
        self.sent.append(tx["function"])
        try:
            ret = self._apply(self.disputes, tx["function"], tx["args"], tx["source"])
            self.txs[tx_hash] = {"status": "SUCCESS", "returnValue": ret, "polls": self.not_found_polls}
        except ContractFailure as e:
            self.txs[tx_hash] = {"status": "FAILED", "error": e.name, "polls": self.not_found_polls}
        return {"status": "PENDING", "hash": tx_hash}

    async def get_transaction(self, tx_hash):
        rec = self.txs.get(tx_hash)
        if rec is None:
            return {"status": "NOT_FOUND"}
        if rec["polls"] > 0:
            rec["polls"] -= 1
            return {"status": "NOT_FOUND"}
        return {k: v for k, v in rec.items() if k != "polls"}


class FakeSigner:
    def __init__(self) -> None:
        self.refuse = set()
        self.signed = []

    async def sign(self, unsigned_tx, *, address, network_passphrase):
        if address in self.refuse:
            raise AuthorizationError(f"signer refused to sign for {address}")
        self.signed.append(address)
        return json.dumps({"tx": unsigned_tx, "signer": address})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def keypair():
    return KeyManager().generate(1)


@pytest.fixture(scope="session")
def other_keypair():
    return KeyManager().generate(1)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def fake_ledger(clock, keypair):
    return FakeLedger(clock, keypair.public_key)


@pytest.fixture
def fake_signer():
    return FakeSigner()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        voting=VotingConf(maintainer_address=MAINTAINER, min_votes=1),
        confirm=ConfirmConf(max_attempts=3, delay_sec=0.0),
        keys=KeysConf(keys_dir=str(tmp_path / "keys")),
    ).finalize()


@pytest.fixture
def service(settings, fake_ledger, fake_signer, clock):
    return VotingService.from_settings(settings, gateway=fake_ledger, signer=fake_signer, clock=clock)


@pytest.fixture
def keyfile(tmp_path, keypair):
    km = KeyManager()
    return km.persist(km.serialize(keypair), tmp_path / "keys")


async def cast_votes(service, dispute_id, votes):
    """Register + cast for each (address, choice) pair."""
    for voter, choice in votes:
        await service.ballots.register(voter, dispute_id)
        await service.ballots.cast(voter, dispute_id, choice)
