import pytest

from lance_node.errors import AuthorizationError, CommitmentRequestError, StateError, ValidationError
from lance_node.voting_runtime.ballots import BallotSubmitter
from lance_node.voting_runtime.commitments import request_commitments
from lance_node.voting_runtime.lifecycle import BallotState
from lance_node.voting_runtime.models import Ballot

from conftest import ALICE, BOB, COUNTERPART, commit


@pytest.mark.asyncio
async def test_register_then_cast(service, fake_ledger):
    did = fake_ledger.add_dispute()
    d = await service.ballots.register(ALICE, did)
    assert d.is_registered(ALICE)

    ballot = await service.ballots.cast(ALICE, did, "approve")
    assert ballot.weight == 3
    assert len(ballot.commitments) == 3

    d = await service.ledger.get_dispute(did)
    assert d.voters == (ALICE,)
    assert service.coordinator.ballot_state(did, ALICE) is BallotState.CAST
    assert fake_ledger.sent == ["register_to_vote", "vote"]


@pytest.mark.asyncio
async def test_commitments_match_plaintexts(service, fake_ledger, keypair):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    ballot = await service.ballots.cast(ALICE, did, "reject")

    votes = service.decryptor.decrypt_ballot(ballot, keypair.private_key)
    # weight 3 contribution -> per-slot plaintext = tallies/3, seeds/3
    for i in range(3):
        assert ballot.commitments[i] == commit(votes.tallies[i] // 3, votes.seeds[i] // 3)


@pytest.mark.asyncio
async def test_registered_weight_is_used(service, fake_ledger):
    did = fake_ledger.add_dispute(weights={ALICE: 7})
    await service.ballots.register(ALICE, did)
    ballot = await service.ballots.cast(ALICE, did, 0)
    assert ballot.weight == 7


@pytest.mark.asyncio
async def test_cannot_vote_twice(service, fake_ledger):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    await service.ballots.cast(ALICE, did, "approve")
    with pytest.raises(StateError):
        await service.ballots.cast(ALICE, did, "reject")
    assert fake_ledger.sent.count("vote") == 1


@pytest.mark.asyncio
async def test_unregistered_voter(service, fake_ledger):
    did = fake_ledger.add_dispute()
    with pytest.raises(AuthorizationError):
        await service.ballots.cast(BOB, did, "approve")
    assert fake_ledger.sent == []


@pytest.mark.asyncio
async def test_parties_cannot_register(service, fake_ledger):
    did = fake_ledger.add_dispute()
    with pytest.raises(AuthorizationError):
        await service.ballots.register(COUNTERPART, did)


@pytest.mark.asyncio
async def test_closed_window(service, fake_ledger, clock):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    clock.now = 10_000
    with pytest.raises(StateError):
        await service.ballots.cast(ALICE, did, "approve")


@pytest.mark.asyncio
async def test_no_choice_or_bad_address(service, fake_ledger):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    with pytest.raises(ValidationError):
        await service.ballots.cast(ALICE, did, None)
    with pytest.raises(ValidationError):
        await service.ballots.cast("not-an-address", did, "approve")


@pytest.mark.asyncio
async def test_submit_checks_weight_and_address(service, fake_ledger):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    arrays = dict(encrypted_votes=("v",) * 3, encrypted_seeds=("s",) * 3, commitments=("c",) * 3)

    with pytest.raises(ValidationError):
        await service.ballots.submit(ALICE, did, Ballot(address=ALICE, weight=9, **arrays))
    with pytest.raises(ValidationError):
        await service.ballots.submit(ALICE, did, Ballot(address=BOB, weight=3, **arrays))
    assert "vote" not in fake_ledger.sent


@pytest.mark.asyncio
async def test_missing_voting_config(service, fake_ledger):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    fake_ledger.configs.clear()
    with pytest.raises(StateError):
        await service.ballots.cast(ALICE, did, "approve")


class BrokenOracle:
    def __init__(self, result):
        self.result = result

    async def build_commitments(self, project_id, votes, seeds):
        return self.result


@pytest.mark.asyncio
@pytest.mark.parametrize("result", [["aa", "bb"], ["aa", "", "cc"], None])
async def test_oracle_failures(result):
    with pytest.raises(CommitmentRequestError):
        await request_commitments(BrokenOracle(result), 1, (1, 0, 0), (1, 2, 3))


@pytest.mark.asyncio
async def test_oracle_failure_blocks_submission(service, fake_ledger):
    did = fake_ledger.add_dispute()
    await service.ballots.register(ALICE, did)
    submitter = BallotSubmitter(service.ledger, service.coordinator, BrokenOracle(["x"]))
    with pytest.raises(CommitmentRequestError):
        await submitter.cast(ALICE, did, "approve")
    assert "vote" not in fake_ledger.sent


@pytest.mark.asyncio
async def test_ledger_oracle_wraps_contract_errors(service, fake_ledger):
    # TallySeedError from the contract surfaces as a commitment failure
    with pytest.raises(CommitmentRequestError):
        await service.oracle.build_commitments(1, [1, 0, 0], [1, 2])
