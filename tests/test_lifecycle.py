import pytest

from lance_node.errors import AuthorizationError, StateError
from lance_node.voting_runtime.lifecycle import BallotState, DisputeLifecycleCoordinator, LifecycleState
from lance_node.voting_runtime.models import Ballot, Dispute, DisputeStatus, TallyResult

from conftest import ALICE, BOB, COUNTERPART, CREATOR, MAINTAINER, Clock


def dispute(status=DisputeStatus.OPEN, voters=(), registered=(), ends_at=1_000):
    ballots = tuple(
        Ballot(address=a, weight=3, encrypted_votes=("v",) * 3, encrypted_seeds=("s",) * 3, commitments=("c",) * 3)
        for a in voters
    )
    return Dispute(
        dispute_id=1,
        project_id=1,
        creator=CREATOR,
        counterpart=COUNTERPART,
        proof="proof",
        voting_ends_at=ends_at,
        status=status,
        ballots=ballots,
        able_to_vote=tuple(registered),
    )


@pytest.fixture
def coord(clock):
    return DisputeLifecycleCoordinator(MAINTAINER, min_votes=1, clock=clock)


def test_state_projection(coord, clock):
    assert coord.state_of(dispute()) is LifecycleState.OPEN
    clock.now = 1_000
    assert coord.state_of(dispute()) is LifecycleState.AWAITING_EXECUTION
    assert coord.state_of(dispute(DisputeStatus.ABSTAIN)) is LifecycleState.FINALIZED


def test_finalized_is_terminal(coord):
    coord.state_of(dispute(DisputeStatus.CREATOR))
    with pytest.raises(StateError):
        coord.state_of(dispute(DisputeStatus.OPEN))


def test_register_guards(coord):
    coord.require_can_register(dispute(), ALICE)
    with pytest.raises(AuthorizationError):
        coord.require_can_register(dispute(), CREATOR)
    with pytest.raises(StateError):
        coord.require_can_register(dispute(registered=[ALICE]), ALICE)


def test_vote_guards(coord, clock):
    with pytest.raises(AuthorizationError):
        coord.require_can_vote(dispute(), ALICE)
    with pytest.raises(StateError):
        coord.require_can_vote(dispute(voters=[ALICE], registered=[ALICE]), ALICE)
    clock.now = 5_000
    with pytest.raises(StateError):
        coord.require_can_vote(dispute(registered=[ALICE]), ALICE)


def test_finalize_guards(coord, clock):
    d = dispute(voters=[ALICE], registered=[ALICE])
    with pytest.raises(StateError):
        coord.require_can_finalize(d, MAINTAINER)  # still open
    clock.now = 2_000
    with pytest.raises(AuthorizationError):
        coord.require_can_finalize(d, ALICE)
    coord.require_can_finalize(d, MAINTAINER)
    with pytest.raises(StateError):
        coord.require_can_finalize(dispute(), MAINTAINER)  # no ballots


def test_min_votes_and_maintainer_are_configurable():
    c = DisputeLifecycleCoordinator("", min_votes=0, clock=Clock(5_000))
    assert not c.is_maintainer("")
    with pytest.raises(AuthorizationError):
        c.require_can_finalize(dispute(), MAINTAINER)


def test_ballot_states_and_stale_tally(coord):
    coord.record_cast(1, ALICE)
    assert coord.ballot_state(1, ALICE) is BallotState.CAST

    coord.observe(dispute(voters=[ALICE]))
    assert coord.ballot_state(1, ALICE) is BallotState.STORED

    coord.record_tally(1, TallyResult(tallies=(3, 0, 0), seeds=(1, 2, 3), included=(ALICE,)))
    assert coord.ballot_state(1, ALICE) is BallotState.INCLUDED_IN_TALLY
    coord.record_cast(1, ALICE)
    assert coord.ballot_state(1, ALICE) is BallotState.INCLUDED_IN_TALLY

    coord.require_tally_current(dispute(voters=[ALICE]))
    with pytest.raises(StateError) as ei:
        coord.require_tally_current(dispute(voters=[ALICE, BOB]))
    assert ei.value.detail["new_ballots"] == [BOB]
