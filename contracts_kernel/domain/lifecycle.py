"""
Contract lifecycle (``contracts_kernel.domain.lifecycle``).

Responsibility
--------------
Declares the contract status state machine as a ``Workflow`` and provides
the pure functions the repository uses to validate status changes, derive
the signing status from signature records, and build party-index sort keys.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* ``status`` moves only along edges of ``CONTRACT_LIFECYCLE``.
* Re-setting the current status is a no-op, never an error.
* ``fully-signed`` holds iff every signature record is ``signed``;
  ``partially-signed`` iff some but not all are.
* Terminal states (completed, terminated, cancelled) have no exits.
* Guarded edges fire only when their guard holds for the signature records
  the contract will carry after the change.

Failure modes
-------------
* ``InvalidStatusTransitionError`` for any change that is not an edge
  (or, inside the signing chain, a forward walk along edges).
* ``TransitionGuardError`` when an edge exists but its guard fails.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, Sequence

from contracts_kernel.domain.records import ContractStatus, Signature
from contracts_kernel.domain.workflow import Guard, Transition, Workflow
from contracts_kernel.exceptions import InvalidStatusTransitionError, TransitionGuardError

S = ContractStatus

TERMINAL_STATUSES: tuple[ContractStatus, ...] = (
    S.COMPLETED,
    S.TERMINATED,
    S.CANCELLED,
)

# Statuses in which signatures are collected, in order.
SIGNING_CHAIN: tuple[ContractStatus, ...] = (
    S.PENDING_SIGNATURES,
    S.PARTIALLY_SIGNED,
    S.FULLY_SIGNED,
)

_REQUESTED = Guard("signature_requested", "At least one signature request has been issued")
_SOME_SIGNED = Guard("some_signed", "At least one signature is signed")
_ALL_SIGNED = Guard("all_signed", "Every required signature is signed")

_TRANSITIONS = (
    Transition(S.DRAFT.value, S.PENDING_SIGNATURES.value, action="request_signature", guard=_REQUESTED),
    Transition(S.PENDING_SIGNATURES.value, S.PARTIALLY_SIGNED.value, action="sign", guard=_SOME_SIGNED),
    Transition(S.PARTIALLY_SIGNED.value, S.FULLY_SIGNED.value, action="sign", guard=_ALL_SIGNED),
    Transition(S.FULLY_SIGNED.value, S.ACTIVE.value, action="activate", guard=_ALL_SIGNED),
    Transition(S.ACTIVE.value, S.COMPLETED.value, action="complete"),
    Transition(S.ACTIVE.value, S.SUSPENDED.value, action="suspend"),
    Transition(S.ACTIVE.value, S.DISPUTED.value, action="dispute"),
    Transition(S.ACTIVE.value, S.TERMINATED.value, action="terminate"),
    Transition(S.SUSPENDED.value, S.ACTIVE.value, action="resume"),
    Transition(S.DISPUTED.value, S.ACTIVE.value, action="resolve"),
) + tuple(
    Transition(s.value, S.CANCELLED.value, action="cancel")
    for s in ContractStatus
    if s not in TERMINAL_STATUSES
)

CONTRACT_LIFECYCLE = Workflow(
    name="contract",
    description="Contract execution lifecycle from draft to a terminal state",
    initial_state=S.DRAFT.value,
    states=tuple(s.value for s in ContractStatus),
    transitions=_TRANSITIONS,
    terminal_states=tuple(s.value for s in TERMINAL_STATUSES),
)


def is_terminal(status: ContractStatus) -> bool:
    return CONTRACT_LIFECYCLE.is_terminal(status.value)


def transition_path(
    contract_id: str,
    current: ContractStatus,
    target: ContractStatus,
) -> tuple[Transition, ...]:
    """
    Return the edges walked to move ``current`` to ``target``.

    Empty when ``current == target``.  A single edge for ordinary moves.
    Inside the signing chain the walk may cover more than one edge, which
    happens when the sole outstanding signer signs while the contract is
    still ``pending-signatures``.

    Raises:
        InvalidStatusTransitionError: If no such walk exists.
    """
    if current == target:
        return ()

    direct = CONTRACT_LIFECYCLE.find(current.value, target.value)
    if direct is not None:
        return (direct,)

    if current in SIGNING_CHAIN and target in SIGNING_CHAIN:
        start = SIGNING_CHAIN.index(current)
        end = SIGNING_CHAIN.index(target)
        if start < end:
            return tuple(
                CONTRACT_LIFECYCLE.find(SIGNING_CHAIN[i].value, SIGNING_CHAIN[i + 1].value)
                for i in range(start, end)
            )

    raise InvalidStatusTransitionError(contract_id, current.value, target.value)


def validate_transition(
    contract_id: str,
    current: ContractStatus,
    target: ContractStatus,
) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is legal."""
    transition_path(contract_id, current, target)


_GUARD_EVALUATORS: dict[str, Callable[[Sequence[Signature]], bool]] = {
    _REQUESTED.name: lambda sigs: any(s.requested_at is not None for s in sigs),
    _SOME_SIGNED.name: lambda sigs: any(s.is_signed for s in sigs),
    _ALL_SIGNED.name: lambda sigs: bool(sigs) and all(s.is_signed for s in sigs),
}


def check_guards(
    contract_id: str,
    path: Iterable[Transition],
    signatures: Iterable[Signature],
) -> None:
    """
    Evaluate the guard of every edge in ``path`` against ``signatures``.

    Raises:
        TransitionGuardError: On the first edge whose guard fails.
    """
    records = tuple(signatures)
    for transition in path:
        if transition.guard is None:
            continue
        if not _GUARD_EVALUATORS[transition.guard.name](records):
            raise TransitionGuardError(
                contract_id,
                transition.from_state,
                transition.to_state,
                transition.guard.name,
            )


def derive_signing_status(
    current: ContractStatus,
    signatures: Iterable[Signature],
) -> ContractStatus:
    """
    Status implied by the signature records.

    Only statuses inside the signing chain are derived; any other status is
    returned unchanged (a draft stays a draft until a signature is requested,
    and an active contract is not demoted by signature bookkeeping).
    """
    if current not in SIGNING_CHAIN:
        return current

    records = list(signatures)
    signed = sum(1 for s in records if s.is_signed)
    if records and signed == len(records):
        return S.FULLY_SIGNED
    if signed > 0:
        return S.PARTIALLY_SIGNED
    return current


def party_sort_key(status: ContractStatus, timestamp: datetime) -> str:
    """Party-index sort key ``status#timestamp``."""
    return f"{status.value}#{timestamp.isoformat()}"
