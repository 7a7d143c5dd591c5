"""
contracts_services.collaborators -- narrow interfaces to external systems.

Responsibility:
    Declares the four lookups contract generation and the lifecycle service
    consume (proposals, work breakdowns, projects, party profiles) as
    ``typing.Protocol`` classes, plus thread-safe in-memory implementations
    used by tests and local runs.

Architecture position:
    Services -- ports.  The workflow services depend on these protocols,
    never on a concrete backend.

Payload shapes (plain dicts, snake_case):
    proposal:        id, status, total_price, timeline{total_duration, phases[]}
    work breakdown:  id, specifications[{description}], stages[{stage, title, ...}]
    project:         id, status, council_data{planning_restrictions[]}
    user:            id, email, first_name, last_name, company_name?
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class LookupResult:
    """Envelope the proposal service answers with."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None


class ProposalLookup(Protocol):
    def get_proposal(self, proposal_id: str) -> LookupResult:
        ...


class WorkBreakdownLookup(Protocol):
    def get_work_breakdown(self, work_breakdown_id: str) -> dict[str, Any] | None:
        ...


class ProjectGateway(Protocol):
    def get_project(self, project_id: str) -> dict[str, Any] | None:
        ...

    def set_project_status(self, project_id: str, status: str) -> None:
        ...


class PartyDirectory(Protocol):
    def get_user(self, user_id: str) -> dict[str, Any] | None:
        ...


class _InMemoryStore:
    def __init__(self, items: dict[str, dict[str, Any]] | None = None):
        self._items: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        for key, value in (items or {}).items():
            self.put(key, value)

    def put(self, key: str, value: dict[str, Any]) -> None:
        with self._lock:
            self._items[key] = copy.deepcopy(value)

    def fetch(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            value = self._items.get(key)
            return copy.deepcopy(value) if value is not None else None


class InMemoryProposals(_InMemoryStore):
    def get_proposal(self, proposal_id: str) -> LookupResult:
        proposal = self.fetch(proposal_id)
        if proposal is None:
            return LookupResult(success=False, error="Quote not found")
        return LookupResult(success=True, data=proposal)


class InMemoryWorkBreakdowns(_InMemoryStore):
    def get_work_breakdown(self, work_breakdown_id: str) -> dict[str, Any] | None:
        return self.fetch(work_breakdown_id)


class InMemoryProjects(_InMemoryStore):
    """Project store that also remembers every status it was asked to set."""

    def __init__(self, items: dict[str, dict[str, Any]] | None = None):
        super().__init__(items)
        self.status_changes: list[tuple[str, str]] = []

    def get_project(self, project_id: str) -> dict[str, Any] | None:
        return self.fetch(project_id)

    def set_project_status(self, project_id: str, status: str) -> None:
        project = self.fetch(project_id)
        if project is None:
            raise LookupError(f"Project {project_id} not found")
        project["status"] = status
        self.put(project_id, project)
        with self._lock:
            self.status_changes.append((project_id, status))


class InMemoryParties(_InMemoryStore):
    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return self.fetch(user_id)
