"""
Build context for one synthesis pass.

The context is an arena of node records addressed by write-once handles.
Builders reserve a handle, compute their intents, and commit; dependents
``require`` the handles they reference. Nothing here is global: every
builder receives the context explicitly and the context dies with the pass.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .errors import (
    DependencyNotMaterializedError,
    HandleAlreadyCommittedError,
    TopologyError,
    UnresolvedReferenceError,
)
from .intents import Ref, ResourceIntent, SynthesisPlan

logger = logging.getLogger(__name__)


class NodeKind(StrEnum):
    """Kinds of node in the topology, in commit rank order."""

    NETWORK = "network"
    TRUST_BOUNDARY = "trust_boundary"
    CERTIFICATE = "certificate"
    CREDENTIAL_STORE = "credential_store"
    DATABASE = "database"
    EDGE = "edge"
    COMPUTE = "compute"
    ACCESS_GRANT = "access_grant"
    SCALING_GROUP = "scaling_group"
    DNS_RECORD = "dns_record"

    @property
    def rank(self) -> int:
        """Position in the plan; a kind only references lower ranks."""
        return list(NodeKind).index(self)


class NodeState(StrEnum):
    RESERVED = "reserved"
    MATERIALIZED = "materialized"


@dataclass(frozen=True)
class Handle:
    """Opaque, write-once reference to a node in one build context."""

    kind: NodeKind
    node_id: str
    index: int
    context_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.node_id}"


@dataclass
class NodeRecord:
    """Arena slot for one node."""

    handle: Handle
    state: NodeState = NodeState.RESERVED
    seq: int = -1
    intents: tuple[ResourceIntent, ...] = ()
    exports: dict[str, Ref] = field(default_factory=dict)
    attributes: dict[str, Any] = field(default_factory=dict)


class BuildContext:
    """
    Arena of node records for a single synthesis pass.

    Usage:
        ctx = BuildContext("wordpress")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.commit(handle, intents)
        plan = ctx.to_plan()
    """

    def __init__(self, name: str, environment: dict[str, str | None] | None = None):
        self.name = name
        self.environment = dict(environment or {})
        self.context_id = uuid.uuid4().hex[:12]
        self._records: list[NodeRecord] = []
        self._nodes: dict[tuple[NodeKind, str], NodeRecord] = {}
        self._logical_ids: set[str] = set()
        self._seq = 0
        self._discarded = False
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Arena
    # -------------------------------------------------------------------------

    def reserve(self, kind: NodeKind, node_id: str) -> Handle:
        """Allocate an arena slot for a node about to be built."""
        with self._lock:
            self._check_alive(node_id)
            if (kind, node_id) in self._nodes:
                raise HandleAlreadyCommittedError(
                    f"Node '{kind.value}:{node_id}' is already declared in this pass",
                    node_id=node_id,
                )
            handle = Handle(kind, node_id, len(self._records), self.context_id)
            record = NodeRecord(handle=handle)
            self._records.append(record)
            self._nodes[(kind, node_id)] = record
            return handle

    def commit(
        self,
        handle: Handle,
        intents: list[ResourceIntent],
        exports: dict[str, Ref] | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        """
        Materialize a node: its intents join the plan and its handle resolves.

        Every ref inside the intents must point at an intent already committed
        or emitted earlier in the same batch.

        Raises:
            HandleAlreadyCommittedError: If the handle was committed before
            UnresolvedReferenceError: If an intent refers forward
        """
        with self._lock:
            self._check_alive(handle.node_id)
            record = self._record_for(handle, handle.node_id)
            if record.state == NodeState.MATERIALIZED:
                raise HandleAlreadyCommittedError(
                    f"Node '{handle.node_id}' was already materialized", node_id=handle.node_id
                )

            known = set(self._logical_ids)
            for intent in intents:
                if intent.logical_id in known:
                    raise HandleAlreadyCommittedError(
                        f"Duplicate logical id '{intent.logical_id}'", node_id=handle.node_id
                    )
                missing = sorted(intent.dependencies - known)
                if missing:
                    raise UnresolvedReferenceError(
                        f"Intent '{intent.logical_id}' references {missing} "
                        "before they are materialized",
                        node_id=handle.node_id,
                    )
                known.add(intent.logical_id)

            record.intents = tuple(intents)
            record.exports = dict(exports or {})
            record.attributes = dict(attributes or {})
            record.seq = self._seq
            record.state = NodeState.MATERIALIZED
            self._seq += 1
            self._logical_ids = known

        for intent in intents:
            logger.debug(f"Emitted {intent.type} {intent.logical_id}")
        logger.info(f"Materialized {handle} ({len(intents)} intents)")

    def require(self, handle: Handle, by: str) -> NodeRecord:
        """
        Resolve a handle a dependent node references.

        Raises:
            DependencyNotMaterializedError: If the node is not materialized
                in this context
        """
        with self._lock:
            record = self._record_for(handle, by)
            if record.state != NodeState.MATERIALIZED:
                raise DependencyNotMaterializedError(
                    f"'{by}' references {handle}, which is not materialized yet",
                    node_id=by,
                )
            return record

    def find(self, kind: NodeKind, node_id: str) -> NodeRecord | None:
        """Look up a node record by kind and id, materialized or not."""
        with self._lock:
            return self._nodes.get((kind, node_id))

    def is_materialized(self, handle: Handle) -> bool:
        with self._lock:
            if handle.context_id != self.context_id:
                return False
            record = self._nodes.get((handle.kind, handle.node_id))
            return record is not None and record.state == NodeState.MATERIALIZED

    def discard(self) -> None:
        """End the pass without a plan; nothing built here stays reachable."""
        with self._lock:
            self._discarded = True
            self._records.clear()
            self._nodes.clear()
            self._logical_ids.clear()
        logger.info(f"Discarded build context {self.context_id}")

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    @property
    def intents(self) -> list[ResourceIntent]:
        """Committed intents ordered by node rank, then commit order."""
        with self._lock:
            records = sorted(
                (r for r in self._records if r.state == NodeState.MATERIALIZED),
                key=lambda r: (r.handle.kind.rank, r.seq),
            )
            return [intent for record in records for intent in record.intents]

    @property
    def exports(self) -> dict[str, Ref]:
        with self._lock:
            merged: dict[str, Ref] = {}
            for record in sorted(self._records, key=lambda r: r.handle.index):
                merged.update(record.exports)
            return merged

    def to_plan(self) -> SynthesisPlan:
        """Freeze committed intents into a plan for the provisioning engine."""
        with self._lock:
            self._check_alive(None)
            return SynthesisPlan(
                name=self.name,
                intents=self.intents,
                exports=self.exports,
                environment=dict(self.environment),
            )

    def summary(self) -> dict[str, Any]:
        with self._lock:
            return {
                "context_id": self.context_id,
                "nodes": len(self._records),
                "materialized": sum(
                    1 for r in self._records if r.state == NodeState.MATERIALIZED
                ),
                "intents": sum(len(r.intents) for r in self._records),
            }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _record_for(self, handle: Handle, by: str) -> NodeRecord:
        if handle.context_id != self.context_id:
            raise DependencyNotMaterializedError(
                f"{handle} belongs to another synthesis pass", node_id=by
            )
        record = self._nodes.get((handle.kind, handle.node_id))
        if record is None or record.handle != handle:
            raise DependencyNotMaterializedError(
                f"{handle} is unknown to this synthesis pass", node_id=by
            )
        return record

    def _check_alive(self, node_id: str | None) -> None:
        if self._discarded:
            raise TopologyError("Build context was discarded", node_id=node_id)


__all__ = ["NodeKind", "NodeState", "Handle", "NodeRecord", "BuildContext"]
