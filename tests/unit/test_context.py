"""Tests for the build context arena."""

import pytest

from stackweave.context import BuildContext, NodeKind, NodeState
from stackweave.errors import (
    DependencyNotMaterializedError,
    HandleAlreadyCommittedError,
    TopologyError,
    UnresolvedReferenceError,
)
from stackweave.intents import Ref, ResourceIntent


def _intent(logical_id: str, **properties) -> ResourceIntent:
    return ResourceIntent(logical_id=logical_id, type="AWS::Test::Thing", properties=properties)


class TestReserveAndCommit:
    """Tests for handle reservation and commit."""

    def test_reserve_returns_handle_for_context(self):
        """Test a handle names its kind, node and context."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")

        assert handle.kind == NodeKind.NETWORK
        assert handle.node_id == "fabric"
        assert handle.context_id == ctx.context_id
        assert str(handle) == "network:fabric"
        assert ctx.is_materialized(handle) is False

    def test_duplicate_node_rejected(self):
        """Test a node id can only be reserved once."""
        ctx = BuildContext("stack")
        ctx.reserve(NodeKind.NETWORK, "fabric")

        with pytest.raises(HandleAlreadyCommittedError):
            ctx.reserve(NodeKind.NETWORK, "fabric")

    def test_same_id_in_different_kinds(self):
        """Test node ids are scoped by kind."""
        ctx = BuildContext("stack")
        boundary = ctx.reserve(NodeKind.TRUST_BOUNDARY, "edge")
        edge = ctx.reserve(NodeKind.EDGE, "edge")
        ctx.commit(boundary, [_intent("EdgeSecurityGroup")])

        assert ctx.is_materialized(boundary) is True
        assert ctx.is_materialized(edge) is False
        assert ctx.find(NodeKind.TRUST_BOUNDARY, "edge").state == NodeState.MATERIALIZED
        assert ctx.find(NodeKind.EDGE, "edge").state == NodeState.RESERVED

    def test_commit_materializes(self):
        """Test commit makes the handle resolvable."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.commit(handle, [_intent("Vpc")], exports={"VpcId": Ref("Vpc")})

        record = ctx.require(handle, by="dependent")
        assert record.state == NodeState.MATERIALIZED
        assert [i.logical_id for i in record.intents] == ["Vpc"]
        assert ctx.exports == {"VpcId": Ref("Vpc")}

    def test_second_commit_rejected(self):
        """Test a handle is write-once."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.commit(handle, [_intent("Vpc")])

        with pytest.raises(HandleAlreadyCommittedError):
            ctx.commit(handle, [_intent("Other")])

    def test_duplicate_logical_id_rejected(self):
        """Test logical ids are unique across nodes."""
        ctx = BuildContext("stack")
        first = ctx.reserve(NodeKind.NETWORK, "a")
        second = ctx.reserve(NodeKind.NETWORK, "b")
        ctx.commit(first, [_intent("Vpc")])

        with pytest.raises(HandleAlreadyCommittedError, match="Duplicate logical id"):
            ctx.commit(second, [_intent("Vpc")])

    def test_forward_reference_rejected(self):
        """Test intents may only reference materialized intents."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.EDGE, "edge")

        with pytest.raises(UnresolvedReferenceError, match="Missing"):
            ctx.commit(handle, [_intent("Listener", Target=Ref("Missing"))])

    def test_reference_within_batch_allowed(self):
        """Test an intent may reference an earlier intent of the same node."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.EDGE, "edge")
        ctx.commit(handle, [_intent("Lb"), _intent("Listener", Lb=Ref("Lb"))])

        assert ctx.is_materialized(handle)

    def test_find_returns_record(self):
        """Test lookup by node id."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.DNS_RECORD, "dns:example.com")
        ctx.commit(handle, [], attributes={"zone_id": "Z1"})

        record = ctx.find(NodeKind.DNS_RECORD, "dns:example.com")
        assert record is not None
        assert record.attributes == {"zone_id": "Z1"}
        assert ctx.find(NodeKind.DNS_RECORD, "unknown") is None


class TestRequire:
    """Tests for dependency resolution."""

    def test_reserved_but_not_committed(self):
        """Test a reserved handle is not yet materialized."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.CREDENTIAL_STORE, "db-secret")

        with pytest.raises(DependencyNotMaterializedError) as exc_info:
            ctx.require(handle, by="database")

        assert exc_info.value.node_id == "database"

    def test_handle_from_other_context(self):
        """Test handles cannot cross synthesis passes."""
        first = BuildContext("stack")
        second = BuildContext("stack")
        handle = first.reserve(NodeKind.CREDENTIAL_STORE, "db-secret")
        first.commit(handle, [_intent("Secret")])

        with pytest.raises(DependencyNotMaterializedError, match="another synthesis pass"):
            second.require(handle, by="database")
        assert second.is_materialized(handle) is False


class TestOrdering:
    """Tests for plan ordering."""

    def test_intents_ordered_by_kind_rank(self):
        """Test higher-rank nodes follow lower-rank ones whatever the commit order."""
        ctx = BuildContext("stack")
        secret = ctx.reserve(NodeKind.CREDENTIAL_STORE, "db-secret")
        network = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.commit(secret, [_intent("Secret")])
        ctx.commit(network, [_intent("Vpc")])

        assert [i.logical_id for i in ctx.intents] == ["Vpc", "Secret"]

    def test_same_kind_ordered_by_commit(self):
        """Test nodes of one kind keep commit order."""
        ctx = BuildContext("stack")
        b = ctx.reserve(NodeKind.TRUST_BOUNDARY, "b")
        a = ctx.reserve(NodeKind.TRUST_BOUNDARY, "a")
        ctx.commit(a, [_intent("A")])
        ctx.commit(b, [_intent("B")])

        assert [i.logical_id for i in ctx.intents] == ["A", "B"]

    def test_rank_order(self):
        """Test the kind ranks follow the dependency flow."""
        assert NodeKind.NETWORK.rank < NodeKind.TRUST_BOUNDARY.rank
        assert NodeKind.CREDENTIAL_STORE.rank < NodeKind.DATABASE.rank
        assert NodeKind.CERTIFICATE.rank < NodeKind.EDGE.rank
        assert NodeKind.EDGE.rank < NodeKind.SCALING_GROUP.rank
        assert NodeKind.DNS_RECORD.rank == len(NodeKind) - 1


class TestDiscard:
    """Tests for discarding a failed pass."""

    def test_discard_blocks_further_use(self):
        """Test nothing can be built or planned after discard."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.commit(handle, [_intent("Vpc")])
        ctx.discard()

        assert ctx.intents == []
        with pytest.raises(TopologyError):
            ctx.reserve(NodeKind.NETWORK, "other")
        with pytest.raises(TopologyError):
            ctx.to_plan()

    def test_summary_counts(self):
        """Test the context summary."""
        ctx = BuildContext("stack")
        handle = ctx.reserve(NodeKind.NETWORK, "fabric")
        ctx.reserve(NodeKind.EDGE, "edge")
        ctx.commit(handle, [_intent("Vpc"), _intent("Subnet")])

        summary = ctx.summary()
        assert summary["nodes"] == 2
        assert summary["materialized"] == 1
        assert summary["intents"] == 2
