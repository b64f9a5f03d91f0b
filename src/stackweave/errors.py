"""
Error types for stackweave topology synthesis.

Every error aborts the current synthesis pass. Each one names the node whose
invariant was violated so the caller gets a single terminal failure report.
"""

from __future__ import annotations

from dataclasses import dataclass


class TopologyError(Exception):
    """Base exception for all stackweave errors."""

    code = "TOPOLOGY_ERROR"

    def __init__(self, message: str, node_id: str | None = None):
        self.message = message
        self.node_id = node_id
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with the offending node if known."""
        if self.node_id:
            return f"[{self.node_id}] {self.message}"
        return self.message


class UnresolvedReferenceError(TopologyError):
    """
    Raised when a node references another node that is not yet declared.

    Examples:
    - Security group rule peering with a boundary declared later
    - Rule peering with a boundary that does not exist at all
    """

    code = "UNRESOLVED_REFERENCE"


class CycleError(TopologyError):
    """Raised when trust boundary references form a cycle."""

    code = "REFERENCE_CYCLE"

    def __init__(self, cycle: list[str], node_id: str | None = None):
        self.cycle = cycle
        super().__init__(
            f"Circular trust reference: {' -> '.join(cycle)}",
            node_id=node_id or (cycle[0] if cycle else None),
        )


class ValidationTimeout(TopologyError):
    """Raised when a certificate is not validated before its deadline."""

    code = "CERTIFICATE_VALIDATION_TIMEOUT"


class ValidationFailed(TopologyError):
    """Raised when the validation authority rejects the ownership proof."""

    code = "CERTIFICATE_VALIDATION_FAILED"


class GenerationPolicyError(TopologyError):
    """
    Raised when a generated secret field spec cannot be satisfied.

    Examples:
    - Requested length below the provider minimum
    - Every character class excluded
    - Generated key colliding with a fixed field
    """

    code = "GENERATION_POLICY"


class ZoneLookupError(TopologyError):
    """Raised when a hosted zone cannot be resolved for a domain."""

    code = "ZONE_LOOKUP"


class DependencyNotMaterializedError(TopologyError):
    """Raised when a node is built before a node it references by handle."""

    code = "DEPENDENCY_NOT_MATERIALIZED"


class ListenerPolicyError(TopologyError):
    """Raised when a plaintext listener would carry application traffic."""

    code = "LISTENER_POLICY"


class SecretExposureError(TopologyError):
    """Raised when a secret value would be embedded in a declared attribute."""

    code = "SECRET_EXPOSURE"


class DNSConflictError(TopologyError):
    """Raised when a record name is already bound to another identity."""

    code = "DNS_CONFLICT"


class TopologyConfigError(TopologyError):
    """Raised when configured values break a node invariant."""

    code = "TOPOLOGY_CONFIG"


class HandleAlreadyCommittedError(TopologyError):
    """Raised when a node is committed to the build context twice."""

    code = "HANDLE_ALREADY_COMMITTED"


class SynthesisAborted(TopologyError):
    """
    Raised by the assembler when a synthesis pass fails.

    Wraps the first violated invariant; no partial plan is returned.
    """

    code = "SYNTHESIS_ABORTED"

    def __init__(self, cause: TopologyError):
        self.cause = cause
        super().__init__(f"Synthesis aborted: {cause.message}", node_id=cause.node_id)

    @property
    def failure(self) -> FailureReport:
        """Terminal failure report for the wrapped violation."""
        return FailureReport.from_error(self.cause)


@dataclass
class FailureReport:
    """The single terminal failure of a synthesis pass."""

    code: str
    node_id: str | None
    message: str

    @classmethod
    def from_error(cls, error: TopologyError) -> FailureReport:
        return cls(code=error.code, node_id=error.node_id, message=error.message)

    def to_dict(self) -> dict[str, str | None]:
        """Convert to dictionary for JSON serialization."""
        return {"code": self.code, "node_id": self.node_id, "message": self.message}


__all__ = [
    "TopologyError",
    "UnresolvedReferenceError",
    "CycleError",
    "ValidationTimeout",
    "ValidationFailed",
    "GenerationPolicyError",
    "ZoneLookupError",
    "DependencyNotMaterializedError",
    "ListenerPolicyError",
    "SecretExposureError",
    "DNSConflictError",
    "TopologyConfigError",
    "HandleAlreadyCommittedError",
    "SynthesisAborted",
    "FailureReport",
]
