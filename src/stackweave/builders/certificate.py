"""
Certificate gate.

Binds a domain-validated TLS certificate. The returned handle is pending
until an external validation signal arrives; dependents block on it through
a future instead of polling. The certificate is materialized only once it
is validated.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Future
from typing import Protocol

from ..context import BuildContext, Handle, NodeKind
from ..errors import ValidationFailed, ValidationTimeout
from ..intents import Ref
from ..models import CertificateState, ValidationMethod
from .base import NodeBuilder, logical_id

logger = logging.getLogger(__name__)


class CertificateHandle:
    """
    Pending certificate binding.

    The state moves from PENDING to VALIDATED or FAILED exactly once; later
    signals are ignored.
    """

    def __init__(
        self,
        handle: Handle,
        domain_name: str,
        validation_method: ValidationMethod,
        on_validated: Callable[[CertificateHandle], None],
    ):
        self.handle = handle
        self.domain_name = domain_name
        self.validation_method = validation_method
        self.arn = Ref(logical_id(handle.node_id))
        self._future: Future[tuple[CertificateState, str]] = Future()
        self._on_validated = on_validated
        self._lock = threading.Lock()
        self._materialized = False

    @property
    def node_id(self) -> str:
        return self.handle.node_id

    @property
    def state(self) -> CertificateState:
        if self._future.cancelled():
            return CertificateState.FAILED
        if not self._future.done():
            return CertificateState.PENDING
        return self._future.result()[0]

    # -------------------------------------------------------------------------
    # Signals (called by the validation authority, from any thread)
    # -------------------------------------------------------------------------

    def signal_validated(self) -> None:
        self._settle(CertificateState.VALIDATED, "")

    def signal_failed(self, reason: str) -> None:
        self._settle(CertificateState.FAILED, reason)

    def cancel(self) -> None:
        """Release anyone blocked on this certificate."""
        with self._lock:
            if self._future.cancel():
                logger.info(f"Cancelled validation of {self.domain_name}")

    def _settle(self, state: CertificateState, reason: str) -> None:
        with self._lock:
            if self._future.done():
                logger.warning(
                    f"Ignoring {state.value} signal for {self.domain_name}: already {self.state.value}"
                )
                return
            self._future.set_result((state, reason))
        logger.info(f"Certificate for {self.domain_name} is {state.value}")

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    def wait(self, deadline: float) -> CertificateHandle:
        """
        Block until the certificate is validated.

        Args:
            deadline: Seconds to wait; zero or less fails immediately

        Raises:
            ValidationTimeout: If no signal arrives within the deadline
            ValidationFailed: If the authority rejected the ownership proof
        """
        with self._lock:
            if self._materialized:
                return self
        if deadline <= 0:
            raise ValidationTimeout(
                f"No validation deadline left for {self.domain_name}", node_id=self.node_id
            )
        try:
            state, reason = self._future.result(timeout=deadline)
        except TimeoutError as e:
            raise ValidationTimeout(
                f"Certificate for {self.domain_name} not validated within {deadline}s",
                node_id=self.node_id,
            ) from e
        except CancelledError as e:
            raise ValidationFailed(
                f"Validation of {self.domain_name} was cancelled", node_id=self.node_id
            ) from e

        if state == CertificateState.FAILED:
            raise ValidationFailed(
                f"Ownership proof for {self.domain_name} rejected: {reason}", node_id=self.node_id
            )

        with self._lock:
            if not self._materialized:
                self._on_validated(self)
                self._materialized = True
        return self


class ValidationAuthority(Protocol):
    """External source of domain-ownership validation signals."""

    def request(self, certificate: CertificateHandle) -> None: ...


class AutoApproveAuthority:
    """
    Validates every request immediately.

    Used when DNS validation records are created by the provisioning engine
    itself, so synthesis need not wait on the real authority.
    """

    def request(self, certificate: CertificateHandle) -> None:
        certificate.signal_validated()


class ManualValidationAuthority:
    """Holds requests until ``approve`` or ``reject`` is called for the domain."""

    def __init__(self) -> None:
        self._pending: dict[str, CertificateHandle] = {}
        self._lock = threading.Lock()

    def request(self, certificate: CertificateHandle) -> None:
        with self._lock:
            self._pending[certificate.domain_name] = certificate

    @property
    def pending_domains(self) -> list[str]:
        with self._lock:
            return sorted(self._pending)

    def approve(self, domain_name: str) -> None:
        self._pop(domain_name).signal_validated()

    def reject(self, domain_name: str, reason: str) -> None:
        self._pop(domain_name).signal_failed(reason)

    def _pop(self, domain_name: str) -> CertificateHandle:
        with self._lock:
            if domain_name not in self._pending:
                raise KeyError(f"No pending validation for {domain_name}")
            return self._pending.pop(domain_name)


class CertificateGate(NodeBuilder):
    """Bind certificates and gate dependents on their validation."""

    def __init__(self, context: BuildContext, authority: ValidationAuthority | None = None):
        super().__init__(context)
        self.authority: ValidationAuthority = authority or AutoApproveAuthority()

    @property
    def kind(self) -> NodeKind:
        return NodeKind.CERTIFICATE

    def bind(
        self,
        domain_name: str,
        validation_method: ValidationMethod = ValidationMethod.DNS,
        subject_alternative_names: tuple[str, ...] = (),
        hosted_zone_id: str | None = None,
        node_id: str = "certificate",
    ) -> CertificateHandle:
        """Request a certificate; the returned handle starts PENDING."""
        handle = self._reserve(node_id)

        def materialize(certificate: CertificateHandle) -> None:
            properties: dict = {
                "DomainName": domain_name,
                "ValidationMethod": validation_method.value,
                "Tags": self._tags(node_id),
            }
            if subject_alternative_names:
                properties["SubjectAlternativeNames"] = list(subject_alternative_names)
            if validation_method == ValidationMethod.DNS and hosted_zone_id:
                properties["DomainValidationOptions"] = [
                    {"DomainName": domain_name, "HostedZoneId": hosted_zone_id}
                ]
            intent = self._intent(
                certificate.arn.logical_id,
                "AWS::CertificateManager::Certificate",
                properties,
                node_id,
            )
            self.context.commit(handle, [intent], exports={"CertificateArn": certificate.arn})

        certificate = CertificateHandle(handle, domain_name, validation_method, materialize)
        logger.info(f"Requested {validation_method.value} validation for {domain_name}")
        self.authority.request(certificate)
        return certificate


__all__ = [
    "CertificateHandle",
    "CertificateGate",
    "ValidationAuthority",
    "AutoApproveAuthority",
    "ManualValidationAuthority",
]
