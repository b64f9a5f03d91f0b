"""Tests for the certificate gate."""

import threading

import pytest

from stackweave.builders.certificate import (
    AutoApproveAuthority,
    CertificateGate,
    ManualValidationAuthority,
)
from stackweave.context import BuildContext
from stackweave.errors import ValidationFailed, ValidationTimeout
from stackweave.models import CertificateState, ValidationMethod


class TestCertificateHandle:
    """Tests for CertificateHandle state transitions."""

    def test_starts_pending(self, context: BuildContext):
        """Test a manual request stays pending until signalled."""
        cert = CertificateGate(context, ManualValidationAuthority()).bind("example.com")

        assert cert.state == CertificateState.PENDING
        assert context.is_materialized(cert.handle) is False

    def test_auto_approve_validates(self, context: BuildContext):
        """Test the default authority validates immediately."""
        cert = CertificateGate(context).bind("example.com")

        assert cert.state == CertificateState.VALIDATED

    def test_wait_materializes_once(self, context: BuildContext):
        """Test waiting commits the certificate intent exactly once."""
        cert = CertificateGate(context, AutoApproveAuthority()).bind("example.com")
        cert.wait(1.0)
        cert.wait(1.0)

        plan = context.to_plan()
        assert plan.resource_count("AWS::CertificateManager::Certificate") == 1
        assert plan.get("Certificate").properties["DomainName"] == "example.com"
        assert plan.get("Certificate").properties["ValidationMethod"] == "DNS"
        assert plan.exports["CertificateArn"] == cert.arn

    def test_zero_deadline_fails_immediately(self, context: BuildContext):
        """Test a deadline of zero times out even if validation is ready."""
        cert = CertificateGate(context).bind("example.com")

        with pytest.raises(ValidationTimeout):
            cert.wait(0)
        assert context.is_materialized(cert.handle) is False

    def test_timeout_without_signal(self, context: BuildContext):
        """Test waiting on a silent authority times out."""
        cert = CertificateGate(context, ManualValidationAuthority()).bind("example.com")

        with pytest.raises(ValidationTimeout) as exc_info:
            cert.wait(0.05)

        assert exc_info.value.node_id == "certificate"

    def test_rejection_fails(self, context: BuildContext):
        """Test a rejected proof raises ValidationFailed."""
        authority = ManualValidationAuthority()
        cert = CertificateGate(context, authority).bind("example.com")
        authority.reject("example.com", "CAA record forbids issuance")

        assert cert.state == CertificateState.FAILED
        with pytest.raises(ValidationFailed, match="CAA record"):
            cert.wait(1.0)
        assert context.is_materialized(cert.handle) is False

    def test_late_signal_ignored(self, context: BuildContext):
        """Test the first signal wins."""
        cert = CertificateGate(context, ManualValidationAuthority()).bind("example.com")
        cert.signal_failed("expired")
        cert.signal_validated()

        assert cert.state == CertificateState.FAILED

    def test_cancel_releases_waiter(self, context: BuildContext):
        """Test cancelling turns a blocked wait into a failure."""
        cert = CertificateGate(context, ManualValidationAuthority()).bind("example.com")
        cert.cancel()

        assert cert.state == CertificateState.FAILED
        with pytest.raises(ValidationFailed, match="cancelled"):
            cert.wait(1.0)

    def test_signal_from_other_thread(self, context: BuildContext):
        """Test a signal delivered from another thread wakes the waiter."""
        authority = ManualValidationAuthority()
        cert = CertificateGate(context, authority).bind("example.com")
        timer = threading.Timer(0.05, authority.approve, args=("example.com",))
        timer.start()
        try:
            cert.wait(5.0)
        finally:
            timer.join()

        assert cert.state == CertificateState.VALIDATED
        assert context.is_materialized(cert.handle)


class TestManualValidationAuthority:
    """Tests for ManualValidationAuthority."""

    def test_pending_domains(self, context: BuildContext):
        """Test requests are tracked until answered."""
        authority = ManualValidationAuthority()
        gate = CertificateGate(context, authority)
        gate.bind("b.example.com", node_id="cert-b")
        gate.bind("a.example.com", node_id="cert-a")

        assert authority.pending_domains == ["a.example.com", "b.example.com"]
        authority.approve("a.example.com")
        assert authority.pending_domains == ["b.example.com"]

    def test_unknown_domain(self):
        """Test answering an unknown request raises KeyError."""
        with pytest.raises(KeyError):
            ManualValidationAuthority().approve("nothing.example.com")


class TestCertificateGate:
    """Tests for CertificateGate.bind options."""

    def test_dns_validation_options(self, context: BuildContext):
        """Test the hosted zone is attached for DNS validation."""
        cert = CertificateGate(context).bind(
            "example.com",
            subject_alternative_names=("www.example.com",),
            hosted_zone_id="Z123",
        )
        cert.wait(1.0)

        properties = context.to_plan().get("Certificate").properties
        assert properties["SubjectAlternativeNames"] == ["www.example.com"]
        assert properties["DomainValidationOptions"] == [
            {"DomainName": "example.com", "HostedZoneId": "Z123"}
        ]

    def test_email_validation(self, context: BuildContext):
        """Test email validation has no DNS options."""
        cert = CertificateGate(context).bind(
            "example.com", validation_method=ValidationMethod.EMAIL, hosted_zone_id="Z123"
        )
        cert.wait(1.0)

        properties = context.to_plan().get("Certificate").properties
        assert properties["ValidationMethod"] == "EMAIL"
        assert "DomainValidationOptions" not in properties
