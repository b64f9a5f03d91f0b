"""Tests for the credential store builder."""

import json

import pytest

from stackweave.builders.credentials import (
    PROVIDER_MAX_LENGTH,
    CredentialStoreBuilder,
    available_characters,
)
from stackweave.context import BuildContext, NodeKind
from stackweave.errors import DependencyNotMaterializedError, GenerationPolicyError
from stackweave.intents import Ref, ResourceIntent
from stackweave.models import GeneratedFieldSpec


class TestCredentialStoreBuilder:
    """Tests for CredentialStoreBuilder.create."""

    def test_secret_template(self, context: BuildContext):
        """Test fixed fields and the generated password template."""
        handle = CredentialStoreBuilder(context).create({"username": "admin"}, GeneratedFieldSpec())
        secret = context.to_plan().get("DbSecret")

        generate = secret.properties["GenerateSecretString"]
        assert secret.type == "AWS::SecretsManager::Secret"
        assert json.loads(generate["SecretStringTemplate"]) == {"username": "admin"}
        assert generate["GenerateStringKey"] == "password"
        assert generate["PasswordLength"] == 32
        assert generate["ExcludePunctuation"] is True
        assert handle.reference == Ref("DbSecret")
        assert handle.fixed_keys == ("username",)

    def test_no_literal_secret_in_plan(self, context: BuildContext):
        """Test the plan never carries a password value."""
        CredentialStoreBuilder(context).create({"username": "admin"}, GeneratedFieldSpec())

        assert "SecretString" not in context.to_plan().get("DbSecret").properties

    def test_field_reference(self, context: BuildContext):
        """Test field references are dynamic references."""
        handle = CredentialStoreBuilder(context).create({"username": "admin"}, GeneratedFieldSpec())

        token = handle.field_reference("password").to_token()
        assert token["Fn::Join"][1][0] == "{{resolve:secretsmanager:"
        with pytest.raises(KeyError):
            handle.field_reference("api_key")

    def test_punctuation_hardened_for_rds(self, context: BuildContext):
        """Test characters RDS rejects are excluded when punctuation is allowed."""
        CredentialStoreBuilder(context).create(
            {"username": "admin"}, GeneratedFieldSpec(exclude_punctuation=False)
        )
        generate = context.to_plan().get("DbSecret").properties["GenerateSecretString"]

        for char in "\"@/\\'":
            assert char in generate["ExcludeCharacters"]

    @pytest.mark.parametrize(
        ("spec", "message"),
        [
            (GeneratedFieldSpec(length=7), "below the provider minimum"),
            (GeneratedFieldSpec(length=PROVIDER_MAX_LENGTH + 1), "exceeds the provider maximum"),
            (GeneratedFieldSpec(key="username"), "collides"),
            (GeneratedFieldSpec(key=""), "needs a key"),
            (
                GeneratedFieldSpec(
                    exclude_uppercase=True, exclude_lowercase=True, exclude_numbers=True
                ),
                "nothing left",
            ),
        ],
    )
    def test_unsatisfiable_policy(self, context: BuildContext, spec, message):
        """Test unsatisfiable generation specs are rejected before anything is emitted."""
        with pytest.raises(GenerationPolicyError, match=message):
            CredentialStoreBuilder(context).create({"username": "admin"}, spec)

        assert context.find(NodeKind.CREDENTIAL_STORE, "db-secret") is None

    def test_excluded_characters_exhaust_alphabet(self):
        """Test exclusions count against the alphabet."""
        spec = GeneratedFieldSpec(
            exclude_uppercase=True,
            exclude_lowercase=True,
            exclude_characters="0123456789",
        )

        assert available_characters(spec) == ""


class TestGrantRead:
    """Tests for CredentialStoreBuilder.grant_read."""

    def test_grant_is_separate_intent(self, context: BuildContext):
        """Test a read grant is its own node and never mutates the secret."""
        builder = CredentialStoreBuilder(context)
        credential = builder.create({"username": "admin"}, GeneratedFieldSpec())
        role_handle = context.reserve(NodeKind.COMPUTE, "compute")
        context.commit(role_handle, [ResourceIntent("Role", "AWS::IAM::Role")])
        grant = builder.grant_read(credential, Ref("Role"), node_id="read-grant")

        plan = context.to_plan()
        policy = plan.get("ReadGrantPolicy")
        statement = policy.properties["PolicyDocument"]["Statement"][0]
        assert statement["Action"] == [
            "secretsmanager:GetSecretValue",
            "secretsmanager:DescribeSecret",
        ]
        assert statement["Resource"] == credential.reference
        assert grant.handle.kind == NodeKind.ACCESS_GRANT
        assert plan.index_of("DbSecret") < plan.index_of("ReadGrantPolicy")

    def test_grant_requires_materialized_store(self, credential):
        """Test granting on a store from another pass fails."""
        other = BuildContext("other")

        with pytest.raises(DependencyNotMaterializedError):
            CredentialStoreBuilder(other).grant_read(credential, Ref("Role"), node_id="grant")
