"""
Credential store builder.

Generates a secret holding the database credential pair. Downstream nodes
only ever receive an opaque reference to the secret; the generated value is
produced by the provider and never appears in the plan.
"""

from __future__ import annotations

import json
import string
from dataclasses import dataclass

from ..context import Handle, NodeKind
from ..errors import GenerationPolicyError
from ..intents import Join, Ref, secret_field_reference
from ..models import GeneratedFieldSpec
from .base import NodeBuilder, logical_id

PROVIDER_MIN_LENGTH = 8
PROVIDER_MAX_LENGTH = 4096

# Characters RDS refuses in master passwords
RDS_FORBIDDEN_CHARACTERS = "\"@/\\'"


@dataclass(frozen=True)
class CredentialHandle:
    """Handle to a materialized credential store."""

    handle: Handle
    reference: Ref
    fixed_keys: tuple[str, ...]
    generated_key: str
    username_key: str = "username"

    @property
    def node_id(self) -> str:
        return self.handle.node_id

    def field_reference(self, key: str) -> Join:
        """Dynamic reference resolved by the provisioning engine, never inlined."""
        if key not in self.fixed_keys and key != self.generated_key:
            raise KeyError(f"Secret '{self.node_id}' has no field '{key}'")
        return secret_field_reference(self.reference, key)


@dataclass(frozen=True)
class AccessGrant:
    """Handle to a read grant on a credential store."""

    handle: Handle
    credential: CredentialHandle
    policy: Ref


def available_characters(spec: GeneratedFieldSpec) -> str:
    """Alphabet the provider may draw from under the spec."""
    alphabet = ""
    if not spec.exclude_lowercase:
        alphabet += string.ascii_lowercase
    if not spec.exclude_uppercase:
        alphabet += string.ascii_uppercase
    if not spec.exclude_numbers:
        alphabet += string.digits
    if not spec.exclude_punctuation:
        alphabet += string.punctuation
    if spec.include_space:
        alphabet += " "
    return "".join(c for c in alphabet if c not in spec.exclude_characters)


class CredentialStoreBuilder(NodeBuilder):
    """Generate the database credential secret and its read grants."""

    @property
    def kind(self) -> NodeKind:
        return NodeKind.CREDENTIAL_STORE

    def create(
        self,
        fixed_fields: dict[str, str],
        generated: GeneratedFieldSpec,
        node_id: str = "db-secret",
        description: str = "Database master credentials",
        username_key: str = "username",
    ) -> CredentialHandle:
        """
        Materialize a secret with fixed fields and one provider-generated field.

        ``username_key`` names the fixed field consumers read as the login.

        Raises:
            GenerationPolicyError: If the generated field spec cannot be met
        """
        generated = self._harden(generated)
        self._check_policy(fixed_fields, generated, node_id)

        handle = self._reserve(node_id)
        secret_id = logical_id(node_id)
        reference = Ref(secret_id)

        generate: dict = {
            "SecretStringTemplate": json.dumps(fixed_fields, separators=(",", ":")),
            "GenerateStringKey": generated.key,
            "PasswordLength": generated.length,
            "ExcludePunctuation": generated.exclude_punctuation,
        }
        if generated.exclude_characters:
            generate["ExcludeCharacters"] = generated.exclude_characters
        for flag, key in (
            (generated.exclude_uppercase, "ExcludeUppercase"),
            (generated.exclude_lowercase, "ExcludeLowercase"),
            (generated.exclude_numbers, "ExcludeNumbers"),
            (generated.include_space, "IncludeSpace"),
        ):
            if flag:
                generate[key] = True

        intent = self._intent(
            secret_id,
            "AWS::SecretsManager::Secret",
            {
                "Description": description,
                "GenerateSecretString": generate,
                "Tags": self._tags(node_id),
            },
            node_id,
        )
        self.context.commit(handle, [intent], exports={"DatabaseSecretArn": reference})
        return CredentialHandle(
            handle=handle,
            reference=reference,
            fixed_keys=tuple(fixed_fields),
            generated_key=generated.key,
            username_key=username_key,
        )

    def grant_read(self, credential: CredentialHandle, role: Ref, node_id: str) -> AccessGrant:
        """Allow an identity to read the secret at runtime."""
        self.context.require(credential.handle, by=node_id)
        handle = self.context.reserve(NodeKind.ACCESS_GRANT, node_id)
        policy_id = logical_id(node_id, "policy")
        intent = self._intent(
            policy_id,
            "AWS::IAM::Policy",
            {
                "PolicyName": policy_id,
                "Roles": [role],
                "PolicyDocument": {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Action": [
                                "secretsmanager:GetSecretValue",
                                "secretsmanager:DescribeSecret",
                            ],
                            "Resource": credential.reference,
                        }
                    ],
                },
            },
            node_id,
        )
        self.context.commit(handle, [intent])
        return AccessGrant(handle=handle, credential=credential, policy=Ref(policy_id))

    @staticmethod
    def _harden(spec: GeneratedFieldSpec) -> GeneratedFieldSpec:
        """Keep characters RDS rejects out of generated passwords."""
        if spec.exclude_punctuation and not spec.include_space:
            return spec
        extra = "".join(c for c in RDS_FORBIDDEN_CHARACTERS if c not in spec.exclude_characters)
        return GeneratedFieldSpec(
            key=spec.key,
            length=spec.length,
            exclude_punctuation=spec.exclude_punctuation,
            exclude_characters=spec.exclude_characters + extra,
            exclude_uppercase=spec.exclude_uppercase,
            exclude_lowercase=spec.exclude_lowercase,
            exclude_numbers=spec.exclude_numbers,
            include_space=False,
        )

    @staticmethod
    def _check_policy(
        fixed_fields: dict[str, str], spec: GeneratedFieldSpec, node_id: str
    ) -> None:
        if not spec.key:
            raise GenerationPolicyError("Generated field needs a key", node_id=node_id)
        if spec.key in fixed_fields:
            raise GenerationPolicyError(
                f"Generated field '{spec.key}' collides with a fixed field", node_id=node_id
            )
        if spec.length < PROVIDER_MIN_LENGTH:
            raise GenerationPolicyError(
                f"Length {spec.length} is below the provider minimum of {PROVIDER_MIN_LENGTH}",
                node_id=node_id,
            )
        if spec.length > PROVIDER_MAX_LENGTH:
            raise GenerationPolicyError(
                f"Length {spec.length} exceeds the provider maximum of {PROVIDER_MAX_LENGTH}",
                node_id=node_id,
            )
        if not available_characters(spec):
            raise GenerationPolicyError(
                "Every character class is excluded; nothing left to generate from",
                node_id=node_id,
            )


__all__ = [
    "CredentialHandle",
    "AccessGrant",
    "CredentialStoreBuilder",
    "available_characters",
    "PROVIDER_MIN_LENGTH",
    "PROVIDER_MAX_LENGTH",
]
