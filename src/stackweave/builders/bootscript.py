"""
Boot-script assembler.

Composes the first-boot shell script for compute instances from ordered
steps. Phases always run in the same order; credentials are fetched at boot
through the instance's own identity, so the script only ever carries a
reference to the secret.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from enum import IntEnum

from ..context import BuildContext, Handle
from ..errors import (
    DependencyNotMaterializedError,
    SecretExposureError,
    TopologyConfigError,
    UnresolvedReferenceError,
)
from ..intents import Ref, Sub
from .credentials import CredentialHandle
from .database import DatabaseHandle

SCRIPT_HEADER = ("#!/bin/bash", "set -euo pipefail")

_PLACEHOLDER = re.compile(r"\$\{([^}]*)\}")
_DYNAMIC_SECRET = re.compile(r"\{\{resolve:(secretsmanager|ssm-secure):", re.IGNORECASE)
_SECRET_FETCH = re.compile(r"secretsmanager\s+get-secret-value")


class BootPhase(IntEnum):
    """Fixed order of boot-script phases."""

    PACKAGES = 1
    SERVICES = 2
    ARTIFACTS = 3
    CREDENTIALS = 4
    CONFIGURE = 5
    RESTART = 6


@dataclass(frozen=True)
class BootStep:
    """
    One group of commands in a boot phase.

    ``provides``/``consumes`` name shell variables; ``requires`` lists node
    handles that must be materialized before the step may be assembled.
    """

    phase: BootPhase
    commands: tuple[str, ...]
    name: str = ""
    provides: tuple[str, ...] = ()
    consumes: tuple[str, ...] = ()
    refs: tuple[Ref, ...] = ()
    requires: tuple[Handle, ...] = ()


@dataclass(frozen=True)
class BootScript:
    """Assembled script text plus the refs its placeholders stand for."""

    lines: tuple[str, ...]
    refs: tuple[Ref, ...] = ()

    @property
    def text(self) -> str:
        return "\n".join(self.lines) + "\n"

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.text.encode()).hexdigest()

    def to_sub(self) -> Sub:
        """
        Render for ``Fn::Sub``.

        Placeholders that are not refs are shell expansions and get escaped.
        """
        known = {ref.sub_expr()[2:-1] for ref in self.refs}

        def escape(match: re.Match[str]) -> str:
            name = match.group(1)
            return match.group(0) if name in known else f"${{!{name}}}"

        return Sub(_PLACEHOLDER.sub(escape, self.text), self.refs)

    def to_user_data(self) -> dict:
        return {"Fn::Base64": self.to_sub()}


def credential_retrieval_step(
    credential: CredentialHandle,
    database: DatabaseHandle,
    region: str | None = None,
    variables: dict[str, str] | None = None,
) -> BootStep:
    """
    Fetch the credential pair at boot through the AWS CLI.

    Only the secret's reference is written into the script; the value is
    resolved by the instance when it runs.
    """
    variables = variables or {
        credential.username_key: "DB_USER",
        credential.generated_key: "DB_PASS",
    }
    region_flag = f" --region {region}" if region else ""
    host = database.endpoint_address

    commands = [
        "DB_SECRET=$(aws secretsmanager get-secret-value "
        f"--secret-id {credential.reference}{region_flag} "
        "--query SecretString --output text)",
    ]
    for key, var in variables.items():
        commands.append(f"{var}=$(echo \"$DB_SECRET\" | jq -r .{key})")
    commands.append(f"DB_HOST={host}")

    return BootStep(
        phase=BootPhase.CREDENTIALS,
        name="fetch-credentials",
        commands=tuple(commands),
        provides=("DB_SECRET", *variables.values(), "DB_HOST"),
        refs=(credential.reference, host),
        requires=(credential.handle, database.handle),
    )


class BootScriptAssembler:
    """Assemble boot steps into a deterministic script."""

    def __init__(self, context: BuildContext):
        self.context = context

    def assemble(self, steps: list[BootStep], node_id: str = "compute") -> BootScript:
        """
        Order steps by phase and check what each step needs.

        Raises:
            DependencyNotMaterializedError: If a step needs a node that is not
                materialized yet
            UnresolvedReferenceError: If a step consumes a variable no earlier
                step provides
            SecretExposureError: If a command would embed a secret value
        """
        ordered = sorted(steps, key=lambda s: s.phase)
        provided: set[str] = set()
        lines: list[str] = list(SCRIPT_HEADER)
        refs: list[Ref] = []
        emitted = {intent.logical_id for intent in self.context.intents}

        for step in ordered:
            label = step.name or step.phase.name.lower()
            for handle in step.requires:
                if not self.context.is_materialized(handle):
                    raise DependencyNotMaterializedError(
                        f"Boot step '{label}' needs {handle}, which is not materialized",
                        node_id=node_id,
                    )
            self._check_commands(step, label, node_id, emitted)

            missing = [v for v in step.consumes if v not in provided]
            if missing:
                raise UnresolvedReferenceError(
                    f"Boot step '{label}' consumes {missing} before any step provides them",
                    node_id=node_id,
                )

            lines.append(f"# {step.phase.name.lower()}: {label}")
            lines.extend(step.commands)
            provided.update(step.provides)
            for ref in step.refs:
                if ref not in refs:
                    refs.append(ref)

        return BootScript(lines=tuple(lines), refs=tuple(refs))

    @staticmethod
    def _check_commands(step: BootStep, label: str, node_id: str, emitted: set[str]) -> None:
        ref_exprs = {ref.sub_expr() for ref in step.refs}
        for command in step.commands:
            if _DYNAMIC_SECRET.search(command):
                raise SecretExposureError(
                    f"Boot step '{label}' embeds a resolved secret reference", node_id=node_id
                )
            if _SECRET_FETCH.search(command) and step.phase != BootPhase.CREDENTIALS:
                raise TopologyConfigError(
                    f"Boot step '{label}' fetches a secret outside the credentials phase",
                    node_id=node_id,
                )
            for placeholder in _PLACEHOLDER.findall(command):
                expr = f"${{{placeholder}}}"
                # anything not naming an emitted intent is a shell expansion
                if placeholder.split(".", 1)[0] in emitted and expr not in ref_exprs:
                    raise UnresolvedReferenceError(
                        f"Boot step '{label}' uses {expr} without declaring the ref",
                        node_id=node_id,
                    )


__all__ = [
    "BootPhase",
    "BootStep",
    "BootScript",
    "BootScriptAssembler",
    "credential_retrieval_step",
    "SCRIPT_HEADER",
]
