"""
stackweave - declarative topology assembler for multi-tier web stacks.

Wires network fabric, trust boundaries, certificates, credentials, edge,
compute, database and DNS nodes into an ordered list of resource intents
for an external provisioning engine.

Usage:
    from stackweave import TopologyAssembler, load_topology_config

    config = load_topology_config(Path("stackweave.toml"))
    plan = TopologyAssembler(config).synthesize()
"""

from __future__ import annotations

from ._version import get_version
from .assembler import TopologyAssembler, synthesize
from .config import TopologyConfig, load_topology_config
from .context import BuildContext, Handle, NodeKind
from .errors import FailureReport, SynthesisAborted, TopologyError
from .intents import Ref, ResourceIntent, SynthesisPlan

__version__ = get_version()

__all__ = [
    "__version__",
    # Configuration
    "TopologyConfig",
    "load_topology_config",
    # Assembly
    "TopologyAssembler",
    "synthesize",
    "BuildContext",
    "Handle",
    "NodeKind",
    # Output
    "Ref",
    "ResourceIntent",
    "SynthesisPlan",
    # Errors
    "TopologyError",
    "SynthesisAborted",
    "FailureReport",
]
