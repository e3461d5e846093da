"""
archipelago: island-model coordination for population-based search
"""

from archipelago._version import __version__
from archipelago.config import Config, IslandsConfig, WorkerConfig, load_config
from archipelago.coordinator import Coordinator
from archipelago.criteria import Criterion, partition_criteria, split_array
from archipelago.exceptions import ArchipelagoError, RegistrationError, UnknownIslandError
from archipelago.identity import IslandId
from archipelago.meta import MaxIterations, MetaDriver, TargetFitness, TimeBudget
from archipelago.selection import EmigrantSelection, MigrantSelector, create_selector
from archipelago.state import IslandState, StateInfo
from archipelago.topology import (
    HypercubeTopology,
    RandomTopology,
    RingTopology,
    Topology,
    TopologyKind,
    create_topology,
)
from archipelago.worker import IslandWorker, WorkerSettings

__all__ = [
    "__version__",
    # Configuration
    "Config",
    "IslandsConfig",
    "WorkerConfig",
    "load_config",
    # Identity and state
    "IslandId",
    "IslandState",
    "StateInfo",
    # Overlay
    "Topology",
    "TopologyKind",
    "RingTopology",
    "RandomTopology",
    "HypercubeTopology",
    "create_topology",
    # Migration
    "EmigrantSelection",
    "MigrantSelector",
    "create_selector",
    # Islands
    "IslandWorker",
    "WorkerSettings",
    "Criterion",
    "split_array",
    "partition_criteria",
    # Drivers
    "Coordinator",
    "MetaDriver",
    "MaxIterations",
    "TargetFitness",
    "TimeBudget",
    # Errors
    "ArchipelagoError",
    "UnknownIslandError",
    "RegistrationError",
]
