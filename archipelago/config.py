"""
Configuration handling for archipelago
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from archipelago.criteria import DEFAULT_CRITERIA
from archipelago.identity import DEFAULT_CLIENT_PREFIX, META_SUFFIX, IslandId
from archipelago.selection import EmigrantSelection
from archipelago.topology import TopologyKind


@dataclass
class IslandsConfig:
    """Configuration of the island fleet and of migration"""

    # Overlay
    topology: str = TopologyKind.RING.value  # Options: "ring", "random", "hypercube"
    num_clients: int = 4  # Hypercube only supports 2, 4 or 8

    # Identities
    client_prefix: str = DEFAULT_CLIENT_PREFIX
    meta_suffix: str = META_SUFFIX

    # Migration
    migrants_iteration_frequency: int = 5  # Migrate every N iterations, 0 disables migration
    migrants_communication_rate: int = 3  # Max individuals per migration
    emigrant_selection: str = EmigrantSelection.BEST_K.value  # "best_k", "rank", "random_k"
    rank_bias: float = 1.7

    # Give each island its own share of the criteria
    different_criteria_per_client: bool = False

    # Island receiving every island's best solutions (defaults to index 0)
    aggregator_id: str | None = None

    # Distributed mode
    registration_timeout: float = 60.0  # Seconds to wait for all islands to register
    remote_call_timeout: float = 30.0  # Seconds before a remote call counts as failed
    ray_namespace: str = "archipelago"
    ray_address: str | None = None  # None starts a local Ray instance

    def __post_init__(self):
        self.topology = str(self.topology).lower()
        self.emigrant_selection = str(self.emigrant_selection).lower()
        if self.topology not in {t.value for t in TopologyKind}:
            raise ValueError(f"Unknown topology: {self.topology!r}")
        if self.emigrant_selection not in {s.value for s in EmigrantSelection}:
            raise ValueError(f"Unknown emigrant selection: {self.emigrant_selection!r}")
        if self.num_clients < 1:
            raise ValueError(f"num_clients must be positive, got {self.num_clients}")
        if self.migrants_iteration_frequency < 0:
            raise ValueError(
                f"migrants_iteration_frequency must be >= 0, got {self.migrants_iteration_frequency}"
            )
        if self.migrants_communication_rate < 1:
            raise ValueError(
                f"migrants_communication_rate must be positive, got {self.migrants_communication_rate}"
            )

    @property
    def migration_enabled(self) -> bool:
        return self.migrants_iteration_frequency > 0

    def aggregator(self, suffix: str = "") -> IslandId:
        """
        Identity of the island that collects best solutions.

        ``aggregator_id`` may be written in either the distributed form
        (``ClientNode1``) or the meta form (``ClientNode1x``); only its index
        is used, and the id is rebuilt with ``suffix``.

        Raises:
            ValueError: if ``aggregator_id`` has no index after ``client_prefix``
        """
        if not self.aggregator_id:
            return IslandId(self.client_prefix, 0, suffix)
        text = str(self.aggregator_id)
        written_suffix = ""
        for candidate in (suffix, self.meta_suffix):
            if candidate and text.endswith(candidate):
                written_suffix = candidate
                break
        parsed = IslandId.parse(text, prefix=self.client_prefix, suffix=written_suffix)
        return IslandId(self.client_prefix, parsed.index, suffix)


@dataclass
class WorkerConfig:
    """Configuration of the reference OneMax island"""

    population_size: int = 50
    genome_length: int = 64
    mutation_rate: float | None = None  # Defaults to 1 / genome_length
    crossover_rate: float = 0.75
    tournament_size: int = 2
    maximize: bool = True


@dataclass
class Config:
    """Master configuration for archipelago"""

    # General settings
    # Meta-mode: driver turns, one island generation each (about max_iterations / num_clients
    # generations per island). Distributed mode: generations per island.
    max_iterations: int = 100
    random_seed: int | None = 42
    log_level: str = "INFO"
    log_dir: str | None = None

    # Search settings handed to the islands
    algorithm: str = "DYNAMOSA"  # Algorithm of the driver as a whole
    sub_algorithm: str = "MOSA"  # Algorithm each meta-mode island runs
    criteria: list[str] = field(default_factory=lambda: [c.value for c in DEFAULT_CRITERIA])

    # Component configurations
    islands: IslandsConfig = field(default_factory=IslandsConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file"""
        with open(path) as f:
            config_dict = yaml.safe_load(f) or {}
        return cls.from_dict(config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "Config":
        """Create configuration from a dictionary"""
        config = Config()

        nested_keys = ["islands", "worker"]

        # Update top-level fields
        for key, value in config_dict.items():
            if key not in nested_keys and hasattr(config, key):
                setattr(config, key, value)

        # Update nested configs
        if "islands" in config_dict:
            config.islands = IslandsConfig(**config_dict["islands"])
        if "worker" in config_dict:
            config.worker = WorkerConfig(**config_dict["worker"])

        return config

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file"""
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a YAML file or use defaults"""
    if config_path and os.path.exists(config_path):
        config = Config.from_yaml(config_path)
    else:
        config = Config()

    # Environment overrides for the Ray cluster, as set by cluster launchers
    ray_address = os.environ.get("ARCHIPELAGO_RAY_ADDRESS")
    if ray_address:
        config.islands.ray_address = ray_address

    return config
