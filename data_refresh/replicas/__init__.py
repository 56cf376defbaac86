"""Secondary replica lifecycle: discovery, teardown and reconstruction."""

from data_refresh.replicas.manager import ReplicaLifecycleManager

__all__ = ["ReplicaLifecycleManager"]
