from __future__ import annotations

from dataclasses import dataclass

# role name -> default HTTP port
ROLE_PORTS = {
    "api": 8000,
    "worker-reconcile": 8100,
}
SUPPORTED_ROLES = tuple(ROLE_PORTS)

WORKER_ROLES = frozenset({"worker-reconcile"})


@dataclass(frozen=True)
class RuntimeRole:
    name: str

    @property
    def runs_worker(self) -> bool:
        return self.name in WORKER_ROLES

    @property
    def default_port(self) -> int:
        return ROLE_PORTS[self.name]


def validate_role(role: str) -> RuntimeRole:
    if role not in ROLE_PORTS:
        raise ValueError(f"Unsupported role '{role}'. Supported roles: {', '.join(SUPPORTED_ROLES)}.")
    return RuntimeRole(name=role)
