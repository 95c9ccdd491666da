"""
Discharge Portal - Role-Based Access Control (RBAC)

Maps protected operations to the roles allowed to invoke them.
Policies are defined in policies.yaml and enforced by RequireAccess.

Security:
- Deny-by-default: an unknown operation admits no role
- No role hierarchy; every grant is explicit
- Unknown role names in the file are rejected at load time
"""

from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Mapping

import yaml

from discharge_backend.auth.models import Role


class AccessPolicy:
    """
    Operation -> allowed roles.

    Built once at startup and shared through app.state; tests build their
    own from a mapping.

    Usage:
        policy = AccessPolicy.from_yaml("gateway/policies.yaml")
        policy.allowed_roles("users:unlock")
    """

    def __init__(self, operations: Mapping[str, Iterable[str]]):
        self._operations: Dict[str, FrozenSet[Role]] = {
            name: frozenset(Role(role) for role in roles or [])
            for name, roles in operations.items()
        }

    @classmethod
    def from_yaml(cls, path: str) -> "AccessPolicy":
        policy_path = Path(path)
        if not policy_path.exists():
            # Default deny-all if no policy file
            return cls({})

        with open(policy_path, "r") as f:
            config = yaml.safe_load(f) or {}

        return cls(config.get("operations", {}) or {})

    def allowed_roles(self, operation: str) -> FrozenSet[Role]:
        return self._operations.get(operation, frozenset())

    def is_allowed(self, operation: str, role: Role) -> bool:
        return role in self.allowed_roles(operation)

    @property
    def operations(self) -> FrozenSet[str]:
        return frozenset(self._operations)
