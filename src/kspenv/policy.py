"""Policy configuration and enforcement helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from kspenv.errors import PolicyError

NetworkMode = Literal["online", "offline"]


@dataclass(frozen=True, slots=True)
class Policy:
    require_frozen_lock: bool = False
    require_integrity: bool = True
    network_mode: NetworkMode = "online"
    floating_search_days: int = 14


def ensure_frozen_policy(*, policy: Policy, frozen: bool) -> None:
    if policy.require_frozen_lock and not frozen:
        raise PolicyError(
            "Frozen lock mode is required by policy.",
            hint="Call outputs(frozen=True) or relax policy.require_frozen_lock.",
            context={"operation": "derive"},
        )


def ensure_network_allowed(*, policy: Policy, operation: str) -> None:
    if policy.network_mode == "offline":
        raise PolicyError(
            "Network operations are disabled by policy.",
            hint="Switch policy.network_mode to 'online' for this operation.",
            context={"operation": operation},
        )
