"""
Point Ingestion Policies
========================

Decide which incoming fixes become route points.

Two rules are available: exact-coordinate deduplication and a minimum
interval between accepted fixes. Both are off by default, which accepts
every fix; live GPS hardware already throttles its own update rate.

Usage:
    policy = PointIngestionPolicy(min_interval_ms=10_000, dedup=True)
    decision = policy.evaluate(fix, session.points, now)
    if decision.accepted:
        ...
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Protocol

if TYPE_CHECKING:
    from ..config import IngestionConfig
    from ..domain.models import Position


class RejectReason(str, Enum):
    """Why a fix was not stored."""

    DUPLICATE = "duplicate"
    TOO_FREQUENT = "too_frequent"


@dataclass(frozen=True)
class IngestionDecision:
    accepted: bool
    reason: RejectReason | None = None


ACCEPT = IngestionDecision(accepted=True)


class IngestionPolicy(Protocol):
    """Anything the session can consult before storing a fix."""

    def evaluate(
        self, position: Position, points: Sequence[Position], now_ms: int
    ) -> IngestionDecision: ...

    def reset(self) -> None: ...


class UnthrottledPolicy:
    """Accepts every fix."""

    def evaluate(
        self, position: Position, points: Sequence[Position], now_ms: int
    ) -> IngestionDecision:
        return ACCEPT

    def reset(self) -> None:
        pass


@dataclass
class PointIngestionPolicy:
    """
    Dedup and temporal gating for noisy or low-quality sources.

    ``now_ms`` is read once by the caller per fix, so two fixes delivered
    in the same tick are gated against each other in delivery order.
    """

    LEGACY_MIN_INTERVAL_MS: ClassVar[int] = 10_000

    min_interval_ms: int = 0
    dedup: bool = False
    last_accepted_ms: int | None = None

    def __post_init__(self) -> None:
        if self.min_interval_ms < 0:
            raise ValueError("min_interval_ms must be >= 0")

    @classmethod
    def legacy(cls) -> PointIngestionPolicy:
        """10 second gate plus exact-coordinate dedup."""
        return cls(min_interval_ms=cls.LEGACY_MIN_INTERVAL_MS, dedup=True)

    @property
    def is_unthrottled(self) -> bool:
        return self.min_interval_ms == 0 and not self.dedup

    def evaluate(
        self, position: Position, points: Sequence[Position], now_ms: int
    ) -> IngestionDecision:
        if self.dedup and any(
            p.lat == position.lat and p.lng == position.lng for p in points
        ):
            return IngestionDecision(False, RejectReason.DUPLICATE)

        if (
            self.min_interval_ms > 0
            and self.last_accepted_ms is not None
            and now_ms - self.last_accepted_ms < self.min_interval_ms
        ):
            return IngestionDecision(False, RejectReason.TOO_FREQUENT)

        self.last_accepted_ms = now_ms
        return ACCEPT

    def reset(self) -> None:
        self.last_accepted_ms = None


def policy_from_config(cfg: IngestionConfig) -> IngestionPolicy:
    """Build the policy described by the ``ingestion`` config section."""
    policy = PointIngestionPolicy(min_interval_ms=cfg.min_interval_ms, dedup=cfg.dedup)
    if policy.is_unthrottled:
        return UnthrottledPolicy()
    return policy
