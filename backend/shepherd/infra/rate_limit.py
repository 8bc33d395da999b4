"""Per-actor budgets for outbound messaging, counted in Redis fixed windows."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from shepherd.infra.redis import redis_client


@dataclass(frozen=True)
class Budget:
	kind: str
	used: int
	limit: int
	reset_in: int

	@property
	def allowed(self) -> bool:
		return self.used <= self.limit

	@property
	def remaining(self) -> int:
		return max(0, self.limit - self.used)


class RateLimitExceeded(Exception):
	"""The actor has spent its budget for the current window."""

	def __init__(self, budget: Budget) -> None:
		super().__init__(f"rate_limited:{budget.kind}")
		self.budget = budget

	@property
	def retry_after(self) -> int:
		return self.budget.reset_in


async def consume(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> Budget:
	"""Count one use against ``kind`` for ``actor_id`` and report the budget."""
	window = max(1, int(window_seconds))
	now = time.time() if now is None else now
	slot = int(now // window)
	reset_in = max(1, window - int(now % window))
	if limit <= 0:
		return Budget(kind=kind, used=1, limit=0, reset_in=reset_in)
	key = f"rl:{kind}:{actor_id}:{window}:{slot}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		used, _ = await pipe.execute()
	return Budget(kind=kind, used=int(used), limit=limit, reset_in=reset_in)


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> Budget:
	budget = await consume(kind, actor_id, limit=limit, window_seconds=window_seconds)
	if not budget.allowed:
		raise RateLimitExceeded(budget)
	return budget


__all__ = ["Budget", "RateLimitExceeded", "consume", "enforce"]
