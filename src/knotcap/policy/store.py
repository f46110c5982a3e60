"""PolicyStore — cached access to stored policies, passed explicitly to callers."""

from __future__ import annotations

import logging

from knotcap.policy.evaluator import PolicyEvaluator
from knotcap.policy.models import Policy, Strategy, now_string
from knotcap.policy.parser import load_policy_from_string
from knotcap.storage.repos import PolicyRepo

logger = logging.getLogger(__name__)

DEFAULT_POLICY_NAME = "Knot(Default)"


def default_policy() -> Policy:
    """Pass everything through directly, except what the deny-list names."""
    policy = Policy()
    policy.name = DEFAULT_POLICY_NAME
    policy.default_strategy = Strategy.DIRECT
    policy.denylist_enabled = True
    policy.author = "Knot"
    policy.created_at = now_string()
    return policy


class PolicyStore:
    """Policies keyed by name, loaded from and saved to a ``PolicyRepo``.

    The active policy is always chosen by the caller (``current_id``); the
    store itself holds no notion of a current policy.
    """

    def __init__(self, repo: PolicyRepo) -> None:
        self._repo = repo
        self._policies: dict[str, Policy] = {}
        self._default: Policy | None = None

    async def load(self) -> None:
        rows = await self._repo.list_all()
        self._policies = {
            row["name"]: load_policy_from_string(row["content"]) for row in rows
        }
        logger.debug("Loaded %d stored policies", len(self._policies))

    async def save(self, policy: Policy, name: str | None = None) -> str:
        key = name or policy.name
        if not key:
            raise ValueError("Policy has no name")
        await self._repo.save(key, policy.text)
        self._policies[key] = policy
        return key

    async def delete(self, name: str) -> bool:
        self._policies.pop(name, None)
        return await self._repo.delete(name)

    def get(self, name: str) -> Policy | None:
        return self._policies.get(name)

    def names(self) -> list[str]:
        return sorted(self._policies)

    def resolve(self, current_id: str | None) -> Policy:
        """The named policy, or the built-in default when absent."""
        if current_id:
            policy = self._policies.get(current_id)
            if policy is not None:
                return policy
            logger.warning("Policy %r not found, using default", current_id)
        if self._default is None:
            self._default = default_policy()
        return self._default

    def evaluator(self, current_id: str | None) -> PolicyEvaluator:
        return PolicyEvaluator(self.resolve(current_id))
