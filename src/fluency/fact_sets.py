"""
Fact set builder.

Builds the canonical multiplication fact sets in play order. The "0-1" set
holds both the zero and one times tables; every other numeric id ``n`` holds
``n x 0 .. n x max_factor``. A fact produced by an earlier set is not repeated
in a later one.
"""

from __future__ import annotations

from loguru import logger

from src.fluency.models import Fact, FactSet

ZERO_AND_ONE_SET_ID = "0-1"


class FactSetBuilder:
    """Build fact sets from a play order and a maximum factor."""

    def __init__(self, fact_set_order: tuple[str, ...] | list[str], max_factor: int):
        self.fact_set_order = tuple(fact_set_order)
        self.max_factor = max_factor

    def build_all(self) -> dict[str, FactSet]:
        """
        Build every configured fact set.

        Returns:
            Mapping of fact set id to FactSet, in play order
        """
        seen: set[str] = set()
        fact_sets: dict[str, FactSet] = {}

        for fact_set_id in self.fact_set_order:
            if fact_set_id in fact_sets:
                logger.warning(f"Fact set {fact_set_id} listed more than once in play order, keeping first")
                continue
            facts = [fact for fact in self._generate(fact_set_id) if fact.id not in seen]
            seen.update(fact.id for fact in facts)
            fact_sets[fact_set_id] = FactSet(id=fact_set_id, facts=tuple(facts))

        logger.debug(
            f"Built {len(fact_sets)} fact sets with {len(seen)} facts (max factor {self.max_factor})"
        )
        return fact_sets

    def _generate(self, fact_set_id: str) -> list[Fact]:
        if fact_set_id == ZERO_AND_ONE_SET_ID:
            facts = [Fact.create(0, i, fact_set_id) for i in range(self.max_factor + 1)]
            facts.extend(Fact.create(1, i, fact_set_id) for i in range(self.max_factor + 1))
            return facts

        if fact_set_id.isdigit():
            factor = int(fact_set_id)
            return [Fact.create(factor, i, fact_set_id) for i in range(self.max_factor + 1)]

        logger.warning(f"Unknown fact set id '{fact_set_id}', no facts generated")
        return []


def build_all_fact_sets(fact_set_order: tuple[str, ...] | list[str], max_factor: int) -> dict[str, FactSet]:
    """Convenience wrapper around FactSetBuilder."""
    return FactSetBuilder(fact_set_order, max_factor).build_all()
