"""
Context-aware distractor generation.

Wrong answer options are drawn from strategies that model the mistakes
learners actually make on multiplication facts:

- FactorVariation: a neighbouring fact in the same table (7x6 instead of 7x7)
- ArithmeticError: adding instead of multiplying, digit slips, off-by-one
- TableConfusion: values from nearby rows, columns and diagonals of the table

Each enabled strategy contributes in proportion to its weight; any shortfall
is filled with small random offsets around the correct answer.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar

from loguru import logger

from src.fluency.models import Fact, QuestionChoice

# =============================================================================
# Configuration
# =============================================================================


@dataclass
class DistractorGenerationConfig:
    """Strategy weights and value limits for distractor generation."""

    # Strategy weights (normalized before use)
    factor_variation_weight: float = 0.4
    arithmetic_error_weight: float = 0.3
    table_confusion_weight: float = 0.2
    fallback_random_weight: float = 0.1

    # Strategy toggles
    enable_factor_variation: bool = True
    enable_arithmetic_error: bool = True
    enable_table_confusion: bool = True

    # Limits
    max_distractors_per_strategy: int = 2
    min_distractor_value: int = 0
    max_distractor_value: int = 144
    fallback_random_range: int = 5

    def normalized_weights(self) -> dict[str, float]:
        weights = {
            "FactorVariation": self.factor_variation_weight,
            "ArithmeticError": self.arithmetic_error_weight,
            "TableConfusion": self.table_confusion_weight,
            "FallbackRandom": self.fallback_random_weight,
        }
        total = sum(weights.values())
        if total <= 0:
            return {name: 0.0 for name in weights}
        return {name: weight / total for name, weight in weights.items()}


@dataclass
class DistractorContext:
    """Per-question state shared by the strategies."""

    max_factor: int
    used_values: set[int] = field(default_factory=set)
    distractors_needed: int = 3


# =============================================================================
# Strategies
# =============================================================================


class DistractorStrategy(ABC):
    """
    Base class for distractor strategies.

    Subclasses produce raw candidates in preference order; the base filters
    them to valid, unused, distinct values and applies the per-strategy cap.
    """

    name: ClassVar[str] = "base"

    def __init__(self, config: DistractorGenerationConfig):
        self.config = config

    @property
    @abstractmethod
    def is_enabled(self) -> bool: ...

    def generate_distractors(self, fact: Fact, context: DistractorContext) -> list[int]:
        if not self.is_enabled:
            return []
        result: list[int] = []
        for value in self._generate_candidates(fact, fact.answer, context):
            if len(result) >= self.config.max_distractors_per_strategy:
                break
            if self.is_valid(value, context) and value not in result:
                result.append(value)
        return result

    def is_valid(self, value: int, context: DistractorContext) -> bool:
        return (
            self.config.min_distractor_value <= value <= self.config.max_distractor_value
            and value not in context.used_values
        )

    @abstractmethod
    def _generate_candidates(self, fact: Fact, answer: int, context: DistractorContext) -> list[int]:
        """Raw candidate values, most plausible first."""
        ...


class FactorVariationStrategy(DistractorStrategy):
    """Products of a factor nudged by one or two, doubled, halved or squared."""

    name = "FactorVariation"

    @property
    def is_enabled(self) -> bool:
        return self.config.enable_factor_variation

    def _generate_candidates(self, fact: Fact, answer: int, context: DistractorContext) -> list[int]:
        a, b, limit = fact.factor_a, fact.factor_b, context.max_factor
        candidates: list[int] = []

        for delta in (1, -1, 2, -2):
            if 0 <= b + delta <= limit:
                candidates.append(a * (b + delta))
        for delta in (1, -1, 2, -2):
            if 0 <= a + delta <= limit:
                candidates.append((a + delta) * b)

        if a * 2 <= limit:
            candidates.append(a * 2 * b)
        if b * 2 <= limit:
            candidates.append(a * b * 2)
        if a > 0 and a % 2 == 0:
            candidates.append((a // 2) * b)
        if b > 0 and b % 2 == 0:
            candidates.append(a * (b // 2))

        if a != b:
            candidates.extend([a * a, b * b])

        return [value for value in candidates if value != answer]


_VISUAL_CONFUSIONS = {6: 9, 9: 6, 1: 7, 7: 1, 3: 8, 8: 3}


class ArithmeticErrorStrategy(DistractorStrategy):
    """Values produced by common procedural slips."""

    name = "ArithmeticError"

    @property
    def is_enabled(self) -> bool:
        return self.config.enable_arithmetic_error

    def _generate_candidates(self, fact: Fact, answer: int, context: DistractorContext) -> list[int]:
        a, b = fact.factor_a, fact.factor_b
        candidates: list[int] = [a + b]

        # digits written side by side
        if a < 10 and b < 10:
            candidates.append(int(f"{a}{b}"))
            candidates.append(int(f"{b}{a}"))

        if a in _VISUAL_CONFUSIONS:
            candidates.append(_VISUAL_CONFUSIONS[a] * b)
        if b in _VISUAL_CONFUSIONS:
            candidates.append(a * _VISUAL_CONFUSIONS[b])

        if answer > 1:
            candidates.append(answer - 1)
        candidates.append(answer + 1)
        if answer >= 10:
            candidates.append(answer - 10)
        candidates.append(answer + 10)

        # tens digit multiplied without its place value
        if a >= 10:
            candidates.append((a // 10) * b + (a % 10) * b)
        if b >= 10:
            candidates.append(a * (b // 10) + a * (b % 10))

        if a >= b and a - b > 0:
            candidates.append(a - b)

        return [value for value in candidates if value != answer]


class TableConfusionStrategy(DistractorStrategy):
    """Neighbouring cells of the multiplication table."""

    name = "TableConfusion"

    @property
    def is_enabled(self) -> bool:
        return self.config.enable_table_confusion

    def _generate_candidates(self, fact: Fact, answer: int, context: DistractorContext) -> list[int]:
        a, b, limit = fact.factor_a, fact.factor_b, context.max_factor
        candidates: list[int] = self._nearby_table_values(answer, limit)[:4]

        candidates.extend(a * other for other in range(1, limit + 1) if other != b)
        candidates.extend(other * b for other in range(1, limit + 1) if other != a)

        if a <= limit:
            candidates.append(a * a)
        if b <= limit:
            candidates.append(b * b)

        if a > 1 and b > 1:
            candidates.append((a - 1) * (b - 1))
        if a < limit and b < limit:
            candidates.append((a + 1) * (b + 1))
        if a > 1 and b < limit:
            candidates.append((a - 1) * (b + 1))
        if a < limit and b > 1:
            candidates.append((a + 1) * (b - 1))

        candidates.extend(self._fact_family_confusions(a, b, answer))
        return [value for value in candidates if value != answer]

    @staticmethod
    def _nearby_table_values(answer: int, limit: int) -> list[int]:
        products = {x * y for x in range(1, limit + 1) for y in range(1, limit + 1)}
        nearby = [value for value in products if 1 <= abs(value - answer) <= 10]
        return sorted(nearby, key=lambda value: (abs(value - answer), value))

    @staticmethod
    def _fact_family_confusions(a: int, b: int, answer: int) -> list[int]:
        candidates: list[int] = []
        if 10 in (a, b):
            # dropped the trailing zero
            candidates.append(b if a == 10 else a)
        if 5 in (a, b):
            if answer >= 5:
                candidates.append(answer - 5)
            candidates.append(answer + 5)
        if 9 in (a, b):
            other = b if a == 9 else a
            if other > 1:
                tens, ones = other - 1, 10 - other
                if tens > 0:
                    candidates.append(tens * 10 + ones + 1)
                if ones > 0:
                    candidates.append((tens + 1) * 10 + ones)
        return candidates


# =============================================================================
# Generator
# =============================================================================


class ContextAwareDistractorGenerator:
    """Builds four shuffled options with exactly one correct answer."""

    OPTION_COUNT = 4

    def __init__(
        self,
        config: DistractorGenerationConfig | None = None,
        max_factor: int = 10,
        rng: random.Random | None = None,
    ):
        self.config = config or DistractorGenerationConfig()
        self.max_factor = max_factor
        self.rng = rng or random.Random()
        self.strategies: list[DistractorStrategy] = [
            FactorVariationStrategy(self.config),
            ArithmeticErrorStrategy(self.config),
            TableConfusionStrategy(self.config),
        ]

    def generate_answer_options(self, fact: Fact) -> list[QuestionChoice]:
        """
        Generate the multiple-choice options for a fact.

        Args:
            fact: The fact being asked

        Returns:
            Shuffled choices, exactly one of them correct
        """
        answer = fact.answer
        context = DistractorContext(max_factor=max(self.max_factor, fact.factor_a, fact.factor_b))
        context.used_values.add(answer)
        needed = self.OPTION_COUNT - 1
        context.distractors_needed = needed

        distractors = self._from_strategies(fact, context)[:needed]
        context.used_values.update(distractors)

        if len(distractors) < needed:
            distractors.extend(self._fallback_offsets(answer, context, needed - len(distractors)))
        while len(distractors) < needed:
            value = self._random_distractor(answer, context)
            if value is None:
                value = self._nearest_unused(answer, context)
            distractors.append(value)
            context.used_values.add(value)

        options = [QuestionChoice(value=answer, is_correct=True)]
        options.extend(QuestionChoice(value=value, is_correct=False) for value in distractors)
        self.rng.shuffle(options)
        return options

    def _from_strategies(self, fact: Fact, context: DistractorContext) -> list[int]:
        weights = self.config.normalized_weights()
        collected: list[int] = []
        for strategy in self.strategies:
            weight = weights.get(strategy.name, 0.0)
            target = round(weight * context.distractors_needed)
            if not strategy.is_enabled or target <= 0:
                continue
            for value in strategy.generate_distractors(fact, context)[:target]:
                if value not in collected:
                    collected.append(value)
        self.rng.shuffle(collected)
        return collected

    def _is_valid(self, value: int, context: DistractorContext) -> bool:
        return (
            self.config.min_distractor_value <= value <= self.config.max_distractor_value
            and value not in context.used_values
        )

    def _fallback_offsets(self, answer: int, context: DistractorContext, count: int) -> list[int]:
        spread = self.config.fallback_random_range
        values: list[int] = []
        for _ in range(count * 3):
            if len(values) >= count:
                break
            offset = self.rng.randint(-spread, spread)
            if offset == 0:
                offset = self.rng.randint(1, spread) * self.rng.choice((1, -1))
            value = answer + offset
            if self._is_valid(value, context):
                values.append(value)
                context.used_values.add(value)
        return values

    def _random_distractor(self, answer: int, context: DistractorContext) -> int | None:
        spread = self.config.fallback_random_range
        for _ in range(50):
            offset = self.rng.randint(-spread, spread)
            if offset != 0 and self._is_valid(answer + offset, context):
                return answer + offset
        return None

    def _nearest_unused(self, answer: int, context: DistractorContext) -> int:
        distance = 1
        while True:
            for value in (answer + distance, answer - distance):
                if self._is_valid(value, context):
                    return value
            distance += 1
            if distance > self.config.max_distractor_value + answer + 1:
                logger.warning(f"Distractor range exhausted for answer {answer}")
                return answer + distance
