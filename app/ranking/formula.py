from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RankingFormula:
    """
    排序公式参数

    每个命中标签贡献 base_tag_score + quality×quality_scaling×quality_weight
    + personalization×personalization_weight。
    """

    name: str
    base_tag_score: float = 10.0
    quality_scaling: float = 1.0
    quality_weight: float = 20.0
    personalization_weight: float = 0.0

    @property
    def uses_personalization(self) -> bool:
        return self.personalization_weight > 0


STANDARD = RankingFormula(name="standard")
PERSONALIZED = RankingFormula(name="personalized", personalization_weight=20.0)

FORMULAS: dict[str, RankingFormula] = {f.name: f for f in (STANDARD, PERSONALIZED)}

# ranking_formula 实验：A = 标准公式（对照组），B = 个性化公式
VARIANT_FORMULAS: dict[str, RankingFormula] = {"A": STANDARD, "B": PERSONALIZED}


def get_formula(name: str) -> RankingFormula:
    formula = FORMULAS.get((name or "").strip().lower())
    if formula is None:
        raise ValueError(f"未知排序公式: {name}，可选: {sorted(FORMULAS)}")
    return formula


def formula_for_variant(variant: Optional[str]) -> RankingFormula:
    if variant is None:
        return STANDARD
    return VARIANT_FORMULAS.get(str(getattr(variant, "value", variant)), STANDARD)
