from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from app.abtest.recorder import ExposureRecord

CONTROL_VARIANT = "A"


def normal_cdf(x: float) -> float:
    return 0.5 * (1 + math.erf(x / math.sqrt(2)))


def two_proportion_p_value(successes_a: int, n_a: int, successes_b: int, n_b: int) -> float:
    """双比例 z 检验的双侧 p-value（合并方差）。"""
    if n_a <= 0 or n_b <= 0:
        return float("nan")
    p_a = successes_a / n_a
    p_b = successes_b / n_b
    pooled = (successes_a + successes_b) / (n_a + n_b)
    se = math.sqrt(pooled * (1 - pooled) * (1 / n_a + 1 / n_b))
    # 合并比例为 0 或 1 时标准误才为 0，此时两组比例必然相同
    if se == 0:
        return 1.0
    z = (p_b - p_a) / se
    return 2.0 * (1.0 - normal_cdf(abs(z)))


@dataclass(frozen=True)
class VariantResult:
    variant: str
    views: int
    clicks: int
    contacts: int
    orders: int
    conversion_rate: float
    is_winner: bool
    p_value: float


def compute_variant_results(exposures: Iterable["ExposureRecord"]) -> list[VariantResult]:
    """
    按 variant 汇总曝光：views = 曝光数，orders = 已转化数，conversionRate = orders / views。

    最高转化率 > 0 时，转化率等于最高值的 variant 都标记为 winner。
    """
    counts: dict[str, dict[str, int]] = defaultdict(lambda: {"views": 0, "clicks": 0, "contacts": 0, "orders": 0})
    for record in exposures:
        bucket = counts[record.variant]
        bucket["views"] += 1
        bucket["clicks"] += int(record.clicked)
        bucket["contacts"] += int(record.contacted)
        bucket["orders"] += int(record.converted)

    if not counts:
        return []

    rates = {v: (c["orders"] / c["views"] if c["views"] else 0.0) for v, c in counts.items()}
    max_rate = max(rates.values())
    control = counts.get(CONTROL_VARIANT)

    results: list[VariantResult] = []
    for variant, c in counts.items():
        if variant == CONTROL_VARIANT or control is None:
            p_value = float("nan")
        else:
            p_value = two_proportion_p_value(control["orders"], control["views"], c["orders"], c["views"])
        results.append(
            VariantResult(
                variant=variant,
                views=c["views"],
                clicks=c["clicks"],
                contacts=c["contacts"],
                orders=c["orders"],
                conversion_rate=rates[variant],
                is_winner=max_rate > 0 and rates[variant] == max_rate,
                p_value=p_value,
            )
        )
    results.sort(key=lambda r: (-r.conversion_rate, r.variant))
    return results
