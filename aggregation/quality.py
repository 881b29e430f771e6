"""Plausibility checks for heat-pump measurement rows.

COP values outside the realistic range are almost certainly entry or meter
errors and would distort every chart they end up in, so they are screened
out before aggregation. Hourly, daily and monthly rows share the same rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from filters.resolve import FilterValueResolver, default_resolver
from log_config import get_logger

logger = get_logger(__name__)

COP_MIN_REALISTIC = 0.0
COP_MAX_REALISTIC = 8.0
DEFAULT_COP_BOUNDS = (COP_MIN_REALISTIC, COP_MAX_REALISTIC)


@dataclass(frozen=True)
class QualityIssue:
    kind: str
    message: str
    severity: str


@dataclass(frozen=True)
class QualityResult:
    issues: List[QualityIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.issues


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return None if value != value else value


def is_realistic_cop(value: Any, bounds: Tuple[float, float] = DEFAULT_COP_BOUNDS) -> bool:
    """Missing values count as realistic: no data is not bad data."""
    cop = _number(value)
    if cop is None:
        return True
    return bounds[0] <= cop <= bounds[1]


def _cop_issue(label: str, cop: float, bounds: Tuple[float, float]) -> QualityIssue:
    if cop > bounds[1]:
        text = f"{label} {cop:.1f} is unrealistically high (>{bounds[1]})"
    else:
        text = f"{label} {cop:.1f} is unrealistically low (<{bounds[0]})"
    return QualityIssue("unrealistic_cop", text, "error")


def validate_measurement(
    row: Mapping[str, Any],
    bounds: Tuple[float, float] = DEFAULT_COP_BOUNDS,
    resolver: Optional[FilterValueResolver] = None,
) -> QualityResult:
    issues: List[QualityIssue] = []
    value_of = resolver or default_resolver

    for field_name, label in (("az", "COP"), ("az_heating", "COP Heating")):
        cop = _number(value_of(row, field_name))
        if cop is not None and not is_realistic_cop(cop, bounds):
            issues.append(_cop_issue(label, cop, bounds))

    electrical = _number(row.get("electrical_energy_kwh"))
    if electrical is not None and electrical < 0:
        issues.append(QualityIssue("negative_value", "Electrical energy cannot be negative", "error"))

    thermal = _number(row.get("thermal_energy_kwh"))
    if thermal is not None and thermal < 0:
        # Defrost cycles can produce this legitimately.
        issues.append(
            QualityIssue(
                "negative_value",
                "Thermal energy can be negative during defrosting but is excluded from the statistics",
                "warning",
            )
        )

    return QualityResult(issues)


def filter_realistic_rows(
    rows: Iterable[Mapping[str, Any]],
    bounds: Tuple[float, float] = DEFAULT_COP_BOUNDS,
    resolver: Optional[FilterValueResolver] = None,
) -> List[Mapping[str, Any]]:
    """Drop rows with an unrealistic COP or negative electrical energy.

    ``resolver`` reads ``az``/``az_heating``, e.g. to compute them from energies.
    """
    value_of = resolver or default_resolver
    kept: List[Mapping[str, Any]] = []
    dropped = 0
    for row in rows:
        electrical = _number(row.get("electrical_energy_kwh"))
        if (
            not is_realistic_cop(value_of(row, "az"), bounds)
            or not is_realistic_cop(value_of(row, "az_heating"), bounds)
            or (electrical is not None and electrical < 0)
        ):
            dropped += 1
            continue
        kept.append(row)

    if dropped:
        logger.info("Excluded %d rows with implausible readings", dropped)
    return kept
