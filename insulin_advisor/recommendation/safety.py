"""Advisory safety checks on a new recommendation.

Nothing here blocks a recommendation: results are surfaced to the caller
for display only.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

from insulin_advisor.models.entry import Entry
from insulin_advisor.recommendation.patterns import normalize_brand, parse_dose

DEFAULT_DOSE_DIFFERENCE_THRESHOLD = 0.2
DEFAULT_MAX_SAFE_DOSE = 50.0


@dataclass(frozen=True)
class DoseCheck:
    new_dose: float
    prior_dose: Optional[float]
    ratio: Optional[float]
    threshold: float
    warning: Optional[str] = None

    @property
    def exceeds_threshold(self) -> bool:
        return self.warning is not None


@dataclass
class SafetyAssessment:
    dose_check: Optional[DoseCheck] = None
    warnings: list[str] = field(default_factory=list)


def dose_difference_ratio(new_dose: float, prior_dose: float) -> Optional[float]:
    """abs(new - prior) / prior, or None when there is no usable prior dose."""
    if prior_dose <= 0:
        return None
    return abs(new_dose - prior_dose) / prior_dose


def check_dose_difference(
    new_dose: float,
    prior_dose: Optional[float],
    threshold: float = DEFAULT_DOSE_DIFFERENCE_THRESHOLD,
) -> DoseCheck:
    """Flag a dose that differs from the prior comparable dose by more than ``threshold``."""
    ratio = dose_difference_ratio(new_dose, prior_dose) if prior_dose is not None else None
    warning = None
    if ratio is not None and ratio > threshold:
        warning = (
            f"Recommended dose of {new_dose:g} IU differs by {ratio * 100:.1f}% from the last "
            f"dose of {prior_dose:g} IU. Please review carefully."
        )
    return DoseCheck(
        new_dose=new_dose,
        prior_dose=prior_dose,
        ratio=ratio,
        threshold=threshold,
        warning=warning,
    )


def find_prior_dose(entries: Sequence[Entry], medication_name: Optional[str] = None) -> Optional[float]:
    """Most recent insulin dose for the same medication.

    Brands compare case-insensitively. Returns None without a medication name
    or when no insulin entry matches it, so doses of different insulins are
    never compared.
    """
    wanted = normalize_brand(medication_name)
    if not wanted:
        return None

    insulin = sorted(
        (e for e in entries if e.entry_type == "insulin" and parse_dose(e.value) is not None),
        key=lambda e: e.occurred_at,
        reverse=True,
    )
    for entry in insulin:
        brand = normalize_brand(getattr(entry, "medication_brand", None))
        if brand and brand.lower() == wanted.lower():
            return parse_dose(entry.value)
    return None


def assess_recommendation(
    dose_units: Optional[float],
    medication_name: Optional[str],
    entries: Sequence[Entry],
    threshold: float = DEFAULT_DOSE_DIFFERENCE_THRESHOLD,
    max_safe_dose: float = DEFAULT_MAX_SAFE_DOSE,
) -> SafetyAssessment:
    """Run all advisory checks for a recommendation."""
    assessment = SafetyAssessment()
    if dose_units is None:
        return assessment

    if dose_units < 0 or dose_units > max_safe_dose:
        assessment.warnings.append(
            f"Recommended dose is outside safe range (0-{max_safe_dose:g} IU)"
        )

    check = check_dose_difference(dose_units, find_prior_dose(entries, medication_name), threshold)
    assessment.dose_check = check
    if check.warning:
        assessment.warnings.append(check.warning)

    return assessment
