"""Severity-weighted security scoring.

Computes a provider security score (0-100) by deducting a fixed weight per
violation, derives the risk level, per-framework compliance flags and the
ordered recommendation list for an audit.
"""

from __future__ import annotations

from collections.abc import Iterable

from provider_security.models import Severity, Violation

DEFAULT_FRAMEWORKS: tuple[str, ...] = ("GDPR", "CCPA", "SOC2", "PCI", "HIPAA")

EMERGENCY_NOTES = [
    "URGENT: Address critical security violations immediately",
    "Consider temporarily restricting access until critical issues are resolved",
]
IAM_NOTES = ["Review and strengthen authentication mechanisms"]
ENCRYPTION_NOTES = ["Implement comprehensive encryption strategy"]


class SecurityScorer:
    """Calculates scores and risk levels with fixed severity weights."""

    SEVERITY_WEIGHTS: dict[str, float] = {
        "critical": 40,
        "high": 20,
        "medium": 10,
        "low": 5,
    }

    def deduction(self, severities: Iterable[str]) -> float:
        return sum(self.SEVERITY_WEIGHTS[s] for s in severities)

    def calculate_score(self, violations: Iterable[Violation]) -> float:
        """Return ``max(0, 100 - total weight)``.

        Deductions are additive and unbounded; only the lower bound is clamped.
        """
        return max(0.0, 100.0 - self.deduction(v.severity for v in violations))

    @staticmethod
    def risk_level(violations: list[Violation]) -> Severity:
        """Classify the overall risk of a violation set.

        Any critical violation forces ``critical``; more than two highs give
        ``high``; any high or more than five violations give ``medium``.
        """
        high = sum(1 for v in violations if v.severity == "high")
        if any(v.severity == "critical" for v in violations):
            return "critical"
        if high > 2:
            return "high"
        if high > 0 or len(violations) > 5:
            return "medium"
        return "low"

    @staticmethod
    def compliance_flags(violations: list[Violation], frameworks: Iterable[str] | None = None) -> dict[str, bool]:
        frameworks = DEFAULT_FRAMEWORKS if frameworks is None else frameworks
        return {fw: not any(fw in v.compliance for v in violations) for fw in frameworks}

    @staticmethod
    def recommendations(violations: list[Violation]) -> list[str]:
        recs: list[str] = []
        for v in violations:
            if v.recommendation not in recs:
                recs.append(v.recommendation)
        if any(v.severity == "critical" for v in violations):
            recs.extend(n for n in EMERGENCY_NOTES if n not in recs)
        if any(v.rule_id.startswith("AUTH_") for v in violations):
            recs.extend(n for n in IAM_NOTES if n not in recs)
        if any(v.rule_id.startswith("ENC_") for v in violations):
            recs.extend(n for n in ENCRYPTION_NOTES if n not in recs)
        return recs
