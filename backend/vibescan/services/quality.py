"""
Data-quality checks for reconciled market data.

Nothing here raises: a failed check is a flag carried in the response meta
so consumers can tell complete data from degraded data.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

MIN_PRICE_COVERAGE = 0.50
MAX_TRANSFER_DISCREPANCY = 0.10
MAX_HOLDER_DISCREPANCY = 0.05


@dataclass(frozen=True)
class EnrichmentGap:
    """Some transfers could not be priced. A signal, not a failure."""

    total: int
    matched: int

    @property
    def unmatched(self) -> int:
        return self.total - self.matched

    @property
    def coverage(self) -> float:
        return self.matched / self.total if self.total else 1.0

    @property
    def is_low(self) -> bool:
        return self.coverage < MIN_PRICE_COVERAGE


@dataclass
class ValidationResult:
    name: str
    passed: bool
    value: float
    threshold: float
    message: str


def validate_price_coverage(matched: int, total: int) -> ValidationResult:
    coverage = matched / total if total else 1.0
    passed = coverage >= MIN_PRICE_COVERAGE
    return ValidationResult(
        name="price_coverage",
        passed=passed,
        value=round(coverage, 4),
        threshold=MIN_PRICE_COVERAGE,
        message=(
            f"{matched}/{total} transfers priced ({coverage:.1%})"
            + ("" if passed else f", below {MIN_PRICE_COVERAGE:.0%}")
        ),
    )


def _discrepancy(actual: int, expected: int) -> float:
    if expected == 0:
        return 0.0 if actual == 0 else 1.0
    return abs(actual - expected) / expected


def validate_transfer_count(actual: int, expected: int) -> ValidationResult:
    """Compare our transfer count against a reference count for the same window."""
    diff = _discrepancy(actual, expected)
    return ValidationResult(
        name="transfer_count",
        passed=diff <= MAX_TRANSFER_DISCREPANCY,
        value=round(diff, 4),
        threshold=MAX_TRANSFER_DISCREPANCY,
        message=f"{actual} transfers vs {expected} expected ({diff:.1%} off)",
    )


def validate_holder_count(actual: int, expected: int) -> ValidationResult:
    """Compare the replayed holder count against the marketplace owner count."""
    diff = _discrepancy(actual, expected)
    return ValidationResult(
        name="holder_count",
        passed=diff <= MAX_HOLDER_DISCREPANCY,
        value=round(diff, 4),
        threshold=MAX_HOLDER_DISCREPANCY,
        message=f"{actual} holders vs {expected} expected ({diff:.1%} off)",
    )


def validate_strategy_balance(ledger_held: int, onchain_balance: int) -> ValidationResult:
    """Compare tokens HELD per the replayed ledger with the contract's balanceOf."""
    diff = _discrepancy(ledger_held, onchain_balance)
    return ValidationResult(
        name="strategy_balance",
        passed=diff <= MAX_HOLDER_DISCREPANCY,
        value=round(diff, 4),
        threshold=MAX_HOLDER_DISCREPANCY,
        message=f"ledger holds {ledger_held} tokens, balanceOf reports {onchain_balance}",
    )


@dataclass
class DataQualityReport:
    checks: list[ValidationResult] = field(default_factory=list)
    gap: Optional[EnrichmentGap] = None

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def warnings(self) -> list[str]:
        return [c.message for c in self.checks if not c.passed]

    def add(self, check: ValidationResult) -> None:
        self.checks.append(check)

    def log(self, context: str) -> None:
        for check in self.checks:
            if check.passed:
                logger.info("[%s] %s: %s", context, check.name, check.message)
            else:
                logger.warning("[%s] %s: %s", context, check.name, check.message)

    def to_dict(self) -> dict:
        result = {
            "passed": self.passed,
            "warnings": self.warnings,
            "checks": {c.name: c.value for c in self.checks},
        }
        if self.gap is not None:
            result["unpriced_transfers"] = self.gap.unmatched
            result["price_coverage"] = round(self.gap.coverage, 4)
            result["low_coverage"] = self.gap.is_low
        return result
