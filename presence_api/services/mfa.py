from dataclasses import dataclass

from presence_api.services.factors import FactorSet


@dataclass(frozen=True)
class MfaDecision:
    passed: int
    required: int

    @property
    def verified(self) -> bool:
        return self.passed >= self.required


def evaluate_mfa(factors: FactorSet, required_factors: int) -> MfaDecision:
    return MfaDecision(passed=factors.passed, required=required_factors)
