from marketplace.services.fraud.fraud_service import FraudService, FraudRule, RULE_WEIGHTS

__all__ = ["FraudService", "FraudRule", "RULE_WEIGHTS"]
