class BillingError(Exception):
    pass


class BillingConfigurationError(BillingError):
    pass


class BillingHashSecretMissingError(BillingConfigurationError):
    pass


class ProAccessError(BillingError):
    def __init__(self, evaluation: object) -> None:
        super().__init__("pro access required")
        self.evaluation = evaluation
