"""Caller-facing pricing errors."""


class PricingError(Exception):
    """Base class for errors surfaced by the pricing engine."""


class InvalidInput(PricingError):
    """Caller data violates one or more preconditions.

    Carries every violated constraint, not just the first one found.
    """

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "Invalid input")


class NotFound(PricingError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")
