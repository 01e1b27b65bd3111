"""
A/B testing error taxonomy.

Every error is raised synchronously to the caller; the engine never retries.
An insignificant evaluation result is NOT an error - determine_winner()
returns None for it.
"""


class ABTestingError(Exception):
    """Base class for all experimentation engine errors."""
    pass


class InvalidAllocation(ABTestingError):
    """Variant traffic percentages do not sum to 100 (test is not created)."""
    pass


class NoVariantsAvailable(ABTestingError):
    """Traffic allocation requested for a test with zero variants."""
    pass


class ABTestNotRunning(ABTestingError):
    """Evaluation, promotion or cancellation requested on a non-running test."""

    def __init__(self, test_id, status):
        self.test_id = str(test_id)
        self.status = status
        super().__init__(f"A/B test {self.test_id[:8]} is not running (status={status})")


class ABTestNotFound(ABTestingError):
    def __init__(self, test_id):
        self.test_id = str(test_id)
        super().__init__(f"A/B test not found: {self.test_id}")


class VariantNotFound(ABTestingError):
    def __init__(self, variant_id):
        self.variant_id = str(variant_id)
        super().__init__(f"A/B variant not found: {self.variant_id}")
