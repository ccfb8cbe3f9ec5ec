"""
Exception hierarchy for growthcore.
"""


class GrowthCoreError(Exception):
    """Base exception for all growthcore errors."""
    pass


class ValidationError(GrowthCoreError):
    """Raised for malformed input, before anything is written."""
    pass


class NotFoundError(ValidationError):
    """Raised when a referenced student, reward, squad or challenge is missing."""
    pass


class RedemptionRefused(GrowthCoreError):
    """Base exception for business-rule refusals during redemption."""
    pass


class RewardUnavailableError(RedemptionRefused):
    """Raised when the reward is hidden or no longer exists."""
    pass


class InsufficientStockError(RedemptionRefused):
    """Raised when a stock-tracked reward has none left."""
    pass


class InsufficientBalanceError(RedemptionRefused):
    """Raised when the student's score balance does not cover the cost.

    Attributes:
        student_id: The student attempting the redemption
        balance: Score balance at decision time
        cost: Score cost of the reward
    """

    def __init__(self, message: str, student_id: str = "", balance: float = 0, cost: float = 0):
        self.student_id = student_id
        self.balance = balance
        self.cost = cost
        self.shortfall = cost - balance
        super().__init__(message)


class InsufficientEnergyError(InsufficientBalanceError):
    """Raised when the student's energy balance does not cover the cost."""
    pass


class ConcurrencyConflictError(GrowthCoreError):
    """Raised when the store could not serialize a conflicting transaction."""
    pass


class StoreError(GrowthCoreError):
    """Raised when a storage operation fails."""
    pass
