from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found", status.HTTP_404_NOT_FOUND)


class MissingAnchorError(ServiceError):
    """Student has neither an enrollment date nor a fee-cycle start date."""

    def __init__(self, message: str = "Student has no enrollment date or fee cycle start date") -> None:
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class OverpaymentRejected(ServiceError):
    def __init__(self, paid_amount: int, fee_amount: int) -> None:
        super().__init__(
            f"Paid amount ({paid_amount}) cannot exceed fee amount ({fee_amount})",
            status.HTTP_400_BAD_REQUEST,
        )
        self.paid_amount = paid_amount
        self.fee_amount = fee_amount


class DuplicateReferenceError(ServiceError):
    def __init__(self, message: str = "Transaction ID is already used by another student") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class NonConsecutivePeriodsError(ServiceError):
    def __init__(self, message: str = "Months must be consecutive when using the same transaction ID") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NoBatchAssigned(ServiceError):
    def __init__(self, message: str = "Student is not assigned to a batch") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class CapacityExceededError(ServiceError):
    def __init__(self, message: str = "Batch is at full capacity") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class StageLevelMismatchError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class BatchInactiveError(ServiceError):
    def __init__(self, message: str = "Batch is not active") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class InsufficientCreditError(ServiceError):
    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Insufficient credit balance. Available: {available}, Required: {required}",
            status.HTTP_400_BAD_REQUEST,
        )


class NegativeBalanceError(ServiceError):
    def __init__(self, current: int, adjustment: int) -> None:
        super().__init__(
            f"Adjustment would result in negative balance. Current: {current}, Adjustment: {adjustment}",
            status.HTTP_400_BAD_REQUEST,
        )


class InvalidFeeMonthError(ServiceError):
    def __init__(self, label: str) -> None:
        super().__init__(f"Unrecognised fee month: {label!r}", status.HTTP_400_BAD_REQUEST)


class InvalidAmountError(ServiceError):
    def __init__(self, message: str = "Amount must be greater than zero") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ConcurrentModificationError(ServiceError):
    def __init__(self, message: str = "Record was modified concurrently, please retry") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)
