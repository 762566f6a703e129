from enum import Enum


class Stage(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class BatchStatus(str, Enum):
    active = "active"
    ended = "ended"
    draft = "draft"


class PaymentMethod(str, Enum):
    cash = "cash"
    online = "online"
    card = "card"
    upi = "upi"
    other = "other"


class FeeStatus(str, Enum):
    paid = "paid"
    partially_paid = "partially_paid"
    overdue = "overdue"
    upcoming = "upcoming"


class CreditTransactionType(str, Enum):
    credit_added = "credit_added"
    credit_used = "credit_used"
    credit_refund = "credit_refund"
    credit_adjustment = "credit_adjustment"
