"""Domain vocabulary shared by models, services and routes."""

# Soft-delete state for master records (products, suppliers)
RECORD_ACTIVE = "ACTIVE"
RECORD_ARCHIVED = "ARCHIVED"

# Customer enrollment
PROGRAM_NONE = "NONE"
PROGRAM_A = "A"
PROGRAM_B = "B"
PROGRAM_MEMBERSHIPS = (PROGRAM_NONE, PROGRAM_A, PROGRAM_B)
ALLOCATION_PROGRAMS = (PROGRAM_A, PROGRAM_B)

BOARDING_DAY = "DAY"
BOARDING_BOARDER = "BOARDING"
BOARDING_STATUSES = (BOARDING_DAY, BOARDING_BOARDER)

# Sales
SALE_NORMAL = "NORMAL"
SALE_ADD_TO_BALANCE = "ADD_TO_BALANCE"
SALE_EXCHANGE = "EXCHANGE"
SALE_TRANSACTION_TYPES = (SALE_NORMAL, SALE_ADD_TO_BALANCE)

SALE_STATUS_COMPLETED = "COMPLETED"

CUSTOMER_TYPE_LEARNER = "LEARNER"
CUSTOMER_TYPE_WALK_IN = "WALK_IN"

PAYMENT_CASH = "cash"
PAYMENT_MPESA = "mpesa"
PAYMENT_BANK = "bank"
PAYMENT_CHEQUE = "cheque"
PAYMENT_POCKET_MONEY = "pocket_money"
PAYMENT_REFUND = "refund"
PAYMENT_EXCHANGE_CREDIT = "exchange_credit"
PAYMENT_MODES = (PAYMENT_CASH, PAYMENT_MPESA, PAYMENT_BANK, PAYMENT_CHEQUE)

PAYMENT_STATUS_COMPLETED = "completed"

# Refunds
REFUND_FULL = "full"
REFUND_PARTIAL = "partial"
REFUND_EXCHANGE = "exchange"
REFUND_TYPES = (REFUND_FULL, REFUND_PARTIAL, REFUND_EXCHANGE)

# Allocations
FREQ_YEARLY = "yearly"
FREQ_TERMLY = "termly"
FREQ_MONTHLY = "monthly"
FREQ_WEEKLY = "weekly"
FREQ_SPECIFIC_DAYS = "specific_days"
FREQ_ONCE_PER_TERM = "once_per_term"
ALLOCATION_FREQUENCIES = (
    FREQ_YEARLY,
    FREQ_TERMLY,
    FREQ_MONTHLY,
    FREQ_WEEKLY,
    FREQ_SPECIFIC_DAYS,
    FREQ_ONCE_PER_TERM,
)

ALLOCATION_ALLOCATED = "ALLOCATED"
ALLOCATION_CANCELLED = "CANCELLED"

# Index matches datetime.weekday()
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Supplier obligations
RESTOCK_PENDING_PAYMENT = "pending_payment"
RESTOCK_PAID = "paid"

CREDIT_UNPAID = "unpaid"
CREDIT_PAID = "paid"

# Pocket money subledger
POCKET_PURCHASE = "PURCHASE"
POCKET_TOP_UP = "TOP_UP"
POCKET_DEDUCT = "DEDUCT"
POCKET_REFUND = "REFUND"

DEFAULT_DEPARTMENT = "General"
DEFAULT_REORDER_LEVEL = 10
