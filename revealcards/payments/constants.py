PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PAID = "PAID"

RECONCILIATION_RUN_STATUS_OK = "OK"
RECONCILIATION_RUN_STATUS_PARTIAL = "PARTIAL"

RECONCILIATION_TRIGGER_SCHEDULED = "SCHEDULED"
RECONCILIATION_TRIGGER_MANUAL = "MANUAL"
