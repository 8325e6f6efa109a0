CARD_STATUS_AVAILABLE = "AVAILABLE"
CARD_STATUS_RESERVED = "RESERVED"
CARD_STATUS_REVEALED = "REVEALED"
