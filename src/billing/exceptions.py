class PromotionCapReachedError(Exception):
    """Raised inside the redemption savepoint when the guarded counter update matched no row."""
