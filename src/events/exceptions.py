class UnpurchasableQuantityError(Exception):
    """Raised when a ticket quantity has neither a price tier nor a single-seat price."""

    def __init__(self, quantity: int) -> None:
        """Store the rejected quantity."""
        self.quantity = quantity
        super().__init__(f"Tickets cannot be purchased in a quantity of {quantity}.")
