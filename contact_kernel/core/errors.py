"""Error taxonomy shared by the store, codec and ledger."""


class ContactKernelError(Exception):
    """Base class for every error raised by the kernel."""
    pass


class ValidationError(ContactKernelError):
    """Raised when a write references missing entities or carries an invalid payload."""
    pass


class NotFoundError(ContactKernelError):
    """Raised when no entity, observation or outreach record exists for an id."""
    pass


class DecodeError(ContactKernelError):
    """Raised when a signature character is not a separator or an offset is out of bounds."""
    pass


class SignatureOverflowError(ContactKernelError, OverflowError):
    """Raised when an identifier does not fit in the separator slots of a template."""

    def __init__(self, numeric_id: int, slots: int, capacity: int):
        super().__init__(
            f"Identifier {numeric_id} does not fit in {slots} separator slot(s) "
            f"(capacity {capacity})"
        )
        self.numeric_id = numeric_id
        self.slots = slots
        self.capacity = capacity


class MatchError(ContactKernelError):
    """Raised when no tracking code decodes self-consistently from a signature."""
    pass
