class StoreError(Exception):
    """Base for every failure that aborts a ledger call."""


class InvalidInputs(StoreError):
    pass


class IndexOutOfRange(StoreError):
    pass


class InsufficientAmount(StoreError):
    pass


class ProductAlreadyBought(StoreError):
    pass


class ProductNotBought(StoreError):
    pass


class RefundExpired(StoreError):
    pass


class PermitExpired(StoreError):
    pass


class PermitInvalid(StoreError):
    pass


class NotOwner(StoreError):
    pass


# ── token side ───────────────────────────────────────────────────────────────

class TokenError(StoreError):
    pass


class InsufficientBalance(TokenError):
    pass


class InsufficientAllowance(TokenError):
    pass
