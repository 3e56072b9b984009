"""
Error taxonomy for the staking core.

Every error is local to the operation that raised it: the transaction
manager rolls back that operation's effects and re-raises.
"""


class FarmError(Exception):
    """Base class for staking core errors."""
    pass


class DuplicatePool(FarmError):
    """The staked token is already registered."""
    pass


class PoolNotFound(FarmError):
    """No pool with the given id or token."""
    pass


class InsufficientBalance(FarmError):
    """An account tried to move more than it holds."""
    pass


class InsufficientVotingPower(FarmError):
    """Total vote allocation would exceed the escrow balance."""
    pass


class InsufficientFunds(FarmError):
    """A reward stream cannot pay anything towards an owed amount."""
    pass


class AlreadyInitialized(FarmError):
    """initialize() was called twice."""
    pass


class NotInitialized(FarmError):
    """The farm has not been initialized yet."""
    pass


class Unauthorized(FarmError):
    """Caller is not allowed to perform this operation."""
    pass


class ArithmeticOverflow(FarmError):
    """A fixed-point value left the unsigned 256-bit range."""
    pass


class InvalidParameter(FarmError, ValueError):
    """An argument is outside its allowed range."""
    pass


class FarmPaused(FarmError):
    """User operations are suspended."""
    pass


class TransferFailed(FarmError):
    """A native value transfer was rejected by the recipient."""
    pass


class DuplicateGauge(DuplicatePool):
    """A gauge already exists for this token."""
    pass


class GaugeNotFound(PoolNotFound):
    """No gauge for the given token."""
    pass


class EpochLocked(FarmError):
    """Votes are being counted; voting reopens with the next epoch."""
    pass


class LockError(FarmError):
    """Invalid escrow lock operation."""
    pass


class TransactionError(FarmError):
    """Misuse of the transaction manager."""
    pass
