from __future__ import annotations


class RaffleError(RuntimeError):
    """Base class for every failure the raffle core reports to its callers.

    ``code`` is stable and safe to show to clients. ``retryable`` tells the
    caller whether the same request may succeed later without changes.
    """

    code = "raffle_error"
    retryable = False
    default_message = "Raffle operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidRequest(RaffleError):
    code = "invalid_request"
    default_message = "Request is malformed"


class Unauthorized(RaffleError):
    code = "unauthorized"
    default_message = "Admin wallet required"


class RaffleNotFound(RaffleError):
    code = "raffle_not_found"
    default_message = "Raffle not found"


class RaffleClosed(RaffleError):
    code = "raffle_closed"
    default_message = "Raffle is no longer accepting tickets"


class DuplicatePayment(RaffleError):
    code = "duplicate_payment"
    default_message = "Transaction signature already used; tickets were already recorded"


class PaymentNotConfirmed(RaffleError):
    code = "payment_not_confirmed"
    retryable = True
    default_message = "Transaction not confirmed yet. Please wait a moment and try again."


class PaymentMismatch(RaffleError):
    code = "payment_mismatch"
    default_message = "Transaction does not pay for these tickets"


class PaymentNetworkUnavailable(RaffleError):
    code = "payment_network_unavailable"
    retryable = True
    default_message = "Could not reach the Solana RPC"


class InvalidSignature(RaffleError):
    code = "invalid_signature"
    default_message = "Invalid signature"


class WalletAlreadyLinked(RaffleError):
    code = "wallet_already_linked"
    default_message = "Wallet already registered to another Discord user"


class WalletNotLinked(RaffleError):
    code = "wallet_not_linked"
    default_message = "Verify your wallet with Discord before buying tickets"


class UsernameTaken(RaffleError):
    code = "username_taken"
    default_message = "Username taken"


class WinnerAlreadyPicked(RaffleError):
    code = "winner_already_picked"
    default_message = "Winner already picked"


class NoEntries(RaffleError):
    code = "no_entries"
    default_message = "No tickets sold"


class StoreUnavailable(RaffleError):
    code = "store_unavailable"
    retryable = True
    default_message = "Database unavailable"
