"""Exception types raised by the TURN client and allocation code."""

from __future__ import annotations


class TurnError(Exception):
    """Base class for every error raised by this package."""

    message = "turn: error"

    def __init__(self, detail: object = None) -> None:
        self.detail = detail
        text = self.message if detail is None else f"{self.message}: {detail}"
        super().__init__(text)


class NilConnError(TurnError):
    message = "turn: conn cannot not be nil"


class AlreadyListeningError(TurnError):
    message = "turn: already listening"


class FailedToRetransmitTransactionError(TurnError):
    message = "turn: failed to retransmit transaction"


class AllRetransmissionsFailedError(TurnError):
    message = "all retransmissions failed for"


class ChannelBindNotFoundError(TurnError):
    message = "no binding found for channel"


class STUNServerAddressNotSetError(TurnError):
    message = "STUN server address is not set for the client"


class OneAllocateOnlyError(TurnError):
    message = "only one allocate() caller is allowed"


class AlreadyAllocatedError(TurnError):
    message = "already allocated"


class NonSTUNMessageError(TurnError):
    message = "non-STUN message from STUN server"


class FailedToDecodeSTUNError(TurnError):
    message = "failed to decode STUN message"


class UnexpectedSTUNRequestError(TurnError):
    message = "unexpected STUN request message"


class TryAgainError(TurnError):
    message = "try again"


class ClosedError(TurnError):
    message = "use of closed network connection"


class UDPAddrCastError(TurnError):
    message = "addr is not a UDPAddr"


class AlreadyClosedError(TurnError):
    message = "already closed"


class DoubleLockError(TurnError):
    message = "try-lock is already locked"


class TransactionClosedError(TurnError):
    message = "transaction closed"


class NonResultTransactionError(TurnError):
    message = "wait_for_result called on non-result transaction"


class FailedToBuildRefreshRequestError(TurnError):
    message = "failed to build refresh request"


class FailedToRefreshAllocationError(TurnError):
    message = "failed to refresh allocation"


class FailedToGetLifetimeError(TurnError):
    message = "failed to get lifetime from refresh response"


class SameChannelDifferentPeerError(TurnError):
    message = "you cannot use the same channel number with different peer"


class AddrCastError(TurnError):
    message = "failed to cast address to UDPAddr or TCPAddr"


class IOTimeoutError(TurnError):
    """A read deadline passed before data arrived."""

    message = "i/o timeout"

    def timeout(self) -> bool:
        """Always true: this error reports a timeout."""
        return True