import logging
from typing import Callable, List, Optional, Tuple

from respline.exceptions import (
    InvalidResponse,
    RedisError,
    ResponseError,
    WatchError,
)
from respline.queue import PendingRequest
from respline.utils import safe_str, str_if_bytes, truncate_text

logger = logging.getLogger(__name__)

QUEUED = "QUEUED"
EXEC_PREFIX = "[exec]"

# commands the server runs right away even inside MULTI, so they never
# become members of the transaction
NEVER_QUEUED = frozenset(["MULTI", "EXEC", "DISCARD", "WATCH", "QUIT", "RESET"])


def annotate_exception(exception, number, command, context="transaction"):
    cmd = " ".join(map(safe_str, command))
    msg = (
        f"Command # {number} ({truncate_text(cmd)}) of {context} "
        f"caused error: {exception.args[0]}"
    )
    exception.args = (msg,) + exception.args[1:]


def prefix_exception(exception, prefix=EXEC_PREFIX):
    message = exception.args[0] if exception.args else ""
    if not str(message).startswith(prefix):
        exception.args = (f"{prefix} {message}",) + exception.args[1:]
    return exception


class TransactionTracker:
    """
    Follows MULTI ... EXEC framing on a connection.

    The state changes when requests are *issued*, not when their replies are
    read: once MULTI has been written every following request is a member
    until EXEC or DISCARD is written, even if none of their replies have been
    read yet.
    """

    def __init__(self):
        self.active = False
        self._members: List[PendingRequest] = []

    def __repr__(self):
        state = "open" if self.active else "idle"
        return f"<{self.__class__.__name__}({state}, queued={self.queued_count})>"

    @property
    def queued_count(self) -> int:
        return len(self._members)

    def reset(self) -> None:
        if self.active:
            logger.debug("Transaction reset with %d queued commands", self.queued_count)
        self.active = False
        self._members = []

    def track(self, request: PendingRequest) -> None:
        "Update the framing state for a request that was just written"
        name = request.command_name
        if name == "MULTI":
            # a nested MULTI is refused by the server and leaves the
            # current transaction open
            if not self.active:
                self.active = True
                self._members = []
                request.opens_transaction = True
                logger.debug("Transaction opened")
        elif name in ("EXEC", "DISCARD"):
            if self.active:
                if name == "EXEC":
                    request.members = tuple(self._members)
                logger.debug(
                    "Transaction closed by %s after %d queued commands",
                    name,
                    self.queued_count,
                )
                self.active = False
                self._members = []
        elif self.active and name not in NEVER_QUEUED:
            request.in_transaction = True
            self._members.append(request)

    def complete(
        self,
        request: PendingRequest,
        reply,
        shape: Callable[[PendingRequest, object], object],
    ) -> Tuple[object, Optional[Exception]]:
        """
        Turn the reply of a transaction-related request into the
        ``(value, error)`` pair delivered to it.
        """
        if request.is_exec:
            return self._complete_exec(request, reply, shape)
        if request.in_transaction:
            return self._complete_member(request, reply)
        if isinstance(reply, ResponseError):
            if request.opens_transaction and self.active:
                # the server never entered MULTI state, nothing is queued
                self.reset()
            return None, reply
        return reply, None

    def _complete_member(self, request, reply):
        if isinstance(reply, ResponseError):
            return None, reply
        if str_if_bytes(reply) != QUEUED:
            logger.warning(
                "Expected %s reply for %s inside a transaction, got %r",
                QUEUED,
                request.command_name,
                reply,
            )
            return None, InvalidResponse(
                f"Expected {QUEUED} reply for {request.command_name} "
                f"inside a transaction, got {reply!r}"
            )
        return reply, None

    def _complete_exec(self, request, reply, shape):
        members = request.members
        if isinstance(reply, ResponseError):
            # EXECABORT: nothing ran. Point at the member the server refused.
            for number, member in enumerate(members, 1):
                if isinstance(member.error, ResponseError):
                    reply.args = (
                        f"{reply.args[0]} Command # {number} "
                        f"({truncate_text(' '.join(map(safe_str, member.args)))}) "
                        f"of transaction caused error: {member.error.args[0]}",
                    ) + reply.args[1:]
                    break
            return None, prefix_exception(reply)
        if reply is None:
            return None, prefix_exception(WatchError("Watched variable changed."))
        if not isinstance(reply, list) or len(reply) != len(members):
            return None, prefix_exception(
                ResponseError("Wrong number of response items from transaction execution")
            )

        results = []
        for member, result in zip(members, reply):
            if not isinstance(result, ResponseError):
                result = shape(member, result)
            results.append(result)
        return results, None

    def raise_for_exec(self, request: PendingRequest):
        """
        Return the outcome of a synchronous EXEC, raising its error or the
        first error among the member results.
        """
        if request.error is not None:
            raise request.error
        for number, (member, result) in enumerate(
            zip(request.members, request.reply), 1
        ):
            if isinstance(result, ResponseError):
                annotate_exception(result, number, member.args)
                raise prefix_exception(result)
        return request.reply


def first_error(results) -> Optional[RedisError]:
    for result in results:
        if isinstance(result, ResponseError):
            return result
    return None
