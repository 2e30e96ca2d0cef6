from collections import deque
from typing import Any, Dict, Iterator, Optional, Sequence, Tuple

from respline.typing import ReplyCallbackT


class PendingRequest:
    """
    A request that has been written to the server and is waiting for its
    reply.

    ``callback`` is ``None`` for a synchronous caller, which reads ``reply``
    and ``error`` once ``done`` is set.
    """

    __slots__ = (
        "command_name",
        "args",
        "options",
        "callback",
        "multi_bulk",
        "in_transaction",
        "opens_transaction",
        "members",
        "reply",
        "error",
        "done",
    )

    def __init__(
        self,
        command_name: str,
        args: Tuple,
        options: Dict[str, Any],
        callback: Optional[ReplyCallbackT] = None,
        multi_bulk: bool = False,
        in_transaction: bool = False,
    ):
        self.command_name = command_name
        self.args = args
        self.options = options
        self.callback = callback
        self.multi_bulk = multi_bulk
        self.in_transaction = in_transaction
        # set on MULTI when it moved the tracker from idle to open
        self.opens_transaction = False
        # set on EXEC closing a transaction: the args of every queued member
        self.members: Optional[Sequence[Tuple]] = None
        self.reply = None
        self.error: Optional[Exception] = None
        self.done = False

    def __repr__(self):
        return (
            f"<{self.__class__.__name__}({self.command_name}"
            f"{', transaction' if self.in_transaction else ''}"
            f"{', done' if self.done else ''})>"
        )

    @property
    def is_exec(self) -> bool:
        return self.members is not None

    def deliver(self, reply, error: Optional[Exception] = None) -> None:
        self.reply = reply
        self.error = error
        self.done = True
        if self.callback is not None:
            self.callback(reply, error)


class PendingQueue:
    "FIFO of the requests written to one connection, in write order"

    def __init__(self):
        self._requests = deque()

    def __len__(self) -> int:
        return len(self._requests)

    def __bool__(self) -> bool:
        return bool(self._requests)

    def __iter__(self) -> Iterator[PendingRequest]:
        return iter(self._requests)

    def append(self, request: PendingRequest) -> None:
        self._requests.append(request)

    def peek(self) -> Optional[PendingRequest]:
        "Return the oldest pending request without removing it"
        return self._requests[0] if self._requests else None

    def popleft(self) -> PendingRequest:
        return self._requests.popleft()

    def clear(self) -> int:
        "Drop every pending request, returning how many were dropped"
        count = len(self._requests)
        self._requests.clear()
        return count
