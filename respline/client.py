import logging
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from respline.callbacks import MULTI_BULK_COMMANDS, RESPONSE_CALLBACKS
from respline.connection import (
    AbstractConnection,
    Connection,
    UnixDomainSocketConnection,
    parse_url,
)
from respline.encoder import Encoder
from respline.exceptions import ConnectionError, DataError, RedisError, ResponseError
from respline.parser import PythonParser
from respline.queue import PendingQueue, PendingRequest
from respline.transaction import TransactionTracker, annotate_exception, first_error
from respline.typing import ReplyCallbackT
from respline.utils import str_if_bytes

logger = logging.getLogger(__name__)


def command_name_of(name) -> str:
    "Normalize a command name: upper case, single spaces between words"
    return " ".join(str_if_bytes(name).upper().split())


class Redis:
    """
    Implementation of the Redis protocol with explicit pipelining.

    Every command is written to the server as soon as it is issued. Passing
    ``callback`` queues the reply instead of waiting for it: the call returns
    ``True`` right away and ``callback(reply, error)`` fires later, from
    ``wait_one_response()``, ``wait_all_responses()`` or any synchronous
    command issued afterwards. Without a callback the call blocks until its
    own reply arrives, delivering every earlier queued reply first.

    Replies are always delivered in the order the commands were issued.

    Any Redis command can be called as a method::

        >>> r = Redis(decode_responses=True)
        >>> r.set("foo", "bar")
        'OK'
        >>> r.get("foo", callback=lambda reply, error: print(reply))
        True
        >>> r.wait_all_responses()
        bar

    Multi-word commands use underscores: ``r.config_get("maxmemory")``.

    A client owns one connection and is not safe to share between threads.
    """

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "Redis":
        """
        Return a client configured from the given URL.

        For example::

            redis://localhost:6379/0
            unix:///path/to/socket.sock?db=0

        Query string arguments (``db``, ``socket_timeout``,
        ``socket_connect_timeout``, ``socket_keepalive``,
        ``decode_responses``) are cast to their types. Arguments passed in
        ``kwargs`` override the URL.
        """
        url_options = parse_url(url)
        connection_class = url_options.pop("connection_class", Connection)
        if connection_class is UnixDomainSocketConnection:
            url_options["unix_socket_path"] = url_options.pop("path", "")
        url_options.update(kwargs)
        return cls(**url_options)

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        socket_timeout: Optional[float] = None,
        socket_connect_timeout: Optional[float] = None,
        socket_keepalive: Optional[bool] = None,
        socket_keepalive_options: Optional[Dict[int, int]] = None,
        unix_socket_path: Optional[str] = None,
        encoding: str = "utf-8",
        encoding_errors: str = "strict",
        decode_responses: bool = False,
        parser_class=PythonParser,
        socket_read_size: int = 65536,
        client_name: Optional[str] = None,
        connection: Optional[AbstractConnection] = None,
    ) -> None:
        if connection is None:
            kwargs = {
                "db": db,
                "socket_timeout": socket_timeout,
                "socket_connect_timeout": socket_connect_timeout,
                "encoding": encoding,
                "encoding_errors": encoding_errors,
                "decode_responses": decode_responses,
                "parser_class": parser_class,
                "socket_read_size": socket_read_size,
                "client_name": client_name,
            }
            if unix_socket_path is not None:
                connection = UnixDomainSocketConnection(path=unix_socket_path, **kwargs)
            else:
                connection = Connection(
                    host=host,
                    port=port,
                    socket_keepalive=socket_keepalive,
                    socket_keepalive_options=socket_keepalive_options,
                    **kwargs,
                )
        self.connection = connection
        self.response_callbacks = dict(RESPONSE_CALLBACKS)
        self._queue = PendingQueue()
        self._transaction = TransactionTracker()

    def __repr__(self) -> str:
        return f"<{type(self).__module__}.{type(self).__name__}({self.connection!r})>"

    def __enter__(self) -> "Redis":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __len__(self) -> int:
        return len(self._queue)

    def __bool__(self) -> bool:
        """Clients should always evaluate to True, even with nothing pending"""
        return True

    def __getattr__(self, name: str) -> Callable[..., Any]:
        # only reached for names that aren't real attributes
        if name.startswith("_"):
            raise AttributeError(name)
        return partial(self.execute_command, name.upper().replace("_", " "))

    @property
    def pending(self) -> int:
        "Number of issued commands whose reply has not been delivered yet"
        return len(self._queue)

    @property
    def in_transaction(self) -> bool:
        "True between an issued MULTI and the matching EXEC or DISCARD"
        return self._transaction.active

    def get_encoder(self) -> Encoder:
        """Get the connection's encoder"""
        return self.connection.encoder

    def set_response_callback(self, command: str, callback: Callable) -> None:
        """Set a custom Response Callback"""
        self.response_callbacks[command_name_of(command)] = callback

    def pipeline(self, transaction: bool = True) -> "Pipeline":
        """
        Return a new pipeline object that stages commands and sends them in
        one write when ``execute()`` is called. With ``transaction=True``
        the batch runs inside MULTI/EXEC.
        """
        return Pipeline(self, transaction)

    def close(self) -> None:
        """
        Disconnect, dropping every reply that has not been delivered yet.
        The next command reconnects.
        """
        dropped = self._queue.clear()
        if dropped:
            logger.warning("Closing connection with %d undelivered replies", dropped)
        self._transaction.reset()
        self.connection.disconnect()

    # COMMAND EXECUTION AND REPLY DELIVERY
    def execute_command(
        self, *args, callback: Optional[ReplyCallbackT] = None, **options
    ):
        """
        Send a command and either wait for its reply or queue it.

        ``args[0]`` is the command name. Extra keyword ``options`` are not
        sent; they are passed to the command's response callback
        (e.g. ``withscores=True`` for ZRANGE).
        """
        request = self._dispatch(args, options, callback)
        if callback is not None:
            return True
        self._wait_for(request)
        return self._sync_result(request)

    def wait_one_response(self) -> None:
        """
        Read one reply and deliver it to the oldest pending command.
        Does nothing when no reply is pending.
        """
        request = self._queue.peek()
        if request is None:
            return
        # a transport or protocol failure leaves the request at the head of
        # the queue: the stream is out of step and nothing can be delivered
        try:
            reply = self.connection.read_response()
        except BaseException:
            self._reset_if_disconnected()
            raise
        self._queue.popleft()
        self._deliver(request, reply)

    def wait_all_responses(self) -> None:
        """Deliver every pending reply, in the order the commands were issued"""
        while self._queue:
            self.wait_one_response()

    def _wait_for(self, request: PendingRequest) -> None:
        while not request.done:
            self.wait_one_response()

    def _check_stream(self) -> None:
        if self._queue and not self.connection.is_connected:
            raise ConnectionError(
                f"Connection lost with {len(self._queue)} replies pending. "
                "Call close() before issuing more commands."
            )

    def _reset_if_disconnected(self) -> None:
        # the server discards an open MULTI block along with the connection
        if not self.connection.is_connected:
            self._transaction.reset()

    def _send(self, packed) -> None:
        try:
            self.connection.send_packed_command(packed)
        except BaseException:
            self._reset_if_disconnected()
            raise

    def _dispatch(self, args: Tuple, options: Dict[str, Any], callback):
        if not args:
            raise DataError("A command name is required")
        self._check_stream()
        self._send(self.connection.pack_command(*args))
        return self._enqueue(args, options, callback)

    def _dispatch_many(
        self, commands: Iterable[Tuple[Tuple, Dict[str, Any], Optional[Callable]]]
    ) -> List[PendingRequest]:
        """
        Write several commands in a single send, queueing one pending
        request for each in order.
        """
        commands = list(commands)
        if not commands:
            return []
        if not all(args for args, _, _ in commands):
            raise DataError("A command name is required")
        self._check_stream()
        self._send(self.connection.pack_commands([args for args, _, _ in commands]))
        return [
            self._enqueue(args, options, callback)
            for args, options, callback in commands
        ]

    def _enqueue(self, args, options, callback) -> PendingRequest:
        command_name = command_name_of(args[0])
        request = PendingRequest(
            command_name,
            args,
            options,
            callback=callback,
            multi_bulk=command_name in MULTI_BULK_COMMANDS,
        )
        self._transaction.track(request)
        self._queue.append(request)
        return request

    def _deliver(self, request: PendingRequest, reply) -> None:
        try:
            value, error = self._outcome(request, reply)
        except Exception as e:
            # the reply is consumed either way: the error belongs to this request
            logger.debug("Response callback for %s failed: %r", request.command_name, e)
            value, error = None, e
        request.deliver(value, error)

    def _outcome(self, request: PendingRequest, reply):
        if request.in_transaction or request.is_exec or request.opens_transaction:
            return self._transaction.complete(request, reply, self._shape_reply)
        if isinstance(reply, ResponseError):
            return None, reply
        if request.multi_bulk and isinstance(reply, list):
            error = first_error(reply)
            if error is not None:
                return reply, error
        return self._shape_reply(request, reply), None

    def _shape_reply(self, request: PendingRequest, reply):
        callback = self.response_callbacks.get(request.command_name)
        if callback is None:
            return reply
        return callback(reply, **request.options)

    def _sync_result(self, request: PendingRequest):
        if request.is_exec:
            return self._transaction.raise_for_exec(request)
        error = request.error
        if error is None:
            return request.reply
        # inside MULTI the real outcome is reported by EXEC, so a member the
        # server refused to queue hands back its error instead of raising
        if request.in_transaction and isinstance(error, ResponseError):
            return error
        raise error


class Pipeline:
    """
    Pipelines stage commands and transmit them to the server in one write
    when ``execute()`` is called. This is convenient for batch processing,
    such as saving all the values in a list to Redis.

    With ``transaction=True`` (the default) the staged commands are wrapped
    in MULTI and EXEC, so they run atomically.

    Replies travel through the client's pending queue like any other, so
    callbacks queued on the client before ``execute()`` fire first.

    With ``raise_on_error=False`` a failing command does not halt the
    pipeline: its exception instance is placed in the list returned by
    ``execute()``.
    """

    def __init__(self, client: Redis, transaction: bool = True):
        self.client = client
        self.transaction = transaction
        self.command_stack: List[Tuple[Tuple, Dict[str, Any]]] = []

    def __repr__(self) -> str:
        return f"<{type(self).__module__}.{type(self).__name__}({self.client!r})>"

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.reset()

    def __len__(self) -> int:
        return len(self.command_stack)

    def __bool__(self) -> bool:
        """Pipeline instances should always evaluate to True"""
        return True

    def __getattr__(self, name: str) -> Callable[..., "Pipeline"]:
        if name.startswith("_"):
            raise AttributeError(name)
        return partial(self.execute_command, name.upper().replace("_", " "))

    def reset(self) -> None:
        self.command_stack = []

    def execute_command(self, *args, **options) -> "Pipeline":
        """
        Stage a command to be executed when execute() is next called

        Returns the current Pipeline object back so commands can be
        chained together, such as:

        pipe = pipe.set('foo', 'bar').incr('baz').decr('bang')

        At some other point, you can then run: pipe.execute(),
        which will execute all commands queued in the pipe.
        """
        if not args:
            raise DataError("A command name is required")
        self.command_stack.append((args, options))
        return self

    def execute(self, raise_on_error: bool = True) -> List[Any]:
        """Execute all the commands in the current pipeline"""
        stack = self.command_stack
        if not stack:
            return []
        if self.transaction:
            execute = self._execute_transaction
        else:
            execute = self._execute_pipeline
        try:
            return execute(stack, raise_on_error)
        finally:
            self.reset()

    def _execute_transaction(self, commands, raise_on_error) -> List[Any]:
        if self.client.in_transaction:
            raise RedisError("Cannot nest a transaction pipeline inside MULTI")
        batch = [(("MULTI",), {}, None)]
        batch.extend((args, options, None) for args, options in commands)
        batch.append((("EXEC",), {}, None))
        requests = self.client._dispatch_many(batch)
        exec_request = requests[-1]
        self.client._wait_for(exec_request)

        if raise_on_error:
            return self.client._transaction.raise_for_exec(exec_request)
        if exec_request.error is not None:
            raise exec_request.error
        return exec_request.reply

    def _execute_pipeline(self, commands, raise_on_error) -> List[Any]:
        requests = self.client._dispatch_many(
            (args, options, None) for args, options in commands
        )
        self.client._wait_for(requests[-1])

        response = [
            request.error if request.error is not None else request.reply
            for request in requests
        ]
        if raise_on_error:
            self.raise_first_error(commands, response)
        return response

    def raise_first_error(self, commands, response):
        for i, r in enumerate(response):
            if isinstance(r, RedisError):
                annotate_exception(r, i + 1, commands[i][0], context="pipeline")
                raise r
