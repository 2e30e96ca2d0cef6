from .exceptions import (
    AuthenticationError,
    BusyLoadingError,
    ConnectionError,
    ExecAbortError,
    InvalidResponse,
    NoPermissionError,
    NoScriptError,
    ReadOnlyError,
    RedisError,
    ResponseError,
)

SERVER_CLOSED_CONNECTION_ERROR = "Connection closed by server."
CRLF = b"\r\n"

# Used to signal that hiredis does not have enough data to parse.
# ``False`` and ``None`` are legitimate RESP payloads.
NOT_ENOUGH_DATA = object()


class BaseParser:
    EXCEPTION_CLASSES = {
        "ERR": {
            "max number of clients reached": ConnectionError,
        },
        "WRONGPASS": AuthenticationError,
        "EXECABORT": ExecAbortError,
        "LOADING": BusyLoadingError,
        "NOSCRIPT": NoScriptError,
        "READONLY": ReadOnlyError,
        "NOAUTH": AuthenticationError,
        "NOPERM": NoPermissionError,
    }

    def parse_error(self, response):
        "Parse an error response"
        error_code = response.split(" ")[0]
        if error_code in self.EXCEPTION_CLASSES:
            response = response[len(error_code) + 1 :]
            exception_class = self.EXCEPTION_CLASSES[error_code]
            if isinstance(exception_class, dict):
                exception_class = exception_class.get(response, ResponseError)
            return exception_class(response)
        return ResponseError(response)

    def on_connect(self, connection):
        raise NotImplementedError()

    def on_disconnect(self):
        raise NotImplementedError()

    def read_response(self):
        raise NotImplementedError()


class SocketBuffer:
    """
    Bytes received from the socket that the parser has not consumed yet.

    Consumed bytes are dropped the next time the socket is read, so the
    buffer never holds more than one read beyond the current reply.
    """

    def __init__(self, sock, socket_read_size):
        self._sock = sock
        self.socket_read_size = socket_read_size
        self._data = bytearray()
        self._pos = 0

    @property
    def length(self):
        return len(self._data) - self._pos

    def _fill(self):
        chunk = self._sock.recv(self.socket_read_size)
        # an empty read means the server shut the socket down
        if not chunk:
            raise ConnectionError(SERVER_CLOSED_CONNECTION_ERROR)
        if self._pos:
            del self._data[: self._pos]
            self._pos = 0
        self._data += chunk

    def readline(self):
        "Return the next line without its terminator"
        end = self._data.find(CRLF, self._pos)
        while end == -1:
            self._fill()
            end = self._data.find(CRLF, self._pos)
        line = bytes(self._data[self._pos : end])
        self._pos = end + 2
        return line

    def read(self, length):
        "Return the next ``length`` bytes, skipping the terminator after them"
        while self.length < length + 2:
            self._fill()
        data = bytes(self._data[self._pos : self._pos + length])
        self._pos += length + 2
        return data


class PythonParser(BaseParser):
    "Plain Python RESP2 parsing class"

    def __init__(self, socket_read_size):
        self.socket_read_size = socket_read_size
        self.encoder = None
        self._buffer = None

    def on_connect(self, connection):
        "Called when the socket connects"
        self._buffer = SocketBuffer(connection._sock, self.socket_read_size)
        self.encoder = connection.encoder

    def on_disconnect(self):
        "Called when the socket disconnects"
        self._buffer = None
        self.encoder = None

    def read_response(self):
        """
        Read one complete reply. Server errors are returned as exception
        instances, except those that leave the connection unusable, which
        are raised.
        """
        if self._buffer is None:
            raise ConnectionError(SERVER_CLOSED_CONNECTION_ERROR)
        return self._read_reply()

    def _read_reply(self):
        raw = self._buffer.readline()
        byte, payload = raw[:1], raw[1:]

        if byte == b"+":
            return self.encoder.decode(payload)
        if byte == b"-":
            error = self.parse_error(payload.decode("utf-8", errors="replace"))
            if isinstance(error, ConnectionError):
                raise error
            return error
        if byte == b":":
            return self._header_int(raw)
        if byte == b"$":
            length = self._header_int(raw)
            if length == -1:
                return None
            if length < -1:
                raise InvalidResponse(f"Protocol Error: {raw!r}")
            return self.encoder.decode(self._buffer.read(length))
        if byte == b"*":
            length = self._header_int(raw)
            if length == -1:
                return None
            if length < -1:
                raise InvalidResponse(f"Protocol Error: {raw!r}")
            return [self._read_reply() for _ in range(length)]
        raise InvalidResponse(f"Protocol Error: {raw!r}")

    @staticmethod
    def _header_int(raw):
        try:
            return int(raw[1:])
        except ValueError:
            raise InvalidResponse(f"Protocol Error: {raw!r}")


class HiredisParser(BaseParser):
    "Parser class for connections using the hiredis C reader"

    def __init__(self, socket_read_size):
        try:
            import hiredis
        except ImportError:
            raise RedisError(
                "Hiredis is not installed. Install respline[hiredis] "
                "or use the default PythonParser."
            )
        self._hiredis = hiredis
        self.socket_read_size = socket_read_size
        self._buffer = bytearray(socket_read_size)
        self._sock = None
        self._reader = None

    def on_connect(self, connection):
        self._sock = connection._sock
        kwargs = {
            "protocolError": InvalidResponse,
            "replyError": self.parse_error,
            "notEnoughData": NOT_ENOUGH_DATA,
        }
        if connection.encoder.decode_responses:
            kwargs["encoding"] = connection.encoder.encoding
            kwargs["errors"] = connection.encoder.encoding_errors
        self._reader = self._hiredis.Reader(**kwargs)

    def on_disconnect(self):
        self._sock = None
        self._reader = None

    def _feed_from_socket(self):
        bufflen = self._sock.recv_into(self._buffer)
        if bufflen == 0:
            raise ConnectionError(SERVER_CLOSED_CONNECTION_ERROR)
        self._reader.feed(self._buffer, 0, bufflen)

    def read_response(self):
        if not self._reader:
            raise ConnectionError(SERVER_CLOSED_CONNECTION_ERROR)

        response = self._reader.gets()
        while response is NOT_ENOUGH_DATA:
            self._feed_from_socket()
            response = self._reader.gets()
        if isinstance(response, ConnectionError):
            raise response
        return response
