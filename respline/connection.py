import logging
import socket
from abc import abstractmethod
from typing import Any, Dict, Optional, Type
from urllib.parse import parse_qs, unquote, urlparse

from .encoder import Encoder
from .exceptions import ConnectionError, RedisError, TimeoutError
from .parser import BaseParser, PythonParser
from .utils import format_error_message, str_if_bytes

logger = logging.getLogger(__name__)

SYM_CRLF = b"\r\n"
SYM_EMPTY = b""

# values longer than this are written as their own chunk instead of being
# copied into the request buffer
BUFFER_CUTOFF = 6000

FALSE_STRINGS = ("0", "F", "FALSE", "N", "NO")


class PythonRespSerializer:
    "Encodes one command as a RESP multi-bulk request"

    def __init__(self, buffer_cutoff, encode) -> None:
        self._buffer_cutoff = buffer_cutoff
        self.encode = encode

    def pack(self, *args):
        """
        Return the request as a list of chunks. Short arguments are copied
        into a shared buffer; long ones and memoryviews become chunks of
        their own.
        """
        name = args[0]
        if isinstance(name, str):
            name = name.encode()
        # multi-word names such as 'CONFIG GET' go out as separate arguments
        args = tuple(name.split()) + args[1:]

        output = []
        buff = bytearray(b"*%d\r\n" % len(args))
        cutoff = self._buffer_cutoff
        for arg in map(self.encode, args):
            buff += b"$%d\r\n" % len(arg)
            if len(buff) > cutoff or len(arg) > cutoff or isinstance(arg, memoryview):
                output.append(bytes(buff))
                output.append(arg)
                buff = bytearray(SYM_CRLF)
            else:
                buff += arg
                buff += SYM_CRLF
        output.append(bytes(buff))
        return output


class AbstractConnection:
    """
    One socket to a Redis server, opened on the first write.

    Requests go out through ``send_packed_command`` and replies come back,
    one per call, through ``read_response``. Any failure on the socket
    closes it: after a partial write or read the position in the stream
    is unknown.
    """

    def __init__(
        self,
        db: int = 0,
        socket_timeout: Optional[float] = None,
        socket_connect_timeout: Optional[float] = None,
        encoding: str = "utf-8",
        encoding_errors: str = "strict",
        decode_responses: bool = False,
        parser_class: Type[BaseParser] = PythonParser,
        socket_read_size: int = 65536,
        client_name: Optional[str] = None,
    ):
        self.db = db
        self.client_name = client_name
        self.socket_timeout = socket_timeout
        self.socket_connect_timeout = (
            socket_timeout if socket_connect_timeout is None else socket_connect_timeout
        )
        self.encoder = Encoder(encoding, encoding_errors, decode_responses)
        self._sock = None
        self._parser = parser_class(socket_read_size=socket_read_size)
        self._command_packer = PythonRespSerializer(BUFFER_CUTOFF, self.encoder.encode)

    def __repr__(self):
        repr_args = ",".join([f"{k}={v}" for k, v in self.repr_pieces()])
        return f"<{self.__class__.__module__}.{self.__class__.__name__}({repr_args})>"

    @abstractmethod
    def repr_pieces(self):
        pass

    def __del__(self):
        try:
            self.disconnect()
        except Exception:
            pass

    @property
    def is_connected(self) -> bool:
        return self._sock is not None

    def connect(self):
        "Connects to the Redis server if not already connected"
        if self._sock:
            return
        try:
            self._sock = self._connect()
        except socket.timeout:
            raise TimeoutError("Timeout connecting to server")
        except OSError as e:
            raise ConnectionError(self._error_message(e))

        logger.debug("Connected to %s", self._host_error())
        try:
            self.on_connect()
        except RedisError:
            self.disconnect()
            raise

    @abstractmethod
    def _connect(self):
        pass

    @abstractmethod
    def _host_error(self):
        pass

    def _error_message(self, exception):
        return format_error_message(self._host_error(), exception)

    def _expect_ok(self, *args, error):
        self.send_command(*args)
        if str_if_bytes(self.read_response()) != "OK":
            raise ConnectionError(error)

    def on_connect(self):
        "Hand the socket to the parser, then name the client and select the db"
        self._parser.on_connect(self)
        if self.client_name:
            self._expect_ok(
                "CLIENT", "SETNAME", self.client_name, error="Error setting client name"
            )
        if self.db:
            self._expect_ok("SELECT", self.db, error="Invalid Database")

    def disconnect(self):
        "Disconnects from the Redis server"
        self._parser.on_disconnect()
        sock, self._sock = self._sock, None
        if sock is None:
            return

        logger.debug("Disconnecting from %s", self._host_error())
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except (OSError, TypeError):
            pass
        try:
            sock.close()
        except OSError:
            pass

    def send_packed_command(self, command):
        """Send an already packed command to the Redis server"""
        if not self._sock:
            self.connect()
        if isinstance(command, (bytes, memoryview)):
            command = [command]
        try:
            for item in command:
                self._sock.sendall(item)
        except socket.timeout:
            self.disconnect()
            raise TimeoutError("Timeout writing to socket")
        except OSError as e:
            self.disconnect()
            if len(e.args) == 1:
                errno, errmsg = "UNKNOWN", e.args[0]
            else:
                errno, errmsg = e.args[:2]
            raise ConnectionError(f"Error {errno} while writing to socket. {errmsg}.")
        except BaseException:
            self.disconnect()
            raise

    def send_command(self, *args):
        """Pack and send a command to the Redis server"""
        self.send_packed_command(self._command_packer.pack(*args))

    def read_response(self):
        """
        Read one reply from a previously sent command.

        Server errors are returned as exception instances, not raised: the
        caller decides which pending request they belong to.
        """
        try:
            return self._parser.read_response()
        except socket.timeout:
            self.disconnect()
            raise TimeoutError(f"Timeout reading from {self._host_error()}")
        except OSError as e:
            self.disconnect()
            raise ConnectionError(
                f"Error while reading from {self._host_error()} : {e.args}"
            )
        except BaseException:
            self.disconnect()
            raise

    def pack_command(self, *args):
        """Pack a series of arguments into the Redis protocol"""
        return self._command_packer.pack(*args)

    def pack_commands(self, commands):
        """
        Pack several commands for a single write. Small chunks are joined;
        chunks over the cutoff and memoryviews are passed through as they are.
        """
        output = []
        pieces = []
        pieces_length = 0
        for cmd in commands:
            for chunk in self._command_packer.pack(*cmd):
                large = len(chunk) > BUFFER_CUTOFF or isinstance(chunk, memoryview)
                if pieces and (large or pieces_length > BUFFER_CUTOFF):
                    output.append(SYM_EMPTY.join(pieces))
                    pieces = []
                    pieces_length = 0
                if large:
                    output.append(chunk)
                else:
                    pieces.append(chunk)
                    pieces_length += len(chunk)
        if pieces:
            output.append(SYM_EMPTY.join(pieces))
        return output


class Connection(AbstractConnection):
    "Manages TCP communication to and from a Redis server"

    def __init__(
        self,
        host="localhost",
        port=6379,
        socket_keepalive=False,
        socket_keepalive_options=None,
        socket_type=0,
        **kwargs,
    ):
        self.host = host
        self.port = int(port)
        self.socket_keepalive = socket_keepalive
        self.socket_keepalive_options = socket_keepalive_options or {}
        self.socket_type = socket_type
        super().__init__(**kwargs)

    def repr_pieces(self):
        pieces = [("host", self.host), ("port", self.port), ("db", self.db)]
        if self.client_name:
            pieces.append(("client_name", self.client_name))
        return pieces

    def _connect(self):
        "Create a TCP socket, trying each address the host resolves to"
        error = OSError("socket.getaddrinfo returned an empty list")
        for family, socktype, proto, _, address in socket.getaddrinfo(
            self.host, self.port, self.socket_type, socket.SOCK_STREAM
        ):
            sock = socket.socket(family, socktype, proto)
            try:
                self._set_options(sock)
                sock.settimeout(self.socket_connect_timeout)
                sock.connect(address)
            except OSError as e:
                error = e
                sock.close()
                continue
            sock.settimeout(self.socket_timeout)
            return sock
        raise error

    def _set_options(self, sock):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        if self.socket_keepalive:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            for option, value in self.socket_keepalive_options.items():
                sock.setsockopt(socket.IPPROTO_TCP, option, value)

    def _host_error(self):
        return f"{self.host}:{self.port}"


class UnixDomainSocketConnection(AbstractConnection):
    "Manages UDS communication to and from a Redis server"

    def __init__(self, path="", **kwargs):
        self.path = path
        super().__init__(**kwargs)

    def repr_pieces(self):
        pieces = [("path", self.path), ("db", self.db)]
        if self.client_name:
            pieces.append(("client_name", self.client_name))
        return pieces

    def _connect(self):
        "Create a Unix domain socket connection"
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.socket_connect_timeout)
        try:
            sock.connect(self.path)
        except OSError:
            sock.close()
            raise
        sock.settimeout(self.socket_timeout)
        return sock

    def _host_error(self):
        return self.path


def to_bool(value):
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.upper() in FALSE_STRINGS:
        return False
    return bool(value)


URL_QUERY_ARGUMENT_PARSERS = {
    "db": int,
    "socket_timeout": float,
    "socket_connect_timeout": float,
    "socket_keepalive": to_bool,
    "decode_responses": to_bool,
}


def parse_url(url: str) -> Dict[str, Any]:
    if not (url.startswith("redis://") or url.startswith("unix://")):
        raise ValueError(
            "Redis URL must specify one of the following "
            "schemes (redis://, unix://)"
        )

    url = urlparse(url)
    kwargs: Dict[str, Any] = {}

    for name, value in parse_qs(url.query).items():
        if value and len(value) > 0:
            value = unquote(value[0])
            parser = URL_QUERY_ARGUMENT_PARSERS.get(name)
            if parser:
                try:
                    kwargs[name] = parser(value)
                except (TypeError, ValueError):
                    raise ValueError(f"Invalid value for '{name}' in connection URL.")
            else:
                kwargs[name] = value

    if url.username or url.password:
        raise ValueError("Authentication is not supported in connection URLs.")

    if url.scheme == "unix":
        if url.path:
            kwargs["path"] = unquote(url.path)
        kwargs["connection_class"] = UnixDomainSocketConnection

    else:  # implied:  url.scheme == "redis"
        if url.hostname:
            kwargs["host"] = unquote(url.hostname)
        if url.port:
            kwargs["port"] = int(url.port)

        # If there's a path argument, use it as the db argument if a
        # querystring value wasn't specified
        if url.path and "db" not in kwargs:
            try:
                kwargs["db"] = int(unquote(url.path).replace("/", ""))
            except (AttributeError, ValueError):
                pass

    return kwargs

