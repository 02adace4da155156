"""
RPC client and server for exposing a storage service, based on ZeroMQ and MessagePack.

The storage service addresses files and directories by identifier and transfers file
contents in chunks, so a session consists of many small calls like find_directory(),
read_chunk() and write_chunk(). That leads to the following requirements:

* Low overhead per call
    * Every chunk of a transfer is a separate call, so latency adds up quickly.
* Multithreading support
    * Transfers of different files run in parallel and must not serialize through a
    single connection.
    * On the server side with multiple workers
    * On the client side with a socket per thread
* Automatic serialization and deserialization of dataclasses based on type annotations
    * Records like FileRecord and Chunk are passed around as is.
* Faithful recreation of exceptions
    * Errors from filenfs.errors (NotFoundError, AlreadyExistsError, ...) and builtin
    exceptions are raised again on the client side with the same type, which the
    filesystem adapter relies on to tolerate things like already existing directories.
* Support for shared secret authentication

MessagePack supports fast and compact serialization of bytes, which keeps the chunks
small on the wire. ZeroMQ provides the DEALER/ROUTER and REQUEST/REPLY patterns that
the server and client are built on.
"""

from abc import ABC
import builtins
from dataclasses import is_dataclass
from enum import auto, Enum
import functools
import logging
import threading
import time
import typing
from typing import Any, Callable, Dict, List, NoReturn, Optional, Tuple

import msgpack
import zmq

import filenfs.errors as errors
from filenfs.logger import log, summarize


class Encoding:
    """Serialization and deserialization of objects using MessagePack."""

    def __init__(self, *dataclasses: type):
        """Initialize a (de)serializer with support for the given dataclass types."""
        self._dataclasses: Dict[str, type] = {}

        for dataclass in dataclasses:
            self.register_dataclasses(dataclass)

    def register_dataclasses(self, seed_type: type) -> None:
        """
        Register all dataclass types used within the specified type.

        This includes the class itself, its fields, nested dataclasses, and container
        types like List and Optional.
        """
        for dataclass in self._discover_dataclasses(seed_type):
            self._dataclasses[dataclass.__qualname__] = dataclass

    def pack(self, obj: Any) -> bytes:
        """Serialize an object."""
        return msgpack.packb(obj, default=self.serialize_obj)

    def unpack(self, data: bytes) -> Any:
        """Deserialize an object."""
        return msgpack.unpackb(data, object_hook=self.deserialize_obj)

    def serialize_obj(self, obj: Any) -> Any:
        """Turn a dataclass or exception into a serialization friendly representation."""
        if isinstance(obj, BaseException):
            return self._serialize_exception(obj)
        elif obj.__class__.__qualname__ in self._dataclasses:
            return self._serialize_dataclass(obj)
        else:
            raise ValueError(f"unserializable object {obj}")

    def deserialize_obj(self, obj: Any) -> Any:
        """Reconstruct a dataclass or exception from a serialized representation."""
        if isinstance(obj, dict) and "__exception__" in obj:
            return self._deserialize_exception(obj)
        elif isinstance(obj, dict) and "__data__" in obj:
            return self._deserialize_dataclass(obj)
        else:
            return obj

    #
    # Exception serialization
    #

    @staticmethod
    def _serialize_exception(exc: BaseException) -> Dict:
        return {"__exception__": {"name": exc.__class__.__qualname__, "args": exc.args}}

    @staticmethod
    def _deserialize_exception(obj: Dict) -> BaseException:
        """
        Reconstruct an exception from its serialized representation.

        Errors defined in filenfs.errors and builtin exceptions are reconstructed with
        their original type, anything else as a generic Exception with the original
        arguments.
        """
        name = obj["__exception__"]["name"]
        args = obj["__exception__"]["args"]

        for namespace in (errors, builtins):
            exc_type = getattr(namespace, name, None)

            if isinstance(exc_type, type) and issubclass(exc_type, BaseException):
                return exc_type(*args)

        return Exception(*args)

    #
    # Data class serialization
    #

    @staticmethod
    def _serialize_dataclass(obj: Any) -> Dict:
        return {"__data__": {"type": obj.__class__.__qualname__, "data": obj.__dict__}}

    def _deserialize_dataclass(self, obj: Dict) -> Any:
        """
        Reconstruct a dataclass from its serialized representation.

        Only previously registered dataclass types can be deserialized.
        """
        type_name = obj["__data__"]["type"]
        type_data = obj["__data__"]["data"]

        if type_name not in self._dataclasses:
            raise TypeError(f"unknown dataclass '{type_name}'")

        try:
            return self._dataclasses[type_name](**type_data)
        except Exception as e:
            raise TypeError(f"failed to deserialize {type_name}: {e}")

    @staticmethod
    def _discover_dataclasses(*seed_types: type) -> List[type]:
        """Find all dataclass types reachable from the specified types."""
        candidates = set(seed_types)
        explored = set()
        dataclasses = set()

        while candidates:
            candidate = candidates.pop()

            if candidate in explored:
                continue

            explored.add(candidate)

            if is_dataclass(candidate):
                dataclasses.add(candidate)
                candidates.update(typing.get_type_hints(candidate).values())
            else:
                # Types nested in constructs like Optional[T] and Tuple[T, U]
                candidates.update(typing.get_args(candidate))

        return list(dataclasses)


class ReturnType(Enum):
    """Type of result for an RPC call."""

    NORMAL = auto()
    EXCEPTION = auto()
    TOKEN_ERROR = auto()


class InvalidTokenError(errors.AuthError):
    """Exception raised when an RPC call is made with a wrong authentication token."""


class Base(ABC):
    """Shared logic between RPC client and server implementation."""

    def __init__(self, service_type: type):
        """Initialize RPC (de)serialization to support the specified service class."""
        self._encoding = Encoding(*self._discover_function_types(service_type))

    @staticmethod
    def _discover_function_types(service_type: type) -> List[type]:
        """Discover all types used as parameters or return values of the service."""
        function_types: List[type] = []

        for name in dir(service_type):
            member = getattr(service_type, name)

            if callable(member) and not name.startswith("__"):
                function_types += typing.get_type_hints(member).values()

        return function_types


class Server(Base):
    """
    RPC server to expose the methods of a service instance.

    Example:
    ```
    server = rpc.Server(StorageService(accounts), token="secret", worker_count=4)
    server.serve("tcp://0.0.0.0:7000")
    ```
    """

    def __init__(
        self, service: Any, token: Optional[str] = None, worker_count: int = 1
    ):
        """
        Instantiate an RPC server for the given service instance.

        If a token is specified then clients need to be initialized with that same
        token to be allowed to make calls. Incoming calls are distributed across the
        specified number of worker threads, so the service must be thread safe if there
        is more than one.
        """
        super().__init__(service.__class__)

        self.context = zmq.Context()

        self.service = service
        self.token = token
        self.worker_count = worker_count

    def serve(self, endpoint: str) -> NoReturn:
        """
        Start listening and handling calls for clients on the specified endpoint.

        The endpoint has the format of endpoint in zmq_bind, like "tcp://0.0.0.0:7000".
        """
        socket = self.context.socket(zmq.ROUTER)
        socket.bind(endpoint)

        workers_socket = self.context.socket(zmq.DEALER)
        workers_socket.bind(f"inproc://{id(self)}")

        for _ in range(self.worker_count):
            t = threading.Thread(target=self._run_worker, daemon=True)
            t.start()

        log.info(f"serving {self.service.__class__.__name__} on {endpoint}")

        zmq.proxy(socket, workers_socket)

        assert False, "unreachable"

    def _run_worker(self) -> NoReturn:
        """Request/response loop of a single worker thread."""
        socket = self.context.socket(zmq.REP)
        socket.connect(f"inproc://{id(self)}")

        while True:
            token, function, *args = self._encoding.unpack(socket.recv())

            if token != self.token:
                socket.send(self._encoding.pack((ReturnType.TOKEN_ERROR.value, None)))
                continue

            try:
                if function is None:
                    ret = None
                else:
                    ret = getattr(self.service, function)(*args)

                socket.send(self._encoding.pack((ReturnType.NORMAL.value, ret)))
            except Exception as e:
                socket.send(self._encoding.pack((ReturnType.EXCEPTION.value, e)))


class Client(Base):
    """
    RPC client to invoke methods of a service instance exposed by an RPC server.

    A single client can be used by multiple threads and will internally create a socket
    per thread.

    Example:
    ```
    service = rpc.Client(StorageService, "tcp://localhost:7000", token="secret")
    root = service.root_uuid()
    ```
    """

    def __init__(
        self,
        service_type: type,
        endpoint: str,
        token: Optional[str] = None,
        timeout_ms: int = -1,
    ) -> None:
        """
        Instantiate an RPC client for the service type at the given endpoint.

        The endpoint has the format of endpoint in zmq_connect, like
        "tcp://localhost:7000". A negative timeout waits forever.
        """
        super().__init__(service_type)

        self.endpoint = endpoint
        self.token = token
        self.timeout_ms = timeout_ms

        self.context = zmq.Context()

        self._socket_pool: Dict[threading.Thread, zmq.Socket] = {}
        self._socket_pool_lock = threading.Lock()

    def _socket(self) -> zmq.Socket:
        """
        Return the socket of the current thread.

        Each thread needs its own socket because REQUEST-REPLY needs to happen in
        lockstep per socket.
        """
        t = threading.current_thread()

        with self._socket_pool_lock:
            if t not in self._socket_pool:
                self._prune_sockets()

                sock = self.context.socket(zmq.REQ)

                sock.setsockopt(zmq.RCVTIMEO, self.timeout_ms)
                sock.setsockopt(zmq.SNDTIMEO, self.timeout_ms)
                sock.setsockopt(zmq.LINGER, 0)

                sock.connect(self.endpoint)

                self._socket_pool[t] = sock

            return self._socket_pool[t]

    def _prune_sockets(self) -> None:
        """Close the sockets of threads that have exited, with the pool lock held."""
        for t in [t for t in self._socket_pool if not t.is_alive()]:
            self._socket_pool.pop(t).close(linger=0)

    def _discard_socket(self) -> None:
        """
        Close the socket of the current thread.

        A REQ socket that timed out waiting for a reply can't send again, so the next
        call on this thread will connect a new one.
        """
        with self._socket_pool_lock:
            sock = self._socket_pool.pop(threading.current_thread(), None)

        if sock is not None:
            sock.close(linger=0)

    def ping(self) -> None:
        """Check if the service is available."""
        self.__getattr__(None)()

    def close(self) -> None:
        """Close the client sockets and their ZeroMQ context."""
        with self._socket_pool_lock:
            for sock in self._socket_pool.values():
                sock.close(linger=0)

            self._socket_pool.clear()

        if not self.context.closed:
            self.context.destroy(linger=0)

    def __del__(self) -> None:
        self.close()

    @property
    def socket_count(self) -> int:
        """Return the number of sockets for this client."""
        with self._socket_pool_lock:
            return len(self._socket_pool)

    @staticmethod
    def _summarize_args(args: tuple) -> Tuple[str, ...]:
        return tuple([summarize(arg) for arg in args])

    def __getattr__(self, name: Optional[str]) -> Callable[..., Any]:
        """Retrieve a wrapper to call the specified remote function."""
        if name is not None and name.startswith("__"):
            raise AttributeError(name)

        return functools.partial(self._call, name)

    def _call(self, name: Optional[str], *args: Any) -> Any:
        """
        Call a remote function and return its result or raise its exception.

        The token is sent along with every call because the server keeps no sessions.
        A call that can't be sent or gets no reply in time raises TransportError.
        """
        sock = self._socket()
        t_call = time.time()

        try:
            sock.send(self._encoding.pack((self.token, name, *args)))
            typ, ret = self._encoding.unpack(sock.recv())
        except zmq.ZMQError as e:
            self._discard_socket()
            raise errors.TransportError(f"rpc call {name} failed: {e}")

        # Summarizing the arguments is only worth it if they are logged
        if log.isEnabledFor(logging.DEBUG):
            t_millis = round((time.time() - t_call) * 1000)
            log.debug(f"rpc::{name}{self._summarize_args(args)} - {t_millis} ms")

        if typ == ReturnType.NORMAL.value:
            return ret
        elif typ == ReturnType.EXCEPTION.value:
            raise ret
        elif typ == ReturnType.TOKEN_ERROR.value:
            raise InvalidTokenError("token mismatch between client and server")
        else:
            raise ValueError(f"unexpected return type {typ}")
