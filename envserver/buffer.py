"""Fixed-capacity read window used to frame newline-delimited messages."""

import socket

TERMINATOR = 0x0A  # "\n"
STOP_BYTE = 0x00


class BufferOverflowError(ValueError):
    """Raised when appended data does not fit in the remaining capacity."""


class MessageBuffer:
    """Holds bytes read from a connection but not yet consumed as a message.

    Unconsumed data always starts at offset 0. Extracting a message shifts the
    remainder to the front so the same fixed-size area is reused for every
    message on the connection.
    """

    def __init__(self, capacity: int = 1024):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._buf = bytearray(capacity)
        self._ready = 0

    @property
    def capacity(self) -> int:
        return len(self._buf)

    @property
    def ready_bytes(self) -> int:
        return self._ready

    @property
    def free_space(self) -> int:
        return len(self._buf) - self._ready

    @property
    def is_empty(self) -> bool:
        return self._ready == 0

    @property
    def is_full(self) -> bool:
        return self._ready == len(self._buf)

    def pending(self) -> bytes:
        """Return a copy of the unconsumed bytes."""
        return bytes(self._buf[:self._ready])

    def append(self, data: bytes) -> int:
        """Copy *data* after the unconsumed region. Returns the number of bytes added."""
        n = len(data)
        if n > self.free_space:
            raise BufferOverflowError(
                f"{n} bytes do not fit in {self.free_space} bytes of free space"
            )
        self._buf[self._ready:self._ready + n] = data
        self._ready += n
        return n

    def recv_into(self, conn: socket.socket) -> int:
        """Read from *conn* directly into the free space. Returns bytes read (0 = EOF)."""
        if self.free_space == 0:
            raise BufferOverflowError("no free space to read into")
        with memoryview(self._buf) as view:
            n = conn.recv_into(view[self._ready:])
        self._ready += n
        return n

    def find_terminator(self) -> int | None:
        """Return the index of the first newline, or None.

        The scan stops early at a NUL byte, so a newline that follows one is
        never reported.
        """
        end = self._buf.find(TERMINATOR, 0, self._ready)
        if end == -1:
            return None
        if self._buf.find(STOP_BYTE, 0, end) != -1:
            return None
        return end

    def has_message(self) -> bool:
        return self.find_terminator() is not None

    def consume(self, n: int) -> None:
        """Discard the first *n* unconsumed bytes, shifting the rest to the front."""
        if n < 0 or n > self._ready:
            raise ValueError(f"cannot consume {n} of {self._ready} ready bytes")
        remaining = self._ready - n
        self._buf[:remaining] = self._buf[n:self._ready]
        self._ready = remaining

    def take_message(self) -> bytes | None:
        """Extract the next complete message without its terminator, or None."""
        end = self.find_terminator()
        if end is None:
            return None
        message = bytes(self._buf[:end])
        self.consume(end + 1)
        return message

    def clear(self) -> None:
        self._ready = 0
