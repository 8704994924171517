"""Named-FIFO pipe transport."""

import errno
import logging
import os
import select
import stat
import threading
from pathlib import Path
from typing import Dict, Optional

from .base import BaseChannelTransport, ChannelError, ChannelMode
from .constants import (
    DATA_FIFO_NAME,
    DEFAULT_PIPE_DIR,
    PIPE_READ_BUF_SIZE,
    READER_POLL_SECONDS,
    READER_RETRY_SECONDS,
)


class _Channel:
    """Bookkeeping for one open channel."""

    def __init__(self, channel_id: int, name: str, path: Path, mode: ChannelMode):
        self.channel_id = channel_id
        self.name = name
        self.path = path
        self.mode = mode
        self.fd: Optional[int] = None
        self.thread: Optional[threading.Thread] = None


class FifoPipeTransport(BaseChannelTransport):
    """Channel transport backed by named FIFOs on the local filesystem.

    Each channel lives in a directory (``<pipe_dir>/<name>`` or an absolute
    path) holding a ``data`` FIFO. Read channels are serviced by one reader
    thread each; write channels are written with non-blocking writes so a
    missing or stalled reader never blocks the bridge.
    """

    def __init__(self, pipe_dir: str = DEFAULT_PIPE_DIR, read_buf_size: int = PIPE_READ_BUF_SIZE):
        """Initialize the transport.

        Args:
            pipe_dir: Base directory for relative channel names
            read_buf_size: Maximum bytes delivered per on_data callback
        """
        super().__init__()
        self.pipe_dir = Path(pipe_dir)
        self.read_buf_size = read_buf_size
        self.logger = logging.getLogger(__name__)

        self._channels: Dict[int, _Channel] = {}
        self._next_id = 0
        self._lock = threading.Lock()
        self._stop_event = threading.Event()

    def resolve_path(self, name: str) -> Path:
        """Resolve a channel name to the path of its data FIFO.

        Raises:
            ChannelError: If the name is empty
        """
        stripped = name.strip().rstrip("/")
        if not stripped:
            raise ChannelError(f"Invalid pipe name: {name!r}")
        directory = Path(stripped) if stripped.startswith("/") else self.pipe_dir / stripped
        return directory / DATA_FIFO_NAME

    def open(self, name: str, mode: ChannelMode = ChannelMode.READ) -> int:
        path = self.resolve_path(name)

        if mode is ChannelMode.WRITE:
            self._ensure_fifo(path)

        with self._lock:
            channel = _Channel(self._next_id, name, path, mode)
            self._next_id += 1
            self._channels[channel.channel_id] = channel

        if mode is ChannelMode.READ:
            channel.thread = threading.Thread(
                target=self._read_loop,
                args=(channel,),
                name=f"pipe-reader-{channel.channel_id}",
                daemon=True,
            )
            channel.thread.start()

        self.logger.info(f"Opened {mode.value} pipe '{name}' on channel {channel.channel_id} ({path})")
        return channel.channel_id

    def write(self, channel_id: int, data: bytes) -> bool:
        with self._lock:
            channel = self._channels.get(channel_id)
            if channel is None or channel.mode is not ChannelMode.WRITE:
                self.logger.warning(f"Channel {channel_id} is not open for writing")
                return False

            try:
                if channel.fd is None:
                    channel.fd = os.open(channel.path, os.O_WRONLY | os.O_NONBLOCK)
                written = os.write(channel.fd, data)
            except OSError as e:
                self._close_fd(channel)
                if e.errno == errno.ENXIO:
                    self.logger.debug(f"No reader on pipe '{channel.name}', dropping {len(data)} bytes")
                elif e.errno == errno.EAGAIN:
                    self.logger.warning(f"Pipe '{channel.name}' is full, dropping {len(data)} bytes")
                else:
                    self.logger.error(f"Failed to write to pipe '{channel.name}': {e}")
                return False

        if written != len(data):
            self.logger.warning(f"Short write to pipe '{channel.name}': {written}/{len(data)} bytes")
            return False
        return True

    def close_all(self) -> None:
        self._stop_event.set()

        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()

        for channel in channels:
            if channel.thread is not None:
                # reader threads close their own descriptor on exit
                channel.thread.join(timeout=READER_POLL_SECONDS * 5)
            else:
                self._close_fd(channel)

        self._stop_event = threading.Event()
        self.logger.debug(f"Closed {len(channels)} pipe channels")

    def _ensure_fifo(self, path: Path) -> None:
        """Create the FIFO for a write channel if it does not already exist."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                os.mkfifo(path, 0o666)
        except OSError as e:
            raise ChannelError(f"Failed to create pipe {path}: {e}") from e

        if not stat.S_ISFIFO(path.stat().st_mode):
            raise ChannelError(f"{path} exists and is not a FIFO")

    def _close_fd(self, channel: _Channel) -> None:
        if channel.fd is not None:
            try:
                os.close(channel.fd)
            except OSError as e:
                self.logger.debug(f"Error closing pipe '{channel.name}': {e}")
            channel.fd = None

    def _open_reader(self, channel: _Channel) -> Optional[int]:
        """Open the read end of a channel FIFO, or None if it is not there yet."""
        try:
            if not stat.S_ISFIFO(os.stat(channel.path).st_mode):
                return None
            return os.open(channel.path, os.O_RDONLY | os.O_NONBLOCK)
        except FileNotFoundError:
            return None
        except OSError as e:
            self.logger.debug(f"Cannot open pipe '{channel.name}' yet: {e}")
            return None

    def _read_loop(self, channel: _Channel) -> None:
        """Read chunks from a FIFO until the transport is closed."""
        stop_event = self._stop_event
        connected = False

        while not stop_event.is_set():
            if channel.fd is None:
                channel.fd = self._open_reader(channel)
                if channel.fd is None:
                    stop_event.wait(READER_RETRY_SECONDS)
                    continue

            try:
                readable, _, _ = select.select([channel.fd], [], [], READER_POLL_SECONDS)
                if not readable:
                    continue
                data = os.read(channel.fd, self.read_buf_size)
            except OSError as e:
                self.logger.warning(f"Error reading pipe '{channel.name}': {e}")
                data = b""

            if data:
                if not connected:
                    connected = True
                    self._notify(self.on_connect, channel.channel_id)
                self._notify(self.on_data, channel.channel_id, data)
                continue

            # Writer went away; reopen so the FIFO stops polling readable
            self._close_fd(channel)
            if connected:
                connected = False
                self._notify(self.on_disconnect, channel.channel_id)

        self._close_fd(channel)

    def _notify(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            self.logger.error(f"Pipe callback failed: {e}", exc_info=True)
