"""
Sentence Sinks
==============

Destinations for finished NMEA0183 sentences.

Sinks are fire-and-forget: emit() never raises into the caller.
I/O failures are logged and counted. Wrap a sink that may block
(serial, network) in QueuedSink so the output timer never waits on it.
"""

import queue
import socket
import threading
from typing import Callable, Optional, Protocol
import logging

import serial

logger = logging.getLogger(__name__)

# Conventional NMEA0183-over-UDP port
DEFAULT_UDP_PORT = 10110


class SentenceSink(Protocol):
    """Anything that accepts a finished sentence."""

    def emit(self, sentence: str) -> None:
        ...

    def close(self) -> None:
        ...


class CallbackSink:
    """Hands sentences to a callable (e.g. an in-process event bus)."""

    def __init__(self, callback: Callable[[str], None]):
        self._callback = callback
        self.error_count = 0

    def emit(self, sentence: str):
        try:
            self._callback(sentence)
        except Exception as e:
            self.error_count += 1
            logger.warning(f"Sink callback error: {e}")

    def close(self):
        pass


class UdpSink:
    """Sends each sentence as one UDP datagram."""

    def __init__(self, host: str = "255.255.255.255",
                 port: int = DEFAULT_UDP_PORT,
                 broadcast: bool = True):
        self.host = host
        self.port = port
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        if broadcast:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        self.sent_count = 0
        self.error_count = 0

    def emit(self, sentence: str):
        try:
            self._sock.sendto(sentence.encode("ascii"), (self.host, self.port))
            self.sent_count += 1
        except OSError as e:
            self.error_count += 1
            logger.warning(f"UDP send to {self.host}:{self.port} failed: {e}")

    def close(self):
        self._sock.close()


class SerialSink:
    """Writes sentences to a serial port (NMEA0183 talker output)."""

    def __init__(self, port: str = "/dev/ttyUSB0", baudrate: int = 4800,
                 write_timeout: float = 0.5):
        self.port = port
        self.baudrate = baudrate
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None
        self.sent_count = 0
        self.error_count = 0

    def open(self) -> bool:
        """Open the serial port."""
        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                write_timeout=self.write_timeout
            )
            logger.info(f"Serial output on {self.port} @ {self.baudrate}")
            return True
        except serial.SerialException as e:
            logger.error(f"Failed to open serial port {self.port}: {e}")
            self._serial = None
            return False

    def emit(self, sentence: str):
        if self._serial is None:
            self.error_count += 1
            return
        try:
            self._serial.write(sentence.encode("ascii"))
            self.sent_count += 1
        except serial.SerialException as e:
            self.error_count += 1
            logger.warning(f"Serial write failed: {e}")

    def close(self):
        if self._serial is not None and self._serial.is_open:
            self._serial.close()
        self._serial = None


class QueuedSink:
    """
    Non-blocking wrapper around another sink.

    emit() only enqueues. A writer thread, started by start(), drains the
    queue into the inner sink. When the queue is full, or the writer is
    not running, the new sentence is dropped: guidance is regenerated
    every tick, so a stale backlog has no value.
    """

    def __init__(self, inner: SentenceSink, maxsize: int = 16):
        self.inner = inner
        self._queue: "queue.Queue[Optional[str]]" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self.dropped_count = 0

    def start(self) -> "QueuedSink":
        """Start the writer thread."""
        if self.is_running:
            return self
        self._thread = threading.Thread(target=self._write_loop, daemon=True,
                                        name="nmea0183-sink")
        self._thread.start()
        return self

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def emit(self, sentence: str):
        if self._thread is None:
            self.dropped_count += 1
            logger.debug("Sink not started, sentence dropped")
            return
        try:
            self._queue.put_nowait(sentence)
        except queue.Full:
            self.dropped_count += 1
            logger.debug("Sink queue full, sentence dropped")

    def close(self, timeout: float = 1.0):
        """Stop the writer thread and close the inner sink."""
        thread = self._thread
        if thread is None:
            return
        self._thread = None
        while True:
            try:
                self._queue.put(None, timeout=timeout)
                break
            except queue.Full:
                # Make room for the stop marker
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass
        thread.join(timeout=timeout)
        self.inner.close()

    def _write_loop(self):
        while True:
            sentence = self._queue.get()
            if sentence is None:
                break
            try:
                self.inner.emit(sentence)
            except Exception as e:
                logger.warning(f"Sink write error: {e}")
