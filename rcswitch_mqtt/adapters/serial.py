"""Line-oriented serial transport built on pyserial-asyncio."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

import serial_asyncio

from .. import constants
from ..config import SerialConfig

LOGGER = logging.getLogger(__name__)


class SerialTransportError(RuntimeError):
    """Raised when the serial port cannot be opened or written to."""


class SerialLineTransport:
    """CRLF-framed reader and LF-terminated writer for the transceiver port."""

    def __init__(
        self,
        config: SerialConfig,
        *,
        delimiter: bytes = constants.SERIAL_RX_DELIMITER,
        encoding: str = constants.SERIAL_ENCODING,
    ) -> None:
        self.config = config
        self.delimiter = delimiter
        self.encoding = encoding

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None

    async def open(self) -> None:
        if self.is_open:
            return

        LOGGER.debug("Opening serial port %s (%s)", self.config.path, self.config.options)
        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                **self.config.open_kwargs()
            )
        except (OSError, ValueError) as exc:
            raise SerialTransportError(
                f"Cannot open serial port {self.config.path}: {exc}"
            ) from exc
        LOGGER.info("Serial port open: %s @ %s baud", self.config.path, self.config.baudrate)

    async def close(self) -> None:
        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is None:
            return

        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=2.0)
        except (OSError, asyncio.TimeoutError) as exc:
            LOGGER.debug("Serial port did not close cleanly: %r", exc)
        LOGGER.info("Serial port closed: %s", self.config.path)

    async def write_line(self, line: str) -> None:
        if self._writer is None:
            raise SerialTransportError("Serial port is not open")

        data = (line + constants.SERIAL_TX_TERMINATOR).encode(self.encoding)
        self._writer.write(data)
        await self._writer.drain()

    async def read_line(self) -> Optional[str]:
        """Return the next line without its delimiter, or None at end of stream.

        A line longer than the reader's buffer limit is dropped whole: the
        oversized chunk and whatever follows it up to the next delimiter are
        discarded, and reading resumes at the next complete line.
        """

        if self._reader is None:
            raise SerialTransportError("Serial port is not open")

        discarding = False
        while True:
            try:
                raw = await self._reader.readuntil(self.delimiter)
            except asyncio.IncompleteReadError as exc:
                if exc.partial:
                    LOGGER.debug("Discarding unterminated serial data: %r", exc.partial)
                return None
            except asyncio.LimitOverrunError as exc:
                await self._reader.readexactly(exc.consumed)
                if not discarding:
                    LOGGER.warning("Serial line exceeded buffer limit; discarded")
                discarding = True
                continue

            if discarding:
                discarding = False
                continue
            return raw[: -len(self.delimiter)].decode(self.encoding, errors="replace")

    async def lines(self) -> AsyncIterator[str]:
        while True:
            line = await self.read_line()
            if line is None:
                return
            yield line
