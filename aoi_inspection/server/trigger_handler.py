"""
External Trigger Handler
Line-delimited TCP command listener (PLC / host trigger).

Each request line is either JSON ({"command": ..., "image_path": ...,
"parameters": {...}}) or plain text ("INSPECT /path/to/image.png").
Exactly one JSON line is written back per request; connections stay open
until the peer closes them or stays idle past the timeout.
"""

import asyncio
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class TriggerMessage:
    """One parsed trigger request."""
    command: str = ""
    image_path: str = ""
    parameters: Dict = field(default_factory=dict)
    client_address: str = ""
    client_port: int = 0

    def to_dict(self) -> Dict:
        return {
            'command': self.command,
            'image_path': self.image_path,
            'parameters': self.parameters,
            'client_address': self.client_address,
            'client_port': self.client_port,
        }


def parse_trigger_message(raw: str, client_address: str = "", client_port: int = 0) -> TriggerMessage:
    """
    Parse a request line.

    JSON objects with a "command" key are read field by field; anything else
    is split on whitespace into a command and an optional image path.
    """
    message = TriggerMessage(client_address=client_address, client_port=client_port)
    text = raw.strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict) and 'command' in data:
        message.command = str(data['command']).strip().upper()
        message.image_path = str(data.get('image_path') or '')
        parameters = data.get('parameters')
        message.parameters = parameters if isinstance(parameters, dict) else {}
        return message

    parts = text.split(maxsplit=1)
    if parts:
        message.command = parts[0].upper()
    if len(parts) > 1:
        message.image_path = parts[1].strip()
    return message


class TriggerHandler:
    """Asyncio line server running on its own background thread."""

    def __init__(self, port: int, callback: Callable[[TriggerMessage], Dict],
                 host: str = "0.0.0.0", max_connections: int = 10,
                 timeout_seconds: float = 30.0):
        """
        Initialize trigger handler.

        Args:
            port: TCP port (0 picks a free port, see bound_port)
            callback: Called with each TriggerMessage, returns the response dict
            host: Bind address
            max_connections: Concurrent connection limit
            timeout_seconds: Idle time before a connection is closed
        """
        self.host = host
        self.port = port
        self.callback = callback
        self.max_connections = max_connections
        self.timeout_seconds = timeout_seconds
        self.bound_port: Optional[int] = None

        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop: Optional[asyncio.Event] = None
        self._ready = threading.Event()
        self._start_error: Optional[BaseException] = None

        self._stats_lock = threading.Lock()
        self._total_connections = 0
        self._active_connections = 0
        self._total_messages = 0
        self._rejected_connections = 0
        self._writers = set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and self.bound_port is not None

    def start(self) -> bool:
        """Start listening; returns False if the port could not be bound."""
        if self.is_running:
            return True

        self._ready.clear()
        self._start_error = None
        self._thread = threading.Thread(target=self._run, name="trigger-handler", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=5.0)

        if self._start_error is not None or self.bound_port is None:
            logger.error(f"Trigger handler failed to start on port {self.port}: {self._start_error}")
            return False

        logger.info(f"Trigger handler listening on {self.host}:{self.bound_port}")
        return True

    def stop(self):
        if self._loop is not None and self._stop is not None:
            self._loop.call_soon_threadsafe(self._stop.set)
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        self._thread = None
        self.bound_port = None
        logger.info("Trigger handler stopped")

    def get_statistics(self) -> Dict:
        with self._stats_lock:
            return {
                'total_connections': self._total_connections,
                'active_connections': self._active_connections,
                'rejected_connections': self._rejected_connections,
                'total_messages': self._total_messages,
            }

    def _run(self):
        loop = asyncio.new_event_loop()
        self._loop = loop
        try:
            loop.run_until_complete(self._serve())
        except OSError as e:
            self._start_error = e
        finally:
            self._ready.set()
            loop.close()
            self._loop = None

    async def _serve(self):
        self._stop = asyncio.Event()
        server = await asyncio.start_server(self._handle_client, self.host, self.port)
        self.bound_port = server.sockets[0].getsockname()[1]
        self._ready.set()

        async with server:
            await self._stop.wait()
            # Idle clients would otherwise hold the server open
            for writer in list(self._writers):
                writer.close()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peer = writer.get_extra_info('peername') or ("", 0)
        address, port = peer[0], peer[1]

        with self._stats_lock:
            if self._active_connections >= self.max_connections:
                self._rejected_connections += 1
                rejected = True
            else:
                self._active_connections += 1
                self._total_connections += 1
                rejected = False

        if rejected:
            logger.warning(f"Connection limit reached, rejecting {address}:{port}")
            await self._send(writer, {'status': 'error', 'message': 'Too many connections'})
            writer.close()
            return

        logger.info(f"Trigger client connected: {address}:{port}")
        self._writers.add(writer)
        try:
            while True:
                try:
                    line = await asyncio.wait_for(reader.readline(), self.timeout_seconds)
                except asyncio.TimeoutError:
                    logger.info(f"Trigger client {address}:{port} idle timeout")
                    break

                if not line:
                    break

                text = line.decode('utf-8', errors='replace').strip()
                if not text:
                    continue

                with self._stats_lock:
                    self._total_messages += 1

                message = parse_trigger_message(text, address, port)
                response = await asyncio.get_running_loop().run_in_executor(
                    None, self._dispatch, message
                )
                await self._send(writer, response)
        except ConnectionError as e:
            logger.warning(f"Trigger client {address}:{port} connection error: {e}")
        finally:
            with self._stats_lock:
                self._active_connections -= 1
            self._writers.discard(writer)
            writer.close()
            logger.info(f"Trigger client disconnected: {address}:{port}")

    def _dispatch(self, message: TriggerMessage) -> Dict:
        try:
            response = self.callback(message)
        except Exception as e:
            logger.exception("Trigger callback failed")
            return {'status': 'error', 'message': str(e)}
        logger.info(f"Trigger processed: command={message.command}")
        return response

    @staticmethod
    async def _send(writer: asyncio.StreamWriter, response: Dict):
        writer.write((json.dumps(response) + "\n").encode('utf-8'))
        await writer.drain()
