"""
Inspection Server
Runs the trigger listener and the REST API around one InspectionService.
"""

import logging
import threading
from typing import Optional

import uvicorn

from ..config.settings import InspectionSettings
from .rest_api import create_app
from .service import InspectionService
from .trigger_handler import TriggerHandler

logger = logging.getLogger(__name__)


class InspectionServer:
    """
    Front-end lifecycle manager.
    Both listeners share the service; a STOP trigger ends wait().
    """

    def __init__(self, settings: InspectionSettings, service: Optional[InspectionService] = None):
        self.settings = settings
        self.service = service or InspectionService.from_settings(settings)

        self.trigger_handler: Optional[TriggerHandler] = None
        self._api_server: Optional[uvicorn.Server] = None
        self._api_thread: Optional[threading.Thread] = None

    def start(self) -> bool:
        """Start the enabled listeners; False if none could be started."""
        server = self.settings.server
        started = False

        if server.trigger_enabled:
            self.trigger_handler = TriggerHandler(
                server.trigger_port,
                self.service.handle_command,
                host=server.host,
                max_connections=server.max_connections,
                timeout_seconds=server.timeout_seconds,
            )
            self.service.trigger_running = self.trigger_handler.start()
            started = started or self.service.trigger_running

        if server.api_enabled:
            config = uvicorn.Config(create_app(self.service), host=server.host,
                                    port=server.api_port, log_config=None)
            self._api_server = uvicorn.Server(config)
            self._api_thread = threading.Thread(target=self._api_server.run,
                                                name="rest-api", daemon=True)
            self._api_thread.start()
            self.service.api_running = True
            started = True
            logger.info(f"REST API server starting on {server.host}:{server.api_port}")

        if not started:
            logger.error("No front end could be started")
        return started

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a STOP command arrives (or the timeout passes)."""
        return self.service.stop_event.wait(timeout)

    def stop(self):
        if self.trigger_handler is not None:
            self.trigger_handler.stop()
            self.service.trigger_running = False

        if self._api_server is not None:
            self._api_server.should_exit = True
            if self._api_thread is not None:
                self._api_thread.join(timeout=5.0)
            self.service.api_running = False

        self.service.stop_event.set()
        logger.info("Inspection server stopped")

    def run_forever(self):
        """Start, wait for STOP or Ctrl+C, then shut down."""
        if not self.start():
            return
        try:
            while not self.wait(timeout=0.5):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.stop()
