"""
Inspection Service
Shared command core for the trigger and REST front ends: owns the controller
and the result writers, and turns commands into JSON-ready responses.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .. import __version__
from ..config.settings import InspectionSettings
from ..controller.inspection_controller import InspectionController, InspectionResult
from ..errors import InputError
from ..storage.csv_writer import CSVWriter
from ..storage.image_io import decode_base64_image, load_image
from ..storage.image_saver import ImageSaver
from ..vision.factory import build_detectors, build_pipeline
from .trigger_handler import TriggerMessage

logger = logging.getLogger(__name__)

SERVER_NAME = "AOI Inspection Server"


class InspectionService:
    """Command handling shared by every front end."""

    def __init__(self, controller: InspectionController,
                 settings: Optional[InspectionSettings] = None,
                 csv_writer: Optional[CSVWriter] = None,
                 image_saver: Optional[ImageSaver] = None):
        self.controller = controller
        self.settings = settings or InspectionSettings()

        output = self.settings.output
        self.auto_save = output.auto_save
        self.csv_writer = csv_writer or CSVWriter(
            output.csv_dir, include_defect_details=output.include_defect_details
        )
        self.image_saver = image_saver or ImageSaver(output.image_dir, image_format=output.image_format)
        self.results_csv = Path(output.csv_dir) / "server_results.csv"

        # Set by the listeners for STATUS reporting
        self.trigger_running = False
        self.api_running = False
        self.stop_event = threading.Event()

        self._lock = threading.Lock()
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0

    @classmethod
    def from_settings(cls, settings: InspectionSettings) -> 'InspectionService':
        """Build controller, pipeline and detectors from settings."""
        pipeline = build_pipeline(settings.pipeline)
        detectors = build_detectors(settings.detectors)
        controller = InspectionController(settings.controller, pipeline, detectors)

        if settings.reference_image:
            reference = load_image(settings.reference_image)
            if reference is None:
                logger.warning(f"Reference image could not be loaded: {settings.reference_image}")
            else:
                controller.set_reference_image(reference)

        return cls(controller, settings)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def inspect_image(self, image: np.ndarray, image_path: str = "") -> InspectionResult:
        """Inspect an image and persist the result when auto-save is on."""
        result = self.controller.inspect(image)
        self._record_request(result.success)

        if result.success and self.auto_save:
            self.csv_writer.append_result(result, image_path, self.results_csv)
            self.image_saver.save_images(result)
        return result

    def inspect_path(self, image_path: str) -> InspectionResult:
        """
        Load and inspect an image file.

        Raises:
            InputError: if no path is given or the image cannot be loaded
        """
        if not image_path:
            self._record_request(False)
            raise InputError("image_path is required")

        image = load_image(image_path)
        if image is None:
            self._record_request(False)
            raise InputError(f"Failed to load image: {image_path}")
        return self.inspect_image(image, image_path)

    def inspect_base64(self, data: str) -> InspectionResult:
        """
        Decode and inspect a base64 encoded image.

        Raises:
            InputError: if the data is not a decodable image
        """
        image = decode_base64_image(data)
        if image is None:
            self._record_request(False)
            raise InputError("Invalid base64 image data")
        return self.inspect_image(image, "<base64>")

    def _record_request(self, success: bool):
        with self._lock:
            self._total_requests += 1
            if success:
                self._successful_requests += 1
            else:
                self._failed_requests += 1

    # ------------------------------------------------------------------
    # Trigger commands
    # ------------------------------------------------------------------

    def handle_command(self, message: TriggerMessage) -> Dict:
        """Execute a trigger command and build its response."""
        logger.info(f"External trigger received: command={message.command}")
        response = {'status': 'ok'}

        try:
            if message.command == 'INSPECT':
                result = self.inspect_path(message.image_path)
                if not result.success:
                    response['status'] = 'error'
                    response['message'] = result.error_message
                else:
                    response['result'] = result.to_dict()
                    logger.info(f"Inspection completed via trigger: judgment={result.status}, "
                                f"defects={result.defect_count}")

            elif message.command == 'STATUS':
                response['server_info'] = self.status()

            elif message.command == 'STATISTICS':
                stats = self.controller.get_statistics()
                response['statistics'] = {
                    'total_inspections': stats['total_inspections'],
                    'total_defects': stats['total_defects_found'],
                    'total_ng_count': stats['total_ng_count'],
                    'average_processing_time': stats['average_processing_time_ms'],
                }

            elif message.command == 'STOP':
                response['message'] = 'Server stopping'
                self.stop_event.set()

            else:
                response['status'] = 'error'
                response['message'] = f"Unknown command: {message.command}"

        except InputError as e:
            response['status'] = 'error'
            response['message'] = str(e)

        return response

    # ------------------------------------------------------------------
    # Status and configuration
    # ------------------------------------------------------------------

    def status(self) -> Dict:
        config = self.controller.config
        return {
            'name': SERVER_NAME,
            'version': __version__,
            'status': 'running',
            'running': not self.stop_event.is_set(),
            'trigger_handler_running': self.trigger_running,
            'api_server_running': self.api_running,
            'trigger_port': self.settings.server.trigger_port,
            'api_port': self.settings.server.api_port,
            'auto_save': self.auto_save,
            'controller': {
                'detector_count': self.controller.detector_count,
                'visualization_enabled': config.visualization_enabled,
                'max_allowed_defects': config.max_allowed_defects,
                'min_defect_confidence': config.min_defect_confidence,
            },
        }

    def statistics(self) -> Dict:
        with self._lock:
            server = {
                'total_requests': self._total_requests,
                'successful_requests': self._successful_requests,
                'failed_requests': self._failed_requests,
            }
        return {'server': server, 'controller': self.controller.get_statistics()}

    def detector_info(self) -> List[Dict]:
        return self.controller.describe_detectors()

    def update_config(self, visualization_enabled: Optional[bool] = None,
                      auto_save: Optional[bool] = None) -> Dict:
        """Apply runtime configuration changes; None leaves a value unchanged."""
        if visualization_enabled is not None:
            self.controller.set_visualization_enabled(visualization_enabled)
        if auto_save is not None:
            self.auto_save = bool(auto_save)
        logger.info(f"Configuration updated (visualization={self.controller.config.visualization_enabled}, "
                    f"auto_save={self.auto_save})")
        return {'status': 'ok', 'message': 'Configuration updated'}
