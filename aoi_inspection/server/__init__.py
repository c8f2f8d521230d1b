"""Network front ends: trigger listener, REST API and the shared service."""

from .trigger_handler import TriggerHandler, TriggerMessage, parse_trigger_message
from .service import InspectionService
from .rest_api import create_app
from .inspection_server import InspectionServer

__all__ = [
    'TriggerHandler',
    'TriggerMessage',
    'parse_trigger_message',
    'InspectionService',
    'create_app',
    'InspectionServer',
]
