"""Observability: logging and metrics for the broadcast bus."""

from panelbus.observability.logger import get_logger
from panelbus.observability.metrics import Metrics

__all__ = ["get_logger", "Metrics"]
