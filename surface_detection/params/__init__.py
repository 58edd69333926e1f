"""
Parameter groups for the surface detection service.

This package contains:
- The frozen parameter dataclasses (scan, detection, blending plan)
- The store holding current and default values (store)
- YAML configuration loading (loader)
"""

from .models import (
    ParameterGroup,
    ParameterSet,
    ScanParameters,
    DetectionParameters,
    BlendingParameters,
)
from .store import ParameterStore
from .loader import ServiceConfig, ServerConfig, load_config, parse_config


__all__ = [
    "ParameterGroup",
    "ParameterSet",
    "ScanParameters",
    "DetectionParameters",
    "BlendingParameters",
    "ParameterStore",
    "ServiceConfig",
    "ServerConfig",
    "load_config",
    "parse_config",
]
