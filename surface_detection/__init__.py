"""
Surface detection service.

Coordinates a robot scan, surface extraction over the accumulated clouds
and operator selection of the found surfaces, behind a gRPC interface.
"""

__version__ = "0.1.0"
