"""
Wire codec for the service.

Messages travel as `google.protobuf.Struct`, so the service needs no
generated stubs: requests and responses are plain dicts on both ends.
Numbers come back as floats; message classes coerce them on parsing.
"""

from typing import Any, Dict

from google.protobuf import json_format, struct_pb2

SERVICE_NAME = "surface_detection.SurfaceDetectionService"


def encode(payload: Dict[str, Any]) -> bytes:
    msg = struct_pb2.Struct()
    msg.update(payload or {})
    return msg.SerializeToString()


def decode(data: bytes) -> Dict[str, Any]:
    msg = struct_pb2.Struct.FromString(data)
    return json_format.MessageToDict(msg)


def method_path(name: str) -> str:
    return f"/{SERVICE_NAME}/{name}"
