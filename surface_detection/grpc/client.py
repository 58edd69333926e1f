"""
Surface Detection Client
========================

Client to drive the surface detection service via gRPC.
Provides both CLI and programmatic interfaces.
"""

import sys
from typing import Iterator, List, Optional, Sequence

import grpc

from surface_detection.grpc import codec
from surface_detection.params.models import DetectionParameters, ScanParameters
from surface_detection.pipeline.actions import DetectionAction, ParameterQuery, SelectionAction
from surface_detection.pipeline.messages import (
    ParametersResponse,
    SurfaceDetectionResponse,
    cloud_from_dict,
)


class SurfaceDetectionClient:
    """
    Client for the surface detection service.

    Usage:
        client = SurfaceDetectionClient(host='localhost', port=50051)
        client.connect()
        response = client.detect(DetectionAction.SCAN_FIND_AND_RETURN, use_defaults=True)
        client.select(SelectionAction.SELECT_ALL)
        client.disconnect()

    RPC failures surface as grpc.RpcError.
    """

    def __init__(self, host: str = 'localhost', port: int = 50051):
        self.host = host
        self.port = port
        self.channel = None
        self.connected = False

    def connect(self, timeout: Optional[float] = None):
        """Open the channel; with a timeout, wait until the server is reachable."""
        self.channel = grpc.insecure_channel(f'{self.host}:{self.port}')
        if timeout is not None:
            grpc.channel_ready_future(self.channel).result(timeout=timeout)
        self.connected = True
        return True

    def disconnect(self):
        """Close the gRPC connection."""
        if self.channel:
            self.channel.close()
            self.connected = False

    def _unary(self, name: str, request: dict, timeout: Optional[float] = None) -> dict:
        if not self.connected:
            raise RuntimeError("Not connected to surface detection service")
        call = self.channel.unary_unary(
            codec.method_path(name),
            request_serializer=codec.encode,
            response_deserializer=codec.decode,
        )
        return call(request, timeout=timeout)

    def _stream(self, name: str) -> Iterator[dict]:
        if not self.connected:
            raise RuntimeError("Not connected to surface detection service")
        call = self.channel.unary_stream(
            codec.method_path(name),
            request_serializer=codec.encode,
            response_deserializer=codec.decode,
        )
        return call({})

    def detect(
        self,
        action,
        use_defaults: bool = False,
        robot_scan: Optional[ScanParameters] = None,
        surface_detection: Optional[DetectionParameters] = None,
        stage_timeout: Optional[float] = None,
    ) -> SurfaceDetectionResponse:
        request = {"action": int(action), "use_default_parameters": use_defaults}
        if robot_scan is not None:
            request["robot_scan"] = robot_scan.to_dict()
        if surface_detection is not None:
            request["surface_detection"] = surface_detection.to_dict()
        if stage_timeout is not None:
            request["timeout"] = stage_timeout
        return SurfaceDetectionResponse.from_dict(self._unary("SurfaceDetection", request))

    def select(self, action, surface_ids: Sequence[str] = ()):
        self._unary("SelectSurface", {"action": int(action), "select_surfaces": list(surface_ids)})

    def get_parameters(self, query=ParameterQuery.GET_CURRENT_PARAMETERS) -> ParametersResponse:
        return ParametersResponse.from_dict(
            self._unary("SurfaceBlendingParameters", {"action": int(query)})
        )

    def plan_process_path(self) -> bool:
        return bool(self._unary("ProcessPath", {}).get("succeeded", False))

    def get_status(self, timeout: Optional[float] = None) -> dict:
        return self._unary("GetStatus", {}, timeout=timeout)

    def stream_selection_changes(self) -> Iterator[List[str]]:
        for msg in self._stream("StreamSelectedSurfacesChanged"):
            yield list(msg.get("selected_surfaces", []))

    def stream_region_cloud(self):
        for msg in self._stream("StreamRegionCloud"):
            yield cloud_from_dict(msg)


def main():
    """Terminal CLI for the surface detection client."""
    import argparse

    parser = argparse.ArgumentParser(description='Surface Detection Client')
    parser.add_argument('--host', default='localhost', help='Service host (default: localhost)')
    parser.add_argument('--port', type=int, default=50051, help='Service port (default: 50051)')
    parser.add_argument('--action', choices=[a.name.lower() for a in DetectionAction] +
                        ['select', 'deselect', 'select_all', 'deselect_all', 'hide_all', 'show_all',
                         'parameters', 'status', 'watch'],
                        default='status', help='Action to perform')
    parser.add_argument('--defaults', action='store_true', help='Use default parameters')
    parser.add_argument('--ids', nargs='*', default=[], help='Surface ids (select/deselect)')

    args = parser.parse_args()

    client = SurfaceDetectionClient(host=args.host, port=args.port)
    try:
        client.connect(timeout=5.0)
        print(f"✓ Connected to surface detection service at {args.host}:{args.port}")
    except grpc.FutureTimeoutError:
        print(f"✗ Connection to {args.host}:{args.port} timed out")
        sys.exit(1)

    try:
        name = args.action.upper()
        if name in DetectionAction.__members__:
            response = client.detect(DetectionAction[name], use_defaults=args.defaults)
            print(f"Surfaces found: {response.surfaces_found} ({len(response.surfaces)} returned)")
            if response.message:
                print(f"  {response.message}")
            for label, params in (("Robot scan", response.robot_scan),
                                  ("Surface detection", response.surface_detection)):
                if params is not None:
                    print(f"  {label}: {params.to_dict()}")

        elif name in SelectionAction.__members__:
            client.select(SelectionAction[name], args.ids)
            print(f"✓ {name} sent")

        elif args.action == 'parameters':
            query = ParameterQuery.GET_DEFAULT_PARAMETERS if args.defaults else ParameterQuery.GET_CURRENT_PARAMETERS
            params = client.get_parameters(query)
            for key, value in params.to_dict().items():
                print(f"{key}: {value}")

        elif args.action == 'status':
            for key, value in client.get_status().items():
                print(f"  {key}: {value}")

        elif args.action == 'watch':
            print("Watching selection changes (Ctrl+C to stop)...")
            for selected in client.stream_selection_changes():
                print(f"Selected: {selected}")

    except grpc.RpcError as e:
        print(f"✗ RPC error: {e.details()}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n✓ Stopped")
    finally:
        client.disconnect()


if __name__ == '__main__':
    main()
