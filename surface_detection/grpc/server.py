# surface_detection/grpc/server.py
import time
import grpc
import logging
import threading
from concurrent import futures
from typing import Any, Dict, Iterator

from surface_detection.errors import ConfigurationError, SurfaceDetectionError, UnsupportedActionError
from surface_detection.grpc import codec
from surface_detection.params.models import ParameterGroup
from surface_detection.pipeline.messages import ParameterOverrides, cloud_to_dict
from surface_detection.pipeline.topics import Topic
from surface_detection.service import SurfaceDetectionService

logger = logging.getLogger("GRPCServer")

STREAM_POLL_INTERVAL = 0.5


class SurfaceServiceImpl:
    """
    Implementation wrapper adapted to the generic gRPC handlers below.
    Exposes methods that match the RPC names; requests and replies are dicts.
    """

    def __init__(self, service: SurfaceDetectionService):
        self.service = service
        self.controller = service.controller
        self.logger = logging.getLogger("SurfaceServiceImpl")

    def SurfaceDetection(self, request: Dict[str, Any]) -> Dict[str, Any]:
        use_defaults = bool(request.get("use_default_parameters", False))
        timeout = request.get("timeout")
        if timeout is not None:
            timeout = float(timeout)
        overrides = None if use_defaults else ParameterOverrides.from_request(request)

        response = self.controller.handle(
            request.get("action"),
            overrides=overrides,
            use_defaults=use_defaults,
            timeout=timeout,
        )
        return response.to_dict()

    def SelectSurface(self, request: Dict[str, Any]) -> Dict[str, Any]:
        targets = [str(s) for s in request.get("select_surfaces", [])]
        self.controller.select_surfaces(request.get("action"), targets)
        return {}

    def SurfaceBlendingParameters(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.controller.get_parameters(request.get("action")).to_dict()

    def ProcessPath(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"succeeded": self.controller.plan_process_path()}

    def GetStatus(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self.controller.status().to_dict()

    def stream_topic(self, topic: Topic, to_dict, context) -> Iterator[Dict[str, Any]]:
        """Forward topic messages until the client goes away."""
        sub = topic.subscribe()
        self.logger.info(f"Streaming '{topic.name}' to {context.peer()}")
        try:
            while context.is_active():
                msg = sub.get(timeout=STREAM_POLL_INTERVAL)
                if msg is None:
                    continue
                yield to_dict(msg)
        finally:
            sub.close()
            self.logger.info(f"Stopped streaming '{topic.name}'")


class GRPCServer:
    def __init__(self, service: SurfaceDetectionService, host: str = "[::]", port: int = 50051,
                 dispatch_workers: int = 4, stream_workers: int = 4):
        self.service = service
        self.host = host
        # A stream holds a worker for its whole lifetime; capping streams at
        # stream_workers leaves dispatch_workers free for unary calls
        self.server = grpc.server(futures.ThreadPoolExecutor(max_workers=dispatch_workers + stream_workers))
        self._stream_slots = threading.BoundedSemaphore(stream_workers)
        self._impl = SurfaceServiceImpl(service)

        handlers = {
            "SurfaceDetection": self._unary(self._impl.SurfaceDetection),
            "SelectSurface": self._unary(self._impl.SelectSurface),
            "SurfaceBlendingParameters": self._unary(self._impl.SurfaceBlendingParameters),
            "ProcessPath": self._unary(self._impl.ProcessPath),
            "GetStatus": self._unary(self._impl.GetStatus),
            "StreamSelectedSurfacesChanged": self._stream(
                service.selected_surfaces_changed, lambda msg: msg.to_dict()),
            "StreamScanPathPreview": self._stream(
                service.scan_path_preview, lambda poses: {"poses": [p.to_dict() for p in poses]}),
            "StreamRegionCloud": self._stream(
                service.region_cloud,
                lambda cloud: cloud_to_dict(
                    cloud, service.store.get_current(ParameterGroup.DETECTION).frame_id)),
        }
        self.server.add_generic_rpc_handlers(
            (grpc.method_handlers_generic_handler(codec.SERVICE_NAME, handlers),)
        )
        self.port = self.server.add_insecure_port(f"{self.host}:{port}")

    @staticmethod
    def _unary(method):
        def handler(request, context):
            try:
                return method(request)
            except (UnsupportedActionError, ConfigurationError, ValueError) as e:
                # Malformed request: unknown action or unusable values
                logger.warning(f"{method.__name__} rejected: {e}")
                context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(e))

        return grpc.unary_unary_rpc_method_handler(
            handler,
            request_deserializer=codec.decode,
            response_serializer=codec.encode,
        )

    def _stream(self, topic: Topic, to_dict):
        def handler(request, context):
            if not self._stream_slots.acquire(blocking=False):
                logger.warning(f"Rejecting stream on '{topic.name}' from {context.peer()}: no free slots")
                context.abort(grpc.StatusCode.RESOURCE_EXHAUSTED, "Too many open streams")
            try:
                yield from self._impl.stream_topic(topic, to_dict, context)
            finally:
                self._stream_slots.release()

        return grpc.unary_stream_rpc_method_handler(
            handler,
            request_deserializer=codec.decode,
            response_serializer=codec.encode,
        )

    def start(self):
        self.server.start()
        logger.info(f"gRPC server started on {self.host}:{self.port}")

    def stop(self, grace=5):
        self.server.stop(grace)
        logger.info("gRPC server stopped")


# Convenience CLI runner
def run_server(service: SurfaceDetectionService, host: str = "[::]", port: int = 50051,
               dispatch_workers: int = 4, stream_workers: int = 4):
    server = GRPCServer(service, host, port, dispatch_workers, stream_workers)
    server.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        server.stop(0)
        service.stop()


def main(argv=None):
    import argparse

    from surface_detection.params.loader import load_config

    parser = argparse.ArgumentParser(description='Surface Detection gRPC Server')
    parser.add_argument('--config', default=None, help='YAML configuration file (default: packaged defaults)')
    parser.add_argument('--host', default=None, help='Server host (default: from config)')
    parser.add_argument('--port', type=int, default=None, help='Server port (default: from config)')
    parser.add_argument('--workers', type=int, default=None,
                        help='Concurrent request workers (default: from config)')
    parser.add_argument('--log-level', default='INFO', help='Logging level (default: INFO)')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
        service = SurfaceDetectionService(config)
        service.start()
        logger.info("✓ Surface detection service initialized")
    except SurfaceDetectionError as e:
        logger.error(f"Failed to start service: {e}")
        return 1

    server_cfg = config.server
    host = args.host or server_cfg.host
    port = args.port if args.port is not None else server_cfg.port
    workers = args.workers or server_cfg.dispatch_workers

    logger.info(f"Starting gRPC server on {host}:{port}")
    run_server(service, host=host, port=port, dispatch_workers=workers,
               stream_workers=server_cfg.stream_workers)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
