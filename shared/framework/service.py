"""
Base AsyncService class for the long-running commands.

Provides lifecycle management, the health/metrics HTTP server,
stage supervision and graceful shutdown.
"""

import asyncio
import signal
from abc import ABC, abstractmethod
from typing import List, Optional

from aiohttp import web
import psutil
import structlog

from .config import ServiceConfig
from .consumer import KafkaConsumer, StageState
from .health import HealthCheck, HealthChecker
from .metrics import MetricsCollector
from .producer import KafkaProducer


logger = structlog.get_logger(__name__)

VERSION = "1.0.0"


class AsyncService(ABC):
    """
    Base class for the compute and results services.

    Provides common functionality:
    - Health and metrics HTTP endpoints
    - Stage (consumer) supervision
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(self, config: ServiceConfig, metrics: Optional[MetricsCollector] = None):
        self.config = config
        self.logger = structlog.get_logger(self.config.service_name).bind(service=self.config.service_name)

        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        self.health_checker = HealthChecker(self.config)
        self.metrics = metrics or MetricsCollector(self.config.service_name)

        self.consumers: List[KafkaConsumer] = []
        self.producers: List[KafkaProducer] = []

        self.shutdown_event = asyncio.Event()
        self.metrics_task: Optional[asyncio.Task] = None
        self.watch_tasks: List[asyncio.Task] = []
        self._stopped = False

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
            except (NotImplementedError, RuntimeError):
                # Not on the main thread, or no signal support on this platform
                pass

    def _on_signal(self, signum: int) -> None:
        self.logger.info("Received shutdown signal", signal=signal.Signals(signum).name)
        self.shutdown_event.set()

    async def startup(self) -> None:
        """Initialize service components."""
        self.logger.info("Starting service", config=self.config.to_dict())
        self._setup_signal_handlers()

        await self._startup_hook()

        for producer in self.producers:
            await producer.start()
        for consumer in self.consumers:
            await consumer.start()
            self.watch_tasks.append(asyncio.create_task(self._watch_stage(consumer)))

        if self.config.observability.metrics_enabled:
            self.metrics_task = asyncio.create_task(self._update_metrics_periodically())

        app = web.Application()
        self._setup_routes(app)
        self.runner = web.AppRunner(app)
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, host="0.0.0.0", port=self.config.observability.health_port)
        await self.site.start()

        self.logger.info("Service started", health_port=self.config.observability.health_port)

    async def shutdown(self) -> None:
        """Gracefully shutdown service."""
        if self._stopped:
            return
        self._stopped = True
        self.logger.info("Shutting down service")

        if self.site:
            await self.site.stop()

        # Stop consuming before the outputs go away
        for consumer in self.consumers:
            await consumer.stop()
        for producer in self.producers:
            await producer.stop()

        await self._shutdown_hook()

        if self.metrics_task:
            self.metrics_task.cancel()
            try:
                await self.metrics_task
            except asyncio.CancelledError:
                pass

        if self.runner:
            await self.runner.cleanup()

        self.shutdown_event.set()
        self.logger.info("Service shutdown complete")

    def _setup_routes(self, app: web.Application) -> None:
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/health/ready", self._readiness_handler)
        app.router.add_get("/health/live", self._liveness_handler)
        if self.config.observability.metrics_enabled:
            app.router.add_get("/metrics", self._metrics_handler)

    async def _health_handler(self, request: web.Request) -> web.Response:
        health_status = await self.health_checker.check_health()
        status_code = 200 if health_status["healthy"] else 503
        return web.json_response(health_status, status=status_code)

    async def _readiness_handler(self, request: web.Request) -> web.Response:
        ready_status = await self.health_checker.check_readiness()
        status_code = 200 if ready_status["ready"] else 503
        return web.json_response(ready_status, status=status_code)

    async def _liveness_handler(self, request: web.Request) -> web.Response:
        return web.json_response({"alive": True})

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        return web.Response(
            body=self.metrics.get_metrics(),
            headers={"Content-Type": self.metrics.get_content_type()},
        )

    @abstractmethod
    async def _startup_hook(self) -> None:
        """Service-specific startup logic. Override in subclasses."""

    async def _shutdown_hook(self) -> None:
        """Service-specific shutdown logic. Override in subclasses."""

    async def _on_stage_terminated(self, consumer: KafkaConsumer, state: StageState) -> None:
        """Called once when a stage loop ends. Other stages keep running by default."""

    async def _watch_stage(self, consumer: KafkaConsumer) -> None:
        state = await consumer.wait()
        if self._stopped:
            return
        log = self.logger.error if state == StageState.TERMINATED_ERROR else self.logger.info
        log("Stage terminated", topics=consumer.config.topics, state=state.value)
        await self._on_stage_terminated(consumer, state)

    async def _update_metrics_periodically(self) -> None:
        """Update process-level metrics periodically."""
        process = psutil.Process()
        while not self.shutdown_event.is_set():
            self.metrics.update_service_info(version=VERSION, environment=self.config.environment)

            health_status = await self.health_checker.check_health()
            self.metrics.set_health_status(health_status["healthy"])

            try:
                self.metrics.set_memory_usage(process.memory_info().rss)
            except psutil.Error as e:
                logger.warning("Failed to update memory metrics", error=str(e))

            await asyncio.sleep(30)

    def add_consumer(self, consumer: KafkaConsumer) -> None:
        """Add a stage consumer and report its state through the health endpoint."""
        self.consumers.append(consumer)
        self.health_checker.add_check(
            HealthCheck(
                name=f"stage:{','.join(consumer.config.topics)}",
                check_func=lambda: consumer.state != StageState.TERMINATED_ERROR,
                critical=False,
                description="Consume loop has not failed",
            )
        )

    def add_producer(self, producer: KafkaProducer) -> None:
        self.producers.append(producer)

    async def run(self) -> None:
        """Run the service until a shutdown signal or a stage asks to stop."""
        try:
            await self.startup()
            await self.shutdown_event.wait()
        except Exception as e:
            self.logger.error("Service error", error=str(e), exc_info=True)
            raise
        finally:
            await self.shutdown()
