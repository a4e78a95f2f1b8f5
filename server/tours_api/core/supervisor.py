"""Top-level supervision of the server process."""

import asyncio
import sys
import threading
from typing import Any, Dict

import uvicorn

from .observability import get_logger

logger = get_logger(__name__)


class ProcessSupervisor:
    """
    Runs the uvicorn server and turns crashes into an orderly shutdown.

    Uncaught exceptions (main thread or worker threads) and exceptions from
    asyncio tasks nobody awaited are logged, then the server is asked to
    exit: it stops accepting connections, drains in-flight requests and runs
    the lifespan shutdown, which closes the store connection. The process
    then exits with status 1.
    """

    def __init__(self, server: uvicorn.Server):
        self.server = server
        self.exit_code = 0

    def request_shutdown(self, reason: str) -> None:
        if self.exit_code == 0:
            logger.critical("Shutting down after fatal error", reason=reason)
        self.exit_code = 1
        self.server.should_exit = True

    def handle_uncaught(self, exc_type, exc, tb) -> None:
        logger.critical(
            "UNCAUGHT EXCEPTION",
            error_type=exc_type.__name__,
            error=str(exc),
            exc_info=(exc_type, exc, tb),
        )
        self.request_shutdown("uncaught exception")

    def handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        self.handle_uncaught(args.exc_type, args.exc_value, args.exc_traceback)

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.critical(
            "UNHANDLED REJECTION",
            message=context.get("message"),
            error_type=type(exc).__name__ if exc else None,
            error=str(exc) if exc else None,
        )
        self.request_shutdown("unhandled task exception")

    def install(self) -> None:
        sys.excepthook = self.handle_uncaught
        threading.excepthook = self.handle_thread_exception

    async def serve(self) -> None:
        asyncio.get_running_loop().set_exception_handler(self.handle_loop_exception)
        await self.server.serve()

    def run(self) -> int:
        """Serve until shutdown and return the process exit code."""
        self.install()
        try:
            asyncio.run(self.serve())
        except Exception as e:
            self.handle_uncaught(type(e), e, e.__traceback__)
        return self.exit_code
