"""pipecat CLI: `publish` stdin lines to a queue, `consume` a queue to stdout."""
from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from loguru import logger

from pipecat import __version__
from pipecat.app.composition import SessionDependencies, create_session_dependencies
from pipecat.app.config.settings import DEFAULT_AMQP_URI, Settings
from pipecat.app.core import SERVICE_NAME
from pipecat.app.core.errors import PipecatError
from pipecat.app.core.logging import configure_logging
from pipecat.app.domain.models import SessionConfig

T = TypeVar("T")

MISSING_QUEUE_MESSAGE = "Please provide name of the queue"

app = typer.Typer(
    name="pipecat",
    help="Connect unix pipes and message queues",
    add_completion=False,
    no_args_is_help=True,
)


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


# ---------------------------
# Common options
# ---------------------------


def queue_arg() -> Optional[str]:
    return typer.Argument(None, metavar="QUEUE", help="Name of the queue", show_default=False)


def amqpuri_opt() -> str:
    return typer.Option(DEFAULT_AMQP_URI, "--amqpuri", envvar="AMQP_URI", help="AMQP URI")


def exchange_opt() -> str:
    return typer.Option("", "--exchange", envvar="AMQP_EXCHANGE", help='AMQP Exchange to publish to (default: "")')


def no_create_queue_opt() -> bool:
    return typer.Option(False, "--no-create-queue", help="Don't create queue")


def autoack_opt() -> bool:
    return typer.Option(False, "--autoack", help="Ack all received messages directly")


def non_blocking_opt() -> bool:
    return typer.Option(False, "--non-blocking", help="Stop consumer after timeout")


def transient_opt() -> bool:
    return typer.Option(False, "--transient", help="Publish messages with transient delivery mode")


def timeout_opt() -> float:
    return typer.Option(1.0, "--timeout", min=0.001, help="Timeout to wait for messages (seconds)")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pipecat {__version__}")
        raise typer.Exit()


@app.callback()
def _root(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
) -> None:
    pass


def _build(
    queue: Optional[str],
    *,
    amqpuri: str,
    exchange: str,
    no_create_queue: bool,
    autoack: bool,
    non_blocking: bool,
    transient: bool,
    timeout: float,
) -> SessionDependencies:
    if not queue:
        typer.echo(MISSING_QUEUE_MESSAGE)
        raise typer.Exit(code=1)
    settings = Settings(amqp_uri=amqpuri, exchange=exchange)
    configure_logging(settings.log_level)
    config = SessionConfig(
        queue_name=queue,
        auto_ack=autoack,
        non_blocking=non_blocking,
        idle_timeout_seconds=timeout,
        exchange=settings.exchange,
        durable=not transient,
        create_queue=not no_create_queue,
    )
    return create_session_dependencies(config, settings)


async def _run_until_shutdown(work: Awaitable[T]) -> T | None:
    """Run `work`; SIGINT/SIGTERM cancel it so the connection still gets closed."""
    shutdown = asyncio.Event()

    def request_shutdown() -> None:
        if not shutdown.is_set():
            _log("shutdown_signal")
            shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown)
        except (NotImplementedError, RuntimeError, ValueError):
            pass

    work_task = asyncio.ensure_future(work)
    shutdown_task = asyncio.create_task(shutdown.wait())
    try:
        await asyncio.wait({work_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED)
        if work_task.done():
            return work_task.result()
        work_task.cancel()
        try:
            await work_task
        except asyncio.CancelledError:
            pass
        return None
    finally:
        shutdown_task.cancel()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError):
                pass


async def _with_session(deps: SessionDependencies, run: Callable[[], Awaitable[T]]) -> T | None:
    try:
        await deps.connect()
        return await _run_until_shutdown(run())
    finally:
        await deps.close()


def _execute(deps: SessionDependencies, run: Callable[[], Awaitable[Any]]) -> None:
    try:
        asyncio.run(_with_session(deps, run))
    except PipecatError as e:
        logger.bind(service_name=SERVICE_NAME, event="fatal_error").error("{}", e)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        _log("interrupted")
        raise typer.Exit(code=130)
    except Exception as e:
        logger.exception("pipecat failed: {}", e)
        raise


@app.command("publish", help="Publish messages to queue")
def publish(
    queue: Optional[str] = queue_arg(),
    amqpuri: str = amqpuri_opt(),
    exchange: str = exchange_opt(),
    no_create_queue: bool = no_create_queue_opt(),
    autoack: bool = autoack_opt(),
    non_blocking: bool = non_blocking_opt(),
    transient: bool = transient_opt(),
    timeout: float = timeout_opt(),
) -> None:
    deps = _build(
        queue,
        amqpuri=amqpuri,
        exchange=exchange,
        no_create_queue=no_create_queue,
        autoack=autoack,
        non_blocking=non_blocking,
        transient=transient,
        timeout=timeout,
    )
    _execute(deps, deps.run_publish)


@app.command("consume", help="Consume messages from queue")
def consume(
    queue: Optional[str] = queue_arg(),
    amqpuri: str = amqpuri_opt(),
    exchange: str = exchange_opt(),
    no_create_queue: bool = no_create_queue_opt(),
    autoack: bool = autoack_opt(),
    non_blocking: bool = non_blocking_opt(),
    transient: bool = transient_opt(),
    timeout: float = timeout_opt(),
) -> None:
    deps = _build(
        queue,
        amqpuri=amqpuri,
        exchange=exchange,
        no_create_queue=no_create_queue,
        autoack=autoack,
        non_blocking=non_blocking,
        transient=transient,
        timeout=timeout,
    )
    _execute(deps, lambda: deps.consume_session().run())


app.command("p", hidden=True, help="Alias for publish")(publish)
app.command("c", hidden=True, help="Alias for consume")(consume)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
