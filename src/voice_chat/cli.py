import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from voice_chat.config import VoiceChatConfig
from voice_chat.log_format import PLAIN_FORMAT, ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "voice-chat" / "env"

CLIENT_COMMANDS = ("toggle", "status", "settings")


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def _configure_logging(verbose: bool, log_file: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [handler]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=handlers)
    for noisy in ("httpx", "httpcore", "faster_whisper"):
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Push-to-talk voice chat assistant")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("toggle", help="Start or stop recording")
    subparsers.add_parser("status", help="Query pipeline state and latency")

    settings_parser = subparsers.add_parser("settings", help="Change voice settings")
    settings_parser.add_argument("--rate", type=float, help="Speech rate multiplier")
    settings_parser.add_argument("--volume", type=float, help="Speech volume (0-1)")
    settings_parser.add_argument(
        "--caching", action=argparse.BooleanOptionalAction, default=None,
        help="Enable or disable the response cache",
    )
    settings_parser.add_argument("--retries", type=int, help="Maximum completion retries")

    serve_parser = subparsers.add_parser("serve", help="Run the chat HTTP endpoint")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    ask_parser = subparsers.add_parser("ask", help="Send one text message through the request layer")
    ask_parser.add_argument("text", help="Message text")

    return parser


def settings_payload(args: argparse.Namespace) -> dict:
    payload = {}
    if args.rate is not None:
        payload["speech_rate"] = args.rate
    if args.volume is not None:
        payload["speech_volume"] = args.volume
    if args.caching is not None:
        payload["caching_enabled"] = args.caching
    if args.retries is not None:
        payload["max_retries"] = args.retries
    return payload


def main() -> None:
    _load_env_file()
    args = build_parser().parse_args()
    config = VoiceChatConfig()
    _configure_logging(args.verbose, config.log_file)

    if args.command in CLIENT_COMMANDS:
        asyncio.run(_run_client_command(args, config))
    elif args.command == "serve":
        _run_server(args, config)
    elif args.command == "ask":
        asyncio.run(_run_ask(args.text, config))
    else:
        asyncio.run(_run_daemon(config))


async def _run_client_command(args: argparse.Namespace, config: VoiceChatConfig) -> None:
    from voice_chat.adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    try:
        if args.command == "settings":
            result = await client.send_command("settings", settings_payload(args))
        else:
            result = await client.send_command(args.command)
        print(f"{result}")
    except ConnectionRefusedError:
        print("Voice chat is not running", file=sys.stderr)
        sys.exit(1)
    except FileNotFoundError:
        print("Voice chat is not running", file=sys.stderr)
        sys.exit(1)


def _run_server(args: argparse.Namespace, config: VoiceChatConfig) -> None:
    import uvicorn

    from voice_chat.factory import create_completion_service, create_rate_limiter
    from voice_chat.server import create_app

    app = create_app(
        service=create_completion_service(config),
        limiter=create_rate_limiter(config),
        base_settings=config.voice_settings(),
    )
    uvicorn.run(
        app,
        host=args.host or config.server_host,
        port=args.port or config.server_port,
        proxy_headers=True,
    )


async def _run_ask(text: str, config: VoiceChatConfig) -> None:
    from voice_chat.domain.retry import retry_with_backoff
    from voice_chat.errors import VoiceChatError
    from voice_chat.factory import create_replies

    replies = create_replies(config)
    settings = config.voice_settings()
    try:
        reply = await retry_with_backoff(
            lambda: replies.complete(text, settings),
            max_retries=settings.max_retries,
        )
        print(reply)
    except VoiceChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        await replies.aclose()


async def _run_daemon(config: VoiceChatConfig) -> None:
    from voice_chat.adapters.unix_control import UnixSocketControlServer
    from voice_chat.commands import PipelineCommandHandler
    from voice_chat.errors import ModelLoadError, TranscriptionError
    from voice_chat.factory import create_pipeline
    from voice_chat.health import has_critical_failures, run_startup_checks
    from voice_chat.ports.control import ControlPort

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logging.error("Critical health check failures, aborting startup")
        sys.exit(1)

    pipeline = create_pipeline(config)
    handler = PipelineCommandHandler(pipeline)
    control: ControlPort = UnixSocketControlServer(handler=handler, socket_path=config.socket_path)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logging.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logging.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    async def warm_up() -> None:
        try:
            await pipeline.open()
        except (ModelLoadError, TranscriptionError) as exc:
            logging.error("Speech recognition unavailable: %s", exc)
            return
        logging.info("Ready. Run 'voice-chat toggle' to start and stop recording.")

    await control.start()
    warm_up_task = asyncio.create_task(warm_up())
    try:
        await shutdown_event.wait()
    finally:
        warm_up_task.cancel()
        try:
            await warm_up_task
        except asyncio.CancelledError:
            pass
        await control.stop()
        try:
            await asyncio.wait_for(pipeline.close(), timeout=5.0)
        except asyncio.TimeoutError:
            logging.warning("Pipeline shutdown timed out")
