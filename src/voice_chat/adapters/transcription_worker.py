import asyncio
import itertools
import logging
import multiprocessing
import queue
import threading
from collections.abc import Callable

import janus
import numpy as np

from voice_chat.errors import (
    EmptyAudioError,
    ModelLoadError,
    TranscriptionError,
    WorkerBusyError,
)
from voice_chat.ports.transcriber import EngineLoader, TranscriptionEngine

logger = logging.getLogger(__name__)

READER_POLL_SECONDS = 0.5
JOIN_TIMEOUT_SECONDS = 3.0

NOT_READY = "not_ready"
NO_AUDIO = "no_audio"
LOAD_FAILED = "load_failed"
TRANSCRIBE_FAILED = "transcribe_failed"
INTERNAL = "internal"
WORKER_EXITED = "worker_exited"


def serve(inbox, outbox, loader: EngineLoader) -> None:
    """Message loop of the isolated transcription context.

    Runs until a ``None`` message arrives; every fault is reported back as an
    ``error`` message so the parent never waits on a dead request.
    """
    engine: TranscriptionEngine | None = None

    while True:
        message = inbox.get()
        if message is None:
            break

        request_id = message.get("id")
        try:
            kind = message.get("type")
            if kind == "init":
                engine = _handle_init(engine, loader, request_id, outbox)
            elif kind == "transcribe":
                _handle_transcribe(engine, message.get("audio_data"), request_id, outbox)
            else:
                outbox.put(_error(request_id, f"Unknown message type: {kind}", INTERNAL))
        except Exception as exc:
            outbox.put(_error(request_id, str(exc) or "Worker processing failed", INTERNAL))

    outbox.put(None)


def _handle_init(engine, loader, request_id, outbox):
    if engine is not None:
        outbox.put({"type": "ready", "id": request_id})
        return engine

    def progress(text: str) -> None:
        outbox.put({"type": "loading", "id": request_id, "message": text})

    try:
        engine = loader(progress)
    except Exception as exc:
        outbox.put(_error(request_id, f"Failed to load speech recognition: {exc}", LOAD_FAILED))
        return None

    outbox.put({"type": "ready", "id": request_id})
    return engine


def _handle_transcribe(engine, audio_data, request_id, outbox) -> None:
    if engine is None:
        outbox.put(_error(request_id, "Speech recognition not ready", NOT_READY))
        return
    if audio_data is None or len(audio_data) == 0:
        outbox.put(_error(request_id, "No audio data", NO_AUDIO))
        return

    try:
        text = engine.transcribe(audio_data)
    except Exception as exc:
        outbox.put(_error(request_id, f"Transcription failed: {exc}", TRANSCRIBE_FAILED))
        return

    outbox.put({
        "type": "transcript",
        "id": request_id,
        "text": (text or "").strip(),
        "is_final": True,
    })


def _error(request_id, text: str, code: str) -> dict:
    return {"type": "error", "id": request_id, "error": text, "code": code}


class TranscriptionWorker:
    def __init__(
        self,
        loader: EngineLoader,
        process_factory: Callable | None = None,
        queue_factory: Callable | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        context = multiprocessing.get_context("spawn")
        self._loader = loader
        self._process_factory = process_factory or context.Process
        self._queue_factory = queue_factory or context.Queue
        self._on_status = on_status
        self._ids = itertools.count(1)

        self._inbox = None
        self._outbox = None
        self._process = None
        self._reader: threading.Thread | None = None
        self._reader_stop = threading.Event()
        self._messages: janus.Queue[dict] | None = None
        self._ready = False
        self._in_flight_id: int | None = None
        self._exited = threading.Event()
        self._status = "Initializing..."

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def status(self) -> str:
        return self._status

    @property
    def busy(self) -> bool:
        return self._in_flight_id is not None

    async def start(self) -> None:
        if self._process is not None:
            return
        self._inbox = self._queue_factory()
        self._outbox = self._queue_factory()
        self._messages = janus.Queue()
        self._reader_stop.clear()
        self._exited.clear()

        self._process = self._process_factory(
            target=serve,
            args=(self._inbox, self._outbox, self._loader),
            daemon=True,
        )
        self._process.start()

        self._reader = threading.Thread(
            target=self._pump_messages,
            args=(self._process,),
            name="transcription-reader",
            daemon=True,
        )
        self._reader.start()
        logger.info("Transcription worker started")

    async def initialize(self) -> None:
        if self._ready:
            return
        request_id = self._acquire_slot()
        try:
            self._inbox.put({"type": "init", "id": request_id})
            while True:
                message = await self._receive(request_id)
                kind = message.get("type")
                if kind == "loading":
                    self._set_status(message.get("message") or "Loading...")
                elif kind == "ready":
                    self._ready = True
                    self._set_status("Ready")
                    return
                elif kind == "error":
                    self._set_status("Error")
                    raise ModelLoadError(message.get("error") or "Failed to load speech recognition")
        finally:
            self._in_flight_id = None

    async def transcribe(self, audio: np.ndarray) -> str:
        request_id = self._acquire_slot()
        try:
            self._inbox.put({
                "type": "transcribe",
                "id": request_id,
                "audio_data": np.asarray(audio, dtype=np.float32),
            })
            while True:
                message = await self._receive(request_id)
                kind = message.get("type")
                if kind == "transcript":
                    text = message.get("text", "")
                    logger.info("Transcript: %s", text)
                    return text
                if kind == "error":
                    reason = message.get("error") or "Transcription failed"
                    if message.get("code") == NO_AUDIO:
                        raise EmptyAudioError(reason)
                    raise TranscriptionError(reason)
        finally:
            self._in_flight_id = None

    async def close(self) -> None:
        if self._process is None:
            return
        process = self._process
        self._process = None
        self._ready = False
        self._inbox.put(None)
        await asyncio.to_thread(process.join, JOIN_TIMEOUT_SECONDS)
        if process.is_alive() and hasattr(process, "terminate"):
            logger.warning("Transcription worker did not exit, terminating")
            process.terminate()

        self._reader_stop.set()
        if self._reader is not None:
            await asyncio.to_thread(self._reader.join, JOIN_TIMEOUT_SECONDS)
            self._reader = None
        if self._messages is not None:
            self._messages.close()
            await self._messages.wait_closed()
            self._messages = None
        logger.info("Transcription worker stopped")

    def _acquire_slot(self) -> int:
        if self._process is None:
            raise TranscriptionError("Transcription worker is not running")
        if self._in_flight_id is not None:
            raise WorkerBusyError("A transcription request is already in flight")
        request_id = next(self._ids)
        self._in_flight_id = request_id
        if self._exited.is_set():
            self._in_flight_id = None
            self._ready = False
            raise TranscriptionError("Transcription worker exited")
        return request_id

    async def _receive(self, request_id: int) -> dict:
        while True:
            try:
                message = await self._messages.async_q.get()
            except janus.AsyncQueueShutDown:
                raise TranscriptionError("Transcription worker stopped") from None
            if message.get("id") == request_id:
                if message.get("code") == WORKER_EXITED:
                    self._ready = False
                    self._set_status("Error")
                return message
            logger.debug("Dropping stale worker message: %s", message.get("type"))

    def _set_status(self, status: str) -> None:
        self._status = status
        logger.info("Speech recognition: %s", status)
        if self._on_status is not None:
            self._on_status(status)

    def _pump_messages(self, process) -> None:
        messages = self._messages
        while not self._reader_stop.is_set():
            try:
                message = self._outbox.get(timeout=READER_POLL_SECONDS)
            except queue.Empty:
                if process.is_alive() or self._reader_stop.is_set():
                    continue
                self._report_exit(messages)
                break
            if message is None:
                break
            if not self._forward(messages, message):
                break

    def _report_exit(self, messages: janus.Queue) -> None:
        # Replies may still be buffered after the process is gone.
        while True:
            try:
                message = self._outbox.get_nowait()
            except queue.Empty:
                break
            if message is None:
                return
            if not self._forward(messages, message):
                return

        logger.error("Transcription worker exited unexpectedly")
        self._exited.set()
        request_id = self._in_flight_id
        self._forward(
            messages,
            _error(request_id, "Transcription worker exited", WORKER_EXITED),
        )

    @staticmethod
    def _forward(messages: janus.Queue, message: dict) -> bool:
        try:
            messages.sync_q.put(message)
        except (janus.SyncQueueShutDown, RuntimeError):
            return False
        return True
