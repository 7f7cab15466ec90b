import asyncio
import logging

import sounddevice as sd
from edge_tts import Communicate, list_voices

from voice_chat.errors import SpeechError
from voice_chat.ports.synthesizer import Voice

logger = logging.getLogger(__name__)

PLAYBACK_SAMPLE_RATE = 24000
STDOUT_READ_CHUNK_SIZE = 4096
BYTES_PER_SAMPLE = 2

FFMPEG_DECODE_COMMAND = [
    "ffmpeg",
    "-i",
    "pipe:0",
    "-f",
    "s16le",
    "-acodec",
    "pcm_s16le",
    "-ar",
    str(PLAYBACK_SAMPLE_RATE),
    "-ac",
    "1",
    "-loglevel",
    "error",
    "pipe:1",
]


def format_percent(value: float) -> str:
    return f"{round((value - 1.0) * 100):+d}%"


class EdgeTtsSpeechEngine:
    def __init__(self, default_voice: str = "en-US-GuyNeural") -> None:
        self._default_voice = default_voice
        self._cancelled = False
        self._process: asyncio.subprocess.Process | None = None
        self._stream: sd.RawOutputStream | None = None

    async def list_voices(self) -> list[Voice]:
        raw_voices = await list_voices()
        return [
            Voice(
                id=raw["ShortName"],
                name=raw.get("FriendlyName", raw["ShortName"]),
                lang=raw.get("Locale", ""),
            )
            for raw in raw_voices
        ]

    async def say(self, text: str, voice: Voice | None, rate: float, volume: float) -> None:
        self._cancelled = False
        voice_name = voice.id if voice else self._default_voice

        try:
            self._process = await asyncio.create_subprocess_exec(
                *FFMPEG_DECODE_COMMAND,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise SpeechError("ffmpeg is required for edge-tts playback") from exc

        process = self._process
        feed_task = asyncio.create_task(
            self._feed_mp3_to_ffmpeg(process, text, voice_name, rate, volume),
        )
        self._stream = sd.RawOutputStream(
            samplerate=PLAYBACK_SAMPLE_RATE,
            channels=1,
            dtype="int16",
        )
        stream = self._stream
        stream.start()

        pending = b""
        try:
            while not self._cancelled:
                chunk = await process.stdout.read(STDOUT_READ_CHUNK_SIZE)
                if not chunk:
                    break
                pending += chunk
                usable = len(pending) - len(pending) % BYTES_PER_SAMPLE
                if usable:
                    await asyncio.to_thread(stream.write, pending[:usable])
                    pending = pending[usable:]
            if not self._cancelled:
                await feed_task
                await asyncio.to_thread(stream.stop)
        except sd.PortAudioError:
            if not self._cancelled:
                raise
        finally:
            if not feed_task.done():
                feed_task.cancel()
                try:
                    await feed_task
                except asyncio.CancelledError:
                    pass
            if process.returncode is None:
                process.kill()
                await process.wait()
            stream.close()
            self._process = None
            self._stream = None

    async def _feed_mp3_to_ffmpeg(
        self,
        process: asyncio.subprocess.Process,
        text: str,
        voice: str,
        rate: float,
        volume: float,
    ) -> None:
        try:
            communicate = Communicate(
                text,
                voice=voice,
                rate=format_percent(rate),
                volume=format_percent(volume),
            )
            async for chunk in communicate.stream():
                if self._cancelled:
                    break
                if chunk["type"] == "audio" and chunk["data"]:
                    process.stdin.write(chunk["data"])
                    await process.stdin.drain()
        finally:
            if process.stdin and not process.stdin.is_closing():
                process.stdin.close()

    def cancel(self) -> None:
        self._cancelled = True
        if self._process and self._process.returncode is None:
            self._process.kill()
        if self._stream is not None:
            try:
                self._stream.abort()
            except sd.PortAudioError:
                logger.debug("Playback abort failed", exc_info=True)

    def close(self) -> None:
        self.cancel()
