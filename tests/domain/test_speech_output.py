import asyncio

import pytest

from voice_chat.domain.speech_output import SpeechOutput, select_voice
from voice_chat.errors import SpeechError
from voice_chat.ports.synthesizer import Voice

from tests.conftest import FakeSpeechEngine, ready_speech_output


VOICES = [
    Voice(id="de", name="Anna", lang="de-DE"),
    Voice(id="en", name="Samantha", lang="en-US"),
    Voice(id="hi", name="Lekha", lang="hi-IN"),
]


class TestSelectVoice:
    def test_prefers_locale_match(self):
        assert select_voice(VOICES, "en").name == "Samantha"

    def test_locale_match_is_case_insensitive(self):
        assert select_voice(VOICES, "HI").name == "Lekha"

    def test_falls_back_to_first_voice(self):
        assert select_voice(VOICES, "fr").name == "Anna"

    def test_no_voices(self):
        assert select_voice([], "en") is None


class TestSpeechOutput:
    @pytest.mark.asyncio
    async def test_not_ready_before_voices_load(self):
        speech = SpeechOutput(FakeSpeechEngine())
        assert not speech.is_ready()
        with pytest.raises(SpeechError, match="not initialized"):
            await speech.speak("hello", 1.0, 1.0)

    @pytest.mark.asyncio
    async def test_discovery_polls_until_voices_appear(self):
        engine = FakeSpeechEngine(empty_polls=2)
        speech = await ready_speech_output(engine)
        assert speech.is_ready()
        assert engine.list_calls == 3
        assert speech.voice.lang == "en-US"
        await speech.release()

    @pytest.mark.asyncio
    async def test_prepare_times_out_quietly(self):
        engine = FakeSpeechEngine(voices=[])
        speech = SpeechOutput(engine, poll_interval=0.001)
        speech.acquire()
        await speech.prepare(timeout=0.01)
        assert not speech.is_ready()
        await speech.release()

    @pytest.mark.asyncio
    async def test_speak_passes_voice_rate_and_volume(self, fake_speech_engine):
        speech = await ready_speech_output(fake_speech_engine)
        await speech.speak("Hi! How can I help?", 1.2, 0.8)

        text, voice, rate, volume = fake_speech_engine.spoken[0]
        assert text == "Hi! How can I help?"
        assert voice.name == "Samantha"
        assert (rate, volume) == (1.2, 0.8)
        assert not speech.speaking
        await speech.release()

    @pytest.mark.asyncio
    async def test_engine_failure_wrapped(self):
        engine = FakeSpeechEngine(fail_with=RuntimeError("audio device busy"))
        speech = await ready_speech_output(engine)
        with pytest.raises(SpeechError, match="TTS failed: audio device busy"):
            await speech.speak("hello", 1.0, 1.0)
        assert not speech.speaking
        await speech.release()

    @pytest.mark.asyncio
    async def test_new_utterance_interrupts_current_one(self):
        engine = FakeSpeechEngine(duration=5.0)
        speech = await ready_speech_output(engine)

        first = asyncio.create_task(speech.speak("first", 1.0, 1.0))
        await asyncio.sleep(0.01)
        assert speech.speaking

        second = asyncio.create_task(speech.speak("second", 1.0, 1.0))
        with pytest.raises(SpeechError, match="interrupted"):
            await first
        speech.stop()
        with pytest.raises(SpeechError, match="interrupted"):
            await second

        assert [entry[0] for entry in engine.spoken] == ["first", "second"]
        assert engine.cancel_count == 2
        assert not speech.speaking
        await speech.release()

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, fake_speech_engine):
        speech = await ready_speech_output(fake_speech_engine)
        speech.stop()
        assert fake_speech_engine.cancel_count == 0
        await speech.release()

    @pytest.mark.asyncio
    async def test_release_closes_engine(self, fake_speech_engine):
        speech = await ready_speech_output(fake_speech_engine)
        await speech.release()
        assert fake_speech_engine.closed
