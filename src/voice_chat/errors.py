class VoiceChatError(Exception):
    pass


class DeviceError(VoiceChatError):
    pass


class ModelLoadError(VoiceChatError):
    pass


class EmptyAudioError(VoiceChatError):
    pass


class TranscriptionError(VoiceChatError):
    pass


class WorkerBusyError(TranscriptionError):
    pass


class CompletionTimeoutError(VoiceChatError, TimeoutError):
    pass


class UpstreamError(VoiceChatError):
    def __init__(
        self,
        status_code: int | None,
        message: str = "",
        retryable: bool = True,
    ) -> None:
        self.status_code = status_code
        self.message = message
        self.retryable = retryable
        detail = f"Upstream error: {status_code}" if status_code else "Upstream error"
        if message:
            detail = f"{detail} ({message})"
        super().__init__(detail)


class RateLimitedError(VoiceChatError):
    pass


class ConfigurationError(VoiceChatError):
    pass


class SpeechError(VoiceChatError):
    pass


class SystemNotReadyError(VoiceChatError):
    pass


class PipelineBusyError(VoiceChatError):
    pass
