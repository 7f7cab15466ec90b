from dataclasses import dataclass, replace


@dataclass(frozen=True)
class VoiceSettings:
    speech_rate: float = 1.2
    speech_volume: float = 0.8
    caching_enabled: bool = True
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.speech_rate <= 0:
            raise ValueError(f"speech_rate must be positive, got {self.speech_rate}")
        if not 0.0 <= self.speech_volume <= 1.0:
            raise ValueError(f"speech_volume must be within [0, 1], got {self.speech_volume}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    def with_changes(self, **changes: object) -> "VoiceSettings":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, float | bool | int]:
        return {
            "speech_rate": self.speech_rate,
            "speech_volume": self.speech_volume,
            "caching_enabled": self.caching_enabled,
            "max_retries": self.max_retries,
        }
