"""Error taxonomy for synthesis and recognition.

Provider errors never leave the controller; they are raised inside a tier
and absorbed at that tier's boundary. UnsupportedEnvironment and
RecognitionError are the only errors callers see.
"""


class VoiceServiceError(RuntimeError):
    """Base class for all voice engine errors."""


class ProviderError(VoiceServiceError):
    """A remote synthesis tier produced no usable audio."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderUnavailable(ProviderError):
    """Network or HTTP failure talking to a provider."""


class ProviderEmptyResponse(ProviderError):
    """The provider answered, but with success=false or no audio."""


class UnsupportedEnvironment(VoiceServiceError):
    """The host lacks the speech capability an operation needs."""

    def __init__(self, capability: str):
        super().__init__(f"{capability} is not supported in this environment")
        self.capability = capability


class RecognitionError(VoiceServiceError):
    """The recognition session reported an error code."""

    def __init__(self, code: str):
        super().__init__(f"Speech recognition error: {code}")
        self.code = code
