# errors.py


class TrailsError(Exception):
    """Base class for conversation engine errors."""


class VisionUnsupportedError(TrailsError):
    """Image attachments were targeted at models that cannot read them."""

    def __init__(self, model_names):
        self.model_names = list(model_names)
        super().__init__(f"Models lack vision support: {', '.join(self.model_names)}")


class ProviderError(TrailsError):
    """A single model dispatch failed."""


class MissingCredentialError(ProviderError):
    def __init__(self, provider):
        self.provider = provider
        super().__init__(f"{provider} API key not configured")


class UnknownModelError(ProviderError):
    def __init__(self, model_id):
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")


class UnknownProviderError(ProviderError):
    def __init__(self, provider, model_id=None):
        self.provider = provider
        self.model_id = model_id
        super().__init__(f"Unknown provider '{provider}' for model: {model_id}")


class TransportFailureError(ProviderError):
    """Non-2xx response or network failure talking to a provider."""

    def __init__(self, status, body):
        self.status = status
        self.body = body
        if status is None:
            message = f"Transport failure: {body}"
        else:
            message = f"Provider returned {status}: {body}"
        super().__init__(message)


class AllModelsFailedError(TrailsError):
    """Council mode: none of the dispatched models produced an answer."""

    def __init__(self, failures):
        self.failures = dict(failures)
        super().__init__(f"All models failed: {', '.join(self.failures)}")
