"""Error taxonomy shared by every provider protocol."""

from __future__ import annotations

from typing import Optional


class ProviderMappedError(Exception):
    """Base for failures surfaced to callers, keyed by a stable ``error_code``."""

    def __init__(
        self,
        error_code: str,
        message: str,
        *,
        retryable: bool = False,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.retryable = retryable
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        """Copy that is safe to show in a conversation."""
        return str(self)


class MissingCredentialError(ProviderMappedError):
    """No API key configured."""

    def __init__(self, provider_name: str) -> None:
        super().__init__("missing_credential", f"No API key configured for {provider_name}")
        self.provider_name = provider_name

    @property
    def user_message(self) -> str:
        return f"Please configure an API key for {self.provider_name} in settings."


class MissingModelError(ProviderMappedError):
    """No model selected."""

    def __init__(self, provider_name: str) -> None:
        super().__init__("missing_model", f"No model selected for {provider_name}")
        self.provider_name = provider_name

    @property
    def user_message(self) -> str:
        return f"Please select a model for {self.provider_name} in settings."


class InvalidEndpointError(ProviderMappedError):
    """Custom endpoint is empty, malformed or unreachable."""

    def __init__(self, message: str, endpoint: str = "") -> None:
        super().__init__("invalid_endpoint", message)
        self.endpoint = endpoint

    @property
    def user_message(self) -> str:
        if self.endpoint:
            return f"The endpoint {self.endpoint} could not be used: {self}"
        return "Please configure an endpoint URL for the custom provider."


class DiscoveryFailedError(ProviderMappedError):
    """Remote rejected the model-list request."""

    def __init__(self, status_code: Optional[int], provider_message: Optional[str] = None) -> None:
        detail = provider_message or "no details provided"
        super().__init__(
            "discovery_failed",
            f"Model discovery failed ({status_code}): {detail}",
            status_code=status_code,
        )
        self.provider_message = provider_message

    @property
    def user_message(self) -> str:
        return f"Failed to fetch models: {self.provider_message or f'HTTP {self.status_code}'}"


class MalformedResponseError(ProviderMappedError):
    """A successful discovery response whose body has an unexpected shape."""

    def __init__(self, message: str) -> None:
        super().__init__("malformed_response", f"Malformed response: {message}")

    @property
    def user_message(self) -> str:
        return "Failed to fetch models: the provider returned an unexpected response."


class ChatRequestFailedError(ProviderMappedError):
    """Remote rejected the chat request."""

    def __init__(
        self,
        status_code: Optional[int],
        provider_message: Optional[str] = None,
        *,
        error_code: str = "chat_request_failed",
        retryable: bool = False,
    ) -> None:
        detail = provider_message or "no details provided"
        super().__init__(
            error_code,
            f"Chat request failed ({status_code}): {detail}",
            retryable=retryable,
            status_code=status_code,
        )
        self.provider_message = provider_message

    @property
    def user_message(self) -> str:
        if self.provider_message:
            return self.provider_message
        return f"Request failed with status {self.status_code}."


class RateLimitedError(ChatRequestFailedError):
    """HTTP 429 from the chat endpoint."""

    def __init__(self, provider_message: Optional[str] = None) -> None:
        super().__init__(429, provider_message, error_code="rate_limited", retryable=True)

    @property
    def user_message(self) -> str:
        return "Rate limit reached. Please wait a moment before sending another message."


class ResponseParseFailedError(ProviderMappedError):
    """A successful chat response whose body did not match the provider schema."""

    def __init__(self, message: str) -> None:
        super().__init__("response_parse_failed", f"Failed to parse response: {message}")

    @property
    def user_message(self) -> str:
        return "Failed to parse response."


class ProviderTimeoutError(ProviderMappedError):
    """The provider did not answer in time."""

    def __init__(self, message: str) -> None:
        super().__init__("timeout", message, retryable=True)

    @property
    def user_message(self) -> str:
        return "The request timed out. Please try again."


class ProviderConnectionError(ProviderMappedError):
    """The request never reached the provider."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__("connection_error", message, retryable=retryable)

    @property
    def user_message(self) -> str:
        return "Could not reach the provider. Please check your connection."


class NoActiveProviderError(ProviderMappedError):
    """No provider has been selected for chat."""

    def __init__(self) -> None:
        super().__init__("no_active_provider", "No active provider configured")

    @property
    def user_message(self) -> str:
        return "Please choose an active provider in settings."


class OrchestratorBusyError(ProviderMappedError):
    """A send was attempted while another is in flight."""

    def __init__(self) -> None:
        super().__init__("busy", "A message is already being sent")

    @property
    def user_message(self) -> str:
        return "Please wait for the current reply before sending another message."
