"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class GenerationServiceError(Exception):
    """Base exception for all generation gateway errors."""

    pass


class AuthenticationError(GenerationServiceError):
    """Raised when the bearer token is missing or invalid."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class MissingInputError(GenerationServiceError):
    """Raised when a tool is invoked without one of its required inputs."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnknownToolError(GenerationServiceError):
    """Raised when the tool identifier is not in the family's catalog."""

    def __init__(self, tool: str) -> None:
        self.tool = tool
        super().__init__(f"Unknown tool: {tool}")


class ToolUnavailableError(GenerationServiceError):
    """Raised for catalogued tools that cannot be run yet."""

    def __init__(self, tool: str, message: str) -> None:
        self.tool = tool
        self.message = message
        super().__init__(message)


class InsufficientCreditsError(GenerationServiceError):
    """Raised when a profile cannot afford the requested tool."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient credits. Need {required}, have {balance}")


class ProfileNotFoundError(GenerationServiceError):
    """Raised when the caller has no profile row."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__("Profile not found")


class GenerationNotFoundError(GenerationServiceError):
    """Raised when a generation does not exist or belongs to another user."""

    def __init__(self, generation_id: UUID) -> None:
        self.generation_id = generation_id
        super().__init__("Generation not found")


class ProviderError(GenerationServiceError):
    """Raised when an upstream provider answers with a non-2xx status."""

    def __init__(self, provider: str, status_code: int | None, body: str) -> None:
        self.provider = provider
        self.status_code = status_code
        self.body = body
        super().__init__(f"{provider} error: {status_code} - {body}")


class ProviderNotConfiguredError(GenerationServiceError):
    """Raised when a provider's API key is not configured."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"{provider} API key not configured")


class ProviderResponseError(GenerationServiceError):
    """Raised when a provider answers 2xx with an unexpected payload shape."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"Unexpected {provider} response: {message}")


class WriteVerificationError(GenerationServiceError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class UnsupportedImageFormatError(GenerationServiceError):
    """Raised when the image model rejects the input image encoding."""

    def __init__(self) -> None:
        super().__init__("Unsupported image format. Please use PNG, JPEG, WebP, or GIF.")
