"""HTTP-facing errors for the chat API.

Each error carries its status code and the message shown to the user.
Rendered as ``{"error": message}`` by the handler registered in main.
"""


class ChatError(Exception):
    status_code: int = 500
    default_message: str = "Sorry, I encountered an error. Please try again or contact support if the problem persists."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInputError(ChatError):
    status_code = 400
    default_message = "Message is required and must be a non-empty string"


class RateLimitedError(ChatError):
    status_code = 429
    default_message = "Too many requests. Please wait a moment before sending another message."


class ServiceNotConfiguredError(ChatError):
    status_code = 500
    default_message = "AI service configuration error. Please contact support."


class ServiceBusyError(ChatError):
    status_code = 500
    default_message = "AI service is busy. Please wait a moment and try again."
