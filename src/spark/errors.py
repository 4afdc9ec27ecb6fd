class SparkError(Exception):
    pass


class ConfigError(SparkError):
    pass


class EmptyInputError(SparkError):
    pass


class EmptyPromptError(SparkError):
    pass


class AttachmentError(SparkError):
    pass


class TurnInProgressError(SparkError):
    pass


class NoMediaReturnedError(SparkError):
    pass


class GatewayError(SparkError):
    """Failure surfaced from the model-serving boundary.

    ``str(err)`` is always a human-readable message suitable for display.
    """

    def __init__(self, message: str, *, model: str | None = None):
        super().__init__(message)
        self.message = message
        self.model = model


class AuthenticationError(GatewayError):
    pass


class StoreError(SparkError):
    pass
