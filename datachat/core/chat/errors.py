class ChatError(Exception):
    """Base class for failures that reject an inbound chat message."""


class QuotaExceeded(ChatError):
    def __init__(self, used: int, allowed: int):
        self.used = used
        self.allowed = allowed
        super().__init__("Query limit reached for this billing cycle")


class NotFound(ChatError):
    """Conversation or bound source is missing or belongs to someone else."""


class ModelGatewayError(ChatError):
    """The language model could not produce a reply."""
