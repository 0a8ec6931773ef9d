class ProviderError(Exception):
    """A payment or identity provider call failed or is not configured."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
