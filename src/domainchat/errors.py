class DomainChatError(Exception):
    """Base class for errors raised by this service."""


class RegistrarError(DomainChatError):
    def __init__(self, domain: str, status_code: int, body: str = ""):
        self.domain = domain
        self.status_code = status_code
        self.body = body
        super().__init__(f"Registrar returned {status_code} for {domain}")


class LLMError(DomainChatError):
    pass


class StorageError(DomainChatError):
    pass
