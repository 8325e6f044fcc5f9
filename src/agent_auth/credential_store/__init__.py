from agent_auth.credential_store.credential_store import CredentialStore
from agent_auth.credential_store.credential_store_factory import CredentialStoreFactory
from agent_auth.credential_store.in_memory_credential_store import InMemoryCredentialStore

__all__ = [
    "CredentialStore",
    "CredentialStoreFactory",
    "InMemoryCredentialStore",
]
