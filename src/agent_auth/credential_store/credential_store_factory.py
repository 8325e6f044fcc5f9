from agent_auth.app_config import AppConfig, ModuleLoader
from agent_auth.configs import (
    AA_CREDENTIAL_STORE_CLASS,
    AA_CREDENTIAL_STORE_MODULE,
    AA_FLOW_STATE_TTL,
)

from .credential_store import CredentialStore
from .in_memory_credential_store import InMemoryCredentialStore
from .singleton import Singleton

"""
The CredentialStoreFactory is responsible for creating credential store
instances.

It retrieves the module and class names from environment variables for custom implementations,
and ensures the dynamically loaded class is a subclass of CredentialStore.
Falls back to InMemoryCredentialStore when no custom module is provided.
"""


class CredentialStoreFactory(metaclass=Singleton):
    def __init__(self, app_config: AppConfig):
        self.app_config = app_config

        module_name, class_name = self._get_custom_store_config()
        if module_name and class_name:
            try:
                self.module = ModuleLoader.load_module(module_name)
            except Exception as e:
                raise ImportError(f"Failed to load module '{module_name}': {e}") from e

            self.class_name = class_name
            self._validate_custom_class()
        else:
            self.module = None
            self.class_name = None

    def get_credential_store(self) -> CredentialStore:
        if self.module and self.class_name:
            custom_class = getattr(self.module, self.class_name)
            try:
                return custom_class(app_config=self.app_config)
            except TypeError:
                # Fallback if app_config not accepted
                return custom_class()
        return InMemoryCredentialStore(ttl_seconds=self._get_flow_state_ttl())

    def _get_flow_state_ttl(self) -> float | None:
        try:
            ttl = self.app_config.get(AA_FLOW_STATE_TTL.env_name)
        except KeyError:
            return None
        return float(ttl) if ttl else None

    def _get_custom_store_config(self) -> tuple[str | None, str | None]:
        """Get custom store configuration, returning None values if not configured."""
        try:
            module_name = self.app_config.get(AA_CREDENTIAL_STORE_MODULE.env_name)
        except KeyError:
            return None, None

        try:
            class_name = self.app_config.get(AA_CREDENTIAL_STORE_CLASS.env_name)
        except KeyError:
            class_name = None

        if module_name and not class_name:
            raise ValueError("Custom Credential Store class name not provided")

        return module_name, class_name

    def _validate_custom_class(self):
        """Validate that the custom class is a proper CredentialStore subclass."""
        if not hasattr(self.module, self.class_name):
            module_name = getattr(self.module, "__name__", "unknown module")
            raise ValueError(
                f"Custom Credential Store class: {self.class_name} "
                f"Not found in module: {module_name}"
            )

        custom_class = getattr(self.module, self.class_name)
        if not isinstance(custom_class, type) or not issubclass(custom_class, CredentialStore):
            raise TypeError(f"Class '{self.class_name}' is not a subclass of CredentialStore.")
