"""
Application configuration helpers.

Configuration values are declared as ``Config`` objects (see ``configs.py``)
and read through ``AppConfig``, which resolves them from the process
environment after loading a local ``.env`` file.
"""

import importlib
import importlib.util
import logging
import os
import sys
from pathlib import Path
from types import ModuleType

from dotenv import load_dotenv
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class Config(BaseModel):
    env_name: str
    is_required: bool
    default_value: str | None


class AppConfig:
    """
    Environment-backed configuration.

    Only declared configs can be read; ``get`` raises ``KeyError`` for
    anything that was never registered with ``add_configs``.
    """

    configs: list[Config] = []

    def __init__(self):
        load_dotenv()
        self.props: dict[str, str | None] = {}
        self._reload_from_environment()

    @classmethod
    def add_config(cls, config: Config) -> None:
        if not any(c.env_name == config.env_name for c in cls.configs):
            cls.configs.append(config)

    @classmethod
    def add_configs(cls, configs: list[Config]) -> None:
        for config in configs:
            cls.add_config(config)

    def _reload_from_environment(self) -> None:
        for config in AppConfig.configs:
            value = os.getenv(config.env_name, config.default_value)
            if config.is_required and value is None:
                raise ValueError(f"Missing required configuration: {config.env_name}")
            self.props[config.env_name] = value

    def get(self, key: str) -> str | None:
        return self.props[key]


class ModuleLoader:
    @staticmethod
    def load_module(module_name: str) -> ModuleType:
        """
        Load a module by dotted name or by path to a ``.py`` file.

        Args:
            module_name: ``package.module`` or ``path/to/module.py``

        Returns:
            ModuleType: The loaded module
        """
        if not module_name.endswith(".py"):
            return importlib.import_module(module_name)

        path = Path(module_name)
        if not path.exists():
            raise FileNotFoundError(f"Module file not found: {module_name}")

        name = path.stem
        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load module from {module_name}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        spec.loader.exec_module(module)
        logger.debug(f"Loaded module {name} from {module_name}")
        return module
