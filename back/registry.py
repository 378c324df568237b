"""
Provider plugin registry.

Every module in sources/ that defines a `Source` class is loaded at startup
and registered under its `name`. Which one serves as the catalog provider is
a configuration choice (settings.catalog_provider).
"""

import importlib
import logging
import os
import pkgutil

from sources.base import ProviderAdapter

logger = logging.getLogger(__name__)

SOURCES_DIR = os.path.join(os.path.dirname(__file__), "sources")


def load_sources(sources_dir: str = SOURCES_DIR) -> dict[str, ProviderAdapter]:
    """Dynamically load all provider plugins from the sources/ directory."""
    loaded: dict[str, ProviderAdapter] = {}
    for _, module_name, _ in pkgutil.iter_modules([sources_dir]):
        if module_name == "base" or module_name.startswith("_"):
            continue
        try:
            module = importlib.import_module(f"sources.{module_name}")
        except ImportError as e:
            logger.error("✗ Failed to load source %s: %s", module_name, e)
            continue
        if hasattr(module, "Source"):
            source = module.Source()
            loaded[source.name] = source
            logger.info("✓ Loaded source: %s", source.name)
    return loaded

