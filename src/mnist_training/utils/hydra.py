"""Hydra ConfigStore registration for model classes."""

from __future__ import annotations

from typing import Any

from hydra.core.config_store import ConfigStore
from loguru import logger


def register(
    cls: type[Any] | None = None,
    *,
    group: str = "model",
    name: str | None = None,
    **kwargs: Any,
) -> type[Any] | Any:
    """Decorator that registers a model class in Hydra's ConfigStore.

    The stored node is ``{"_target_": "<module>.<Class>", **kwargs}`` under
    ``<group>/<name>``, so ``model=<name>`` selects it from the command line.

    Arguments:
        cls: The class to register.
        group: The ConfigStore group.
        name: The config name. Defaults to the class name.
        **kwargs: Default values for the configuration node.
    """

    def _process_class(target_cls: type[Any]) -> type[Any]:
        target_path = f"{target_cls.__module__}.{target_cls.__name__}"
        config_name = name or target_cls.__name__

        logger.debug(f"Registering {target_cls.__name__} as '{group}/{config_name}'")
        node = {"_target_": target_path}
        node.update(kwargs)
        ConfigStore.instance().store(group=group, name=config_name, node=node)
        return target_cls

    if cls is None:
        return _process_class
    return _process_class(cls)
