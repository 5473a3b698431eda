"""Capability factory.

A capability is an abstract named service ("Template") with exactly one
configured implementation at a time. The implementation is named in the
``[factory_settings]`` section under the lower-cased capability name::

    [factory_settings]
    template = kida                                   ; registered alias
    ; template = myapp.views:JinjaTemplate            ; or an import path

An implementation must extend the capability's base class *and*
implement its interface; the check runs when an alias is registered and
again when a configured import path is resolved.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from perch.errors import FactoryClassNotFound, FactoryInvalidOption

if TYPE_CHECKING:
    from perch.config import AppConfig

logger = logging.getLogger("perch.factory")

SETTINGS_SECTION = "factory_settings"


@dataclass(frozen=True, slots=True)
class Capability:
    """A named capability: the base class and interface implementations must have."""

    name: str
    base: type
    interface: type

    @property
    def config_key(self) -> str:
        return self.name.lower()

    def accepts(self, cls: type) -> bool:
        return issubclass(cls, self.base) and issubclass(cls, self.interface)


def import_class(path: str) -> type | None:
    """Import ``package.module:Class`` or ``package.module.Class``.

    Returns ``None`` if the module or attribute cannot be found or is not
    a class.
    """
    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    obj = getattr(module, attr, None)
    return obj if isinstance(obj, type) else None


class FactoryLoader:
    """Resolve and construct the configured implementation of a capability.

    Owned by the composition root alongside the config; singleton
    instances are cached per loader, not per process.

    Usage::

        loader = FactoryLoader.default(config)
        template = loader.load("Template", params="/var/app/writable")
    """

    __slots__ = ("_capabilities", "_config", "_registry", "_singletons")

    def __init__(self, config: AppConfig) -> None:
        self._config = config
        self._capabilities: dict[str, Capability] = {}
        # capability name -> alias -> implementation class
        self._registry: dict[str, dict[str, type]] = {}
        self._singletons: dict[str, Any] = {}

    @classmethod
    def default(cls, config: AppConfig) -> FactoryLoader:
        """A loader with the ``Template`` capability and the ``kida`` backend."""
        from perch.templating.base import Template, TemplateInterface
        from perch.templating.kida_template import KidaTemplate

        loader = cls(config)
        loader.add_capability(Capability("Template", Template, TemplateInterface))
        loader.register("Template", "kida", KidaTemplate)
        return loader

    # -- Registration --

    def add_capability(self, capability: Capability) -> None:
        self._capabilities[capability.name] = capability
        self._registry.setdefault(capability.name, {})

    def capability(self, name: str) -> Capability:
        try:
            return self._capabilities[name]
        except KeyError:
            msg = f"Invalid factory option: unknown capability {name!r}"
            raise FactoryInvalidOption(msg) from None

    def register(self, capability: str, alias: str, cls: type) -> None:
        """Register *cls* under *alias* for *capability*.

        Raises ``FactoryInvalidOption`` if *cls* does not extend the
        capability base and implement its interface.
        """
        cap = self.capability(capability)
        self._validate(cap, cls)
        self._registry[cap.name][alias] = cls

    # -- Resolution --

    def resolve(self, capability: str) -> type:
        """Return the implementation class configured for *capability*."""
        cap = self.capability(capability)
        name = self._config.get(SETTINGS_SECTION, cap.config_key)
        if not name:
            msg = (
                f"Could not find a class for factory option {cap.name!r}: "
                f"[{SETTINGS_SECTION}] {cap.config_key} is not set"
            )
            raise FactoryClassNotFound(msg)

        cls = self._registry[cap.name].get(name) or import_class(name)
        if cls is None:
            msg = f"Could not find class {name} for factory option: {cap.name}"
            raise FactoryClassNotFound(msg)

        self._validate(cap, cls)
        return cls

    def load(self, capability: str, as_singleton: bool = False, params: Any = None) -> Any:
        """Construct the configured implementation as ``cls(params, config)``.

        With *as_singleton*, the first instance is cached and returned by
        every later singleton load of the same capability.
        """
        if as_singleton and capability in self._singletons:
            return self._singletons[capability]

        cls = self.resolve(capability)
        instance = cls(params, self._config)
        logger.info("Loaded %s implementation %s", capability, cls.__qualname__)

        if as_singleton:
            self._singletons[capability] = instance
        return instance

    @staticmethod
    def _validate(capability: Capability, cls: type) -> None:
        if not capability.accepts(cls):
            msg = (
                f"Invalid factory option for {capability.name}: {cls.__qualname__} must "
                f"extend {capability.base.__qualname__} and implement "
                f"{capability.interface.__qualname__}"
            )
            raise FactoryInvalidOption(msg)
