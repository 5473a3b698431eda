"""Template capability: abstract base and interface.

A template backend is resolved through the factory loader under the
``Template`` capability. To be accepted it must extend ``Template`` and
implement ``TemplateInterface``; a class satisfying only one of the two
is rejected.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from perch.config import AppConfig


class Template(ABC):  # noqa: B024
    """Base class of every template backend."""


class TemplateInterface(ABC):
    """Operations every template backend provides."""

    @abstractmethod
    def __init__(self, writable_folder: str | os.PathLike[str], config: AppConfig) -> None: ...

    @abstractmethod
    def set_template_dir(self, path: str | os.PathLike[str]) -> None:
        """Set the root directory templates are looked up in."""

    @abstractmethod
    def persist_template_var(self, name: str, value: Any) -> None:
        """Add or overwrite a variable passed to every later render."""

    @abstractmethod
    def load_template(
        self,
        template: str,
        vars: Mapping[str, Any] | None = None,
        cache_id: str = "",
    ) -> str:
        """Render *template* and return the output."""

    @abstractmethod
    def template_exists(self, template: str) -> bool:
        """Check whether *template* can be located, without rendering it."""

    @abstractmethod
    def register_plugin(self, kind: str, name: str, callback: Callable[..., Any]) -> None:
        """Register a backend extension (filter, function, ...)."""
