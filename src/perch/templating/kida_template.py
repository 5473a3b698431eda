"""kida template backend.

Wraps a kida ``Environment`` behind the ``TemplateInterface`` contract.
The environment is (re)built when the template directory is set;
plugins registered earlier are carried over.

Config (``[kida]`` section)::

    autoescape = off      ; escape {{ }} output (default off)
    auto_reload = on      ; recompile templates changed on disk
    caching = off         ; cache rendered output per cache_id
    cache_dir = cache     ; directory under the writable folder
"""

from __future__ import annotations

import hashlib
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from kida import Environment, FileSystemLoader, TemplateNotFoundError

from perch.context import current_request, request_state
from perch.errors import TemplateDirNotSet, TemplateNotFound
from perch.templating.base import Template, TemplateInterface

if TYPE_CHECKING:
    from perch.config import AppConfig

logger = logging.getLogger("perch.templating")

DEBUG_PARAM = "debug"
DEBUG_WRAPPER = '<div style="border: 5px dashed blue">{}</div>'

# register_plugin() kinds -> how they are applied to the environment
PLUGIN_KINDS = frozenset({"filter", "function", "global"})


class KidaTemplate(Template, TemplateInterface):
    """Template backend rendering through kida.

    Usage::

        template = KidaTemplate("/var/app/writable", config)
        template.set_template_dir("templates")
        template.persist_template_var("site", "Example")
        html = template.load_template("home.html", {"user": "ada"})
    """

    def __init__(self, writable_folder: str | os.PathLike[str], config: AppConfig) -> None:
        self._env: Environment | None = None
        self._template_dir: Path | None = None
        self._persisted_vars: dict[str, Any] = {}
        self._plugins: list[tuple[str, str, Callable[..., Any]]] = []

        self._autoescape = config.get_bool("kida", "autoescape", False)
        self._auto_reload = config.get_bool("kida", "auto_reload", True)
        self._caching = config.get_bool("kida", "caching", False)
        cache_fragment = str(config.get("kida", "cache_dir", "cache")).strip("/")
        self._cache_dir = Path(writable_folder) / cache_fragment

    # -- Setup --

    def set_template_dir(self, path: str | os.PathLike[str]) -> None:
        self._template_dir = Path(path)
        env = Environment(
            loader=FileSystemLoader(str(self._template_dir)),
            autoescape=self._autoescape,
            auto_reload=self._auto_reload,
        )
        for kind, name, callback in self._plugins:
            _apply_plugin(env, kind, name, callback)
        self._env = env
        logger.debug("Template directory set to %s", self._template_dir)

    @property
    def template_dir(self) -> Path | None:
        return self._template_dir

    def persist_template_var(self, name: str, value: Any) -> None:
        """Pass *name* to every later render.

        Outside a request (setup) the variable is kept for the backend's
        lifetime; during a request it only lasts until that request ends.
        """
        self._scoped_vars()[name] = value

    def _scoped_vars(self) -> dict[str, Any]:
        state = request_state()
        if state is None:
            return self._persisted_vars
        return state.setdefault(f"perch.templating.vars.{id(self)}", {})

    @property
    def persisted_vars(self) -> dict[str, Any]:
        """Variables applied to renders right now (request overrides included)."""
        scoped = self._scoped_vars()
        if scoped is self._persisted_vars:
            return dict(self._persisted_vars)
        return {**self._persisted_vars, **scoped}

    def register_plugin(self, kind: str, name: str, callback: Callable[..., Any]) -> None:
        """Register a filter (``filter``) or global callable (``function``/``global``)."""
        if kind not in PLUGIN_KINDS:
            msg = f"Unknown plugin kind {kind!r}; expected one of {sorted(PLUGIN_KINDS)}"
            raise ValueError(msg)
        self._plugins.append((kind, name, callback))
        if self._env is not None:
            _apply_plugin(self._env, kind, name, callback)

    # -- Rendering --

    def template_exists(self, template: str) -> bool:
        if self._env is None:
            return False
        try:
            self._env.get_template(template)
        except TemplateNotFoundError:
            return False
        return True

    def load_template(
        self,
        template: str,
        vars: Mapping[str, Any] | None = None,
        cache_id: str = "",
    ) -> str:
        """Render *template* with persisted vars overlaid by *vars*.

        Raises ``TemplateDirNotSet`` before ``set_template_dir()``.
        Raises ``TemplateNotFound`` if the template cannot be located.
        """
        if self._env is None:
            msg = "Template directory has not been set. Call template.set_template_dir(path) first."
            raise TemplateDirNotSet(msg)

        try:
            compiled = self._env.get_template(template)
        except TemplateNotFoundError as exc:
            msg = f"Template not found: {template}"
            raise TemplateNotFound(msg) from exc

        cache_file = self._cache_file(template, cache_id)
        if cache_file is not None and cache_file.is_file():
            output = cache_file.read_text(encoding="utf-8")
        else:
            # Fresh context on every call: nothing leaks from the previous render
            context = {**self.persisted_vars, **(vars or {})}
            output = compiled.render(context)
            if cache_file is not None:
                cache_file.parent.mkdir(parents=True, exist_ok=True)
                cache_file.write_text(output, encoding="utf-8")

        request = current_request()
        if request is not None and DEBUG_PARAM in request.query:
            return DEBUG_WRAPPER.format(output)
        return output

    # -- Output cache --

    def _cache_file(self, template: str, cache_id: str) -> Path | None:
        if not self._caching or not cache_id:
            return None
        digest = hashlib.sha256(f"{template}\0{cache_id}".encode()).hexdigest()[:32]
        return self._cache_dir / f"{digest}.html"

    def clear_cache(self) -> int:
        """Delete every cached render. Returns the number of files removed."""
        if not self._cache_dir.is_dir():
            return 0
        removed = 0
        for entry in self._cache_dir.glob("*.html"):
            entry.unlink()
            removed += 1
        return removed


def _apply_plugin(env: Environment, kind: str, name: str, callback: Callable[..., Any]) -> None:
    if kind == "filter":
        env.update_filters({name: callback})
    else:
        env.add_global(name, callback)
