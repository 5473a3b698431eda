"""Tests for perch.runner — route table, access checks, wrapper templates."""

from pathlib import Path

import pytest

from perch.config import AppConfig
from perch.errors import (
    ConfigAlreadyLoaded,
    ConfigurationError,
    FactoryClassNotFound,
    FolderNotWritable,
    Forbidden,
    HandlerNotFound,
    RoutesAlreadyRegistered,
)
from perch.micro import Micro
from perch.runner import Runner, parse_access_checks, parse_methods
from perch.templating.kida_template import KidaTemplate
from perch.testing import TestClient


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "layout.html").write_text("<main>{{ content }}</main>", encoding="utf-8")
    (templates / "page.html").write_text("<html>{{ content }}</html>", encoding="utf-8")
    (templates / "404.html").write_text("<h1>No {{ path }} here</h1>", encoding="utf-8")
    (tmp_path / "writable").mkdir()
    return tmp_path


@pytest.fixture
def make_ini(write_ini, site_dir: Path):
    """Write an app.ini pointing at the site templates, with extra sections merged in."""

    def make(**extra: dict[str, str]) -> Path:
        sections: dict[str, dict[str, str]] = {
            "factory_settings": {"template": "kida"},
            "datetime": {"timezone": "UTC"},
            "app": {"templates": str(site_dir / "templates")},
            "session": {"secret_key": "test-secret"},
        }
        for name, values in extra.items():
            sections[name] = {**sections.get(name, {}), **values}
        return write_ini(sections)

    return make


class Site(Runner):
    """A small clipart site exercising the runner helpers."""

    def init(self) -> None:
        self.calls: list[str] = []
        self.template.set_template_dir(self.config.get("app", "templates"))
        self.set_layout_template("layout.html")
        self.set_page_template("page.html")
        self.register_routes(
            [
                ("/", None, "home"),
                ("/clipart/{term}", "logged_in", "clipart"),
                ("/clipart/{term}/{page:[0-9]+}", "logged_in:1|not_banned", "clipart"),
                ("/login", "", "login", "get|post"),
                ("/logout", None, "logout"),
                ("/ajax", None, "ajax"),
                ("/old", None, "old"),
                ("/created", None, "created"),
                ("/silent", None, "silent"),
                ("/moved", None, "moved"),
                ("/bare", None, "bare"),
            ]
        )

    # -- Access checks --

    def accesscheck_logged_in(self, strict: str = "0") -> None:
        self.calls.append(f"logged_in:{strict}")
        if not self.session_value("user"):
            raise Forbidden("Please log in")

    def accesscheck_not_banned(self) -> None:
        self.calls.append("not_banned")
        if self.session_value("user") == "mallory":
            raise Forbidden()

    # -- Handlers --

    def home_get(self) -> str:
        return "<p>Welcome</p>"

    async def clipart_get(self, term: str, page: str = "1") -> str:
        self.calls.append(f"clipart:{term}:{page}")
        return f"<p>{term} page {page}</p>"

    def login_get(self) -> str:
        return "<form></form>"

    def login_post(self) -> None:
        self.set_session_value("user", self.post_value("user"))
        self.redirect("/clipart/cats")

    def logout_get(self) -> None:
        self.unset_session_value("user")
        self.redirect("/")

    def ajax_get(self) -> str:
        self.set_is_ajax_response()
        return '{"ok": true}'

    def old_get(self) -> None:
        self.redirect("/new?from=" + self.get_value("from", "none"))

    def created_get(self) -> str:
        self.set_status_code(201, "Created")
        return "made"

    def silent_get(self) -> None:
        return None

    def moved_get(self) -> None:
        self.redirect("new")

    def bare_get(self) -> str:
        self.set_page_template(None)
        return "<p>bare</p>"


class TestHelpers:
    def test_parse_access_checks(self) -> None:
        assert parse_access_checks("a:1|b") == [("a", ("1",)), ("b", ())]
        assert parse_access_checks("a:1:x") == [("a", ("1", "x"))]
        assert parse_access_checks("|a||") == [("a", ())]
        assert parse_access_checks(None) == []
        assert parse_access_checks("") == []

    def test_parse_methods(self) -> None:
        assert parse_methods(None) == ["get"]
        assert parse_methods("GET|Post") == ["get", "post"]
        assert parse_methods("|") == ["get"]


class TestConstruction:
    def test_builds_services(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        assert site.config.loaded is True
        assert site.timezone == "UTC"
        assert isinstance(site.micro, Micro)
        assert isinstance(site.template, KidaTemplate)
        assert site.micro.di.get("config") is site.config
        assert len(site.routes) == 11

    def test_timezone_defaults_to_gmt(self, write_ini, site_dir) -> None:
        ini = write_ini(
            {
                "factory_settings": {"template": "kida"},
                "app": {"templates": str(site_dir / "templates")},
            }
        )
        assert Site(ini, site_dir / "writable").timezone == "GMT"

    def test_folder_missing(self, make_ini, site_dir) -> None:
        with pytest.raises(FolderNotWritable, match="not writable"):
            Site(make_ini(), site_dir / "nope")

    def test_folder_is_a_file(self, make_ini, site_dir) -> None:
        path = site_dir / "file.txt"
        path.write_text("x", encoding="utf-8")
        with pytest.raises(FolderNotWritable):
            Site(make_ini(), path)

    def test_preloaded_config(self, make_ini, site_dir) -> None:
        config = AppConfig.from_file(make_ini())
        site = Site(None, site_dir / "writable", config=config)
        assert site.config is config

    def test_preloaded_config_and_file(self, make_ini, site_dir) -> None:
        path = make_ini()
        config = AppConfig.from_file(path)
        with pytest.raises(ConfigAlreadyLoaded):
            Site(path, site_dir / "writable", config=config)

    def test_no_config(self, site_dir) -> None:
        with pytest.raises(ConfigurationError, match="config file"):
            Site(None, site_dir / "writable")

    def test_unknown_template_backend(self, make_ini, site_dir) -> None:
        ini = make_ini(factory_settings={"template": "smarty"})
        with pytest.raises(FactoryClassNotFound):
            Site(ini, site_dir / "writable")

    def test_injected_micro_and_template(self, make_ini, site_dir) -> None:
        config = AppConfig.from_file(make_ini())
        micro = Micro(base_uri="/x/")
        template = KidaTemplate(str(site_dir / "writable"), config)

        site = Site(None, site_dir / "writable", config=config, micro=micro, template=template)
        assert site.micro is micro
        assert site.template is template


class TestRouteRegistration:
    def test_register_twice(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")
        with pytest.raises(RoutesAlreadyRegistered):
            site.register_routes([("/again", None, "home")])

    def test_missing_handler(self, make_ini, site_dir) -> None:
        class Broken(Runner):
            def init(self) -> None:
                self.register_routes([("/", None, "home", "get|post")])

            def home_get(self) -> str:
                return ""

        with pytest.raises(HandlerNotFound, match="home_post"):
            Broken(make_ini(), site_dir / "writable")

    def test_missing_access_check(self, make_ini, site_dir) -> None:
        class Broken(Runner):
            def init(self) -> None:
                self.register_routes([("/", "admin", "home")])

            def home_get(self) -> str:
                return ""

        with pytest.raises(HandlerNotFound, match="accesscheck_admin"):
            Broken(make_ini(), site_dir / "writable")

    def test_malformed_entry(self, make_ini, site_dir) -> None:
        class Broken(Runner):
            def init(self) -> None:
                self.register_routes([("/", "home")])

        with pytest.raises(ConfigurationError, match="3 or 4 items"):
            Broken(make_ini(), site_dir / "writable")


class TestDispatch:
    async def test_layout_inside_page(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/")

        assert response.status == 200
        assert response.text == "<html><main><p>Welcome</p></main></html>"

    async def test_ajax_response_skips_wrappers(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/ajax")
        assert response.text == '{"ok": true}'

    async def test_none_output_still_wrapped(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/silent")
        assert response.text == "<html><main></main></html>"

    async def test_status_helper(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/created")
        assert response.status == 201
        assert "made" in response.text

    async def test_debug_param_wraps_each_render(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/?debug")
        assert response.text.count('<div style="border: 5px dashed blue">') == 2

    async def test_ajax_response_does_not_leak_into_next_request(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            await client.get("/ajax")
            response = await client.get("/")

        assert response.text == "<html><main><p>Welcome</p></main></html>"
        assert site.page_template == "page.html"
        assert site.layout_template == "layout.html"

    async def test_handler_override_applies_to_one_response(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            bare = await client.get("/bare")
            home = await client.get("/")

        assert bare.text == "<main><p>bare</p></main>"
        assert home.text == "<html><main><p>Welcome</p></main></html>"


class TestAccessChecks:
    async def test_rejected_before_handler(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/clipart/cats")

        assert response.status == 403
        assert response.text == "Please log in"
        assert site.calls == ["logged_in:0"]

    async def test_checks_run_in_order_with_args(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            await client.post("/login", data={"user": "ada"})
            response = await client.get("/clipart/dogs/2")

        assert response.status == 200
        assert response.text == "<html><main><p>dogs page 2</p></main></html>"
        assert site.calls == ["logged_in:1", "not_banned", "clipart:dogs:2"]

    async def test_later_check_rejects(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            await client.post("/login", data={"user": "mallory"})
            response = await client.get("/clipart/dogs/2")

        assert response.status == 403
        assert site.calls == ["logged_in:1", "not_banned"]

    async def test_first_rejection_stops_the_chain(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/clipart/dogs/2")

        assert response.status == 403
        assert site.calls == ["logged_in:1"]

    async def test_constraint_mismatch_is_404(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/clipart/dogs/two")
        assert response.status == 404
        assert site.calls == []


class TestRedirects:
    async def test_redirect_after_post(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.post("/login", data={"user": "ada"})

        assert response.status == 302
        assert response.header("location") == "/clipart/cats"

    async def test_redirect_with_base_uri(self, make_ini, site_dir) -> None:
        site = Site(make_ini(app={"base_uri": "/shop/"}), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/old?from=home")
        assert response.header("location") == "/shop/new?from=home"

    async def test_redirect_without_leading_slash(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/moved")
        assert response.status == 302
        assert response.header("location") == "/new"

    async def test_redirect_without_leading_slash_and_base_uri(self, make_ini, site_dir) -> None:
        site = Site(make_ini(app={"base_uri": "/shop/"}), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/moved")
        assert response.header("location") == "/shop/new"

    async def test_redirect_to_root(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/logout")
        assert response.header("location") == "/"


class TestSessions:
    async def test_login_logout_round_trip(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            await client.post("/login", data={"user": "ada"})
            assert (await client.get("/clipart/cats")).status == 200

            await client.get("/logout")
            assert (await client.get("/clipart/cats")).status == 403


class TestNotFound:
    async def test_default_page(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/missing")

        assert response.status == 404
        assert response.text == "<h1>Page Not Found</h1>"

    async def test_wrong_method_uses_404_page(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.delete("/")
        assert response.status == 404

    async def test_custom_page(self, make_ini, site_dir) -> None:
        class CustomSite(Site):
            def show_404_page(self) -> None:
                html = self.template.load_template("404.html", {"path": self.micro.request.path})
                self.micro.response.write(html)

        site = CustomSite(make_ini(), site_dir / "writable")

        async with TestClient(site) as client:
            response = await client.get("/missing")
        assert response.status == 404
        assert response.text == "<h1>No /missing here</h1>"


class TestDatabaseService:
    def test_not_registered_by_default(self, make_ini, site_dir) -> None:
        site = Site(make_ini(), site_dir / "writable")
        assert "db" not in site.micro.di

    def test_built_lazily_from_settings(self, make_ini, site_dir) -> None:
        built: list[dict[str, str]] = []

        class DbSite(Site):
            def create_database(self, settings):
                built.append(settings)
                return {"connected": settings["dbname"]}

        ini = make_ini(
            runner={"database_service": "on"},
            database={"host": "localhost", "dbname": "clipart"},
        )
        site = DbSite(ini, site_dir / "writable")
        assert built == []

        db = site.micro.di.get("db")
        assert db == {"connected": "clipart"}
        assert site.micro.di.get("db") is db
        assert built == [{"host": "localhost", "dbname": "clipart"}]

    def test_enabled_without_override(self, make_ini, site_dir) -> None:
        ini = make_ini(runner={"database_service": "on"}, database={"host": "x"})
        site = Site(ini, site_dir / "writable")
        with pytest.raises(ConfigurationError, match="create_database"):
            site.micro.di.get("db")
