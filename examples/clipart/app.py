"""Clipart — a small routed site on the perch runner.

Shows the route table, access checks with arguments, layout/page
wrapping, session helpers and redirects.

Run:
    python app.py
"""

from pathlib import Path

from perch import Forbidden, Runner

HERE = Path(__file__).parent
WRITABLE = HERE / "writable"


class ClipartSite(Runner):
    def init(self) -> None:
        self.template.set_template_dir(HERE / "templates")
        self.template.persist_template_var("site_name", "Clipart")
        self.set_layout_template("layout.html")
        self.set_page_template("page.html")
        self.register_routes(
            [
                ("/", None, "home"),
                ("/login", None, "login", "get|post"),
                ("/logout", None, "logout"),
                ("/clipart/{term}", "logged_in", "search"),
                ("/clipart/{term}/{page:[0-9]+}", "logged_in:1", "search"),
            ]
        )

    def accesscheck_logged_in(self, strict: str = "0") -> None:
        if not self.session_value("user"):
            raise Forbidden("Log in at /login to browse clipart")
        if strict == "1" and self.session_value("user") == "guest":
            raise Forbidden("Guests only see the first page")

    def home_get(self) -> str:
        return '<p>Try <a href="/clipart/cats">/clipart/cats</a>.</p>'

    def login_get(self) -> str:
        return self.template.load_template("login.html")

    def login_post(self) -> None:
        self.set_session_value("user", self.post_value("user", "guest"))
        self.redirect("/clipart/cats")

    def logout_get(self) -> None:
        self.unset_session_value("user")
        self.redirect("/")

    def search_get(self, term: str, page: str = "1") -> str:
        return self.template.load_template(
            "search.html",
            {"term": term, "page": page},
            cache_id=f"{term}:{page}",
        )


if __name__ == "__main__":
    WRITABLE.mkdir(exist_ok=True)
    ClipartSite(HERE / "app.ini", WRITABLE).run()
