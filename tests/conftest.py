from __future__ import annotations

import http.client
import socket
from pathlib import Path

import pytest

from folio.config import SiteConfig
from folio.server import StaticFileServer


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def raw_get(port: int, target: str, method: str = "GET") -> tuple[int, bytes, dict]:
    """Send ``target`` verbatim; requests/urllib3 would normalize dot segments."""
    conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request(method, target)
        response = conn.getresponse()
        body = response.read()
        headers = {key.lower(): value for key, value in response.getheaders()}
        return response.status, body, headers
    finally:
        conn.close()


@pytest.fixture
def site_root(tmp_path: Path) -> Path:
    root = tmp_path / "site"
    (root / "sub").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "index.html").write_text("Hello", encoding="utf-8")
    (root / "sub" / "index.html").write_text("Sub", encoding="utf-8")
    (root / "style.css").write_text("body{color:red}", encoding="utf-8")
    (root / "app.js").write_text("console.log(1);", encoding="utf-8")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    (root / "data.bin").write_bytes(b"\x00\x01\x02")
    (root / "hello world.txt").write_text("spaced", encoding="utf-8")
    (tmp_path / "secret.txt").write_text("TOP-SECRET", encoding="utf-8")
    return root


@pytest.fixture
def server(site_root: Path):
    srv = StaticFileServer(site_root, port=free_port())
    srv.start()
    yield srv
    srv.stop()


@pytest.fixture
def project(tmp_path: Path) -> SiteConfig:
    """A small portfolio source tree without a favicon (rasterizing needs cairo)."""
    root = tmp_path / "project"
    src = root / "src"
    (src / "pages").mkdir(parents=True)
    (src / "partials").mkdir()
    (src / "content").mkdir()
    (src / "images").mkdir()
    (src / "case-study" / "alpha").mkdir(parents=True)

    (src / "script.js").write_text(
        "// toggles the theme\nfunction toggleTheme(  current ) {\n"
        "    return current === 'dark' ? 'light' : 'dark';\n}\n",
        encoding="utf-8",
    )
    (src / "style.css").write_text("body {\n    color : #333;\n}\n/* comment */\n", encoding="utf-8")
    (src / "cv-style.css").write_text(".cv  {  margin : 0px ; }\n", encoding="utf-8")
    (src / "robots.txt").write_text("User-agent: *\nAllow: /\n", encoding="utf-8")
    (src / "sitemap.xml").write_text(
        '<?xml version="1.0" encoding="UTF-8"?>\n<urlset>\n'
        "<url><loc>https://example.com/</loc><lastmod>2020-01-01</lastmod></url>\n"
        "<url><loc>https://example.com/cv.html</loc><lastmod>2021-06-30</lastmod></url>\n"
        "</urlset>\n",
        encoding="utf-8",
    )
    (src / "images" / "photo.png").write_bytes(b"\x89PNG\r\n\x1a\nphoto")
    (src / "case-study" / "alpha" / "index.html").write_text("<p>Alpha</p>", encoding="utf-8")
    (src / "content" / "about.md").write_text(
        "---\ntitle: About\n---\n# About me\n\nI build **backend** systems.\n- Python\n- Go\n",
        encoding="utf-8",
    )
    (src / "partials" / "head.html").write_text(
        '<meta charset="utf-8">\n<title>{{ title }}</title>\n'
        '<meta name="description" content="{{ site_description }}">\n'
        '<link rel="stylesheet" href="/style.css">\n',
        encoding="utf-8",
    )
    (src / "pages" / "index.html").write_text(
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n{% include 'partials/head.html' %}\n</head>\n"
        "<body class=\"{{ page_class }}\">\n  <!-- main content -->\n  <main>\n"
        "    {{ content.about | safe }}\n  </main>\n"
        '  <script src="/script.js" defer></script>\n</body>\n</html>\n',
        encoding="utf-8",
    )
    (src / "pages" / "cv.html").write_text(
        "<!DOCTYPE html>\n<html lang=\"en\">\n<head>\n{% include 'partials/head.html' %}\n"
        '<link rel="stylesheet" href="/cv-style.css">\n</head>\n'
        "<body class=\"{{ page_class }}\"><main><h1>CV</h1></main></body>\n</html>\n",
        encoding="utf-8",
    )
    return SiteConfig(
        root=root,
        site_description="Backend & systems portfolio",
        site_url="https://example.com/",
        pages={
            "index.html": {"title": "Home | Example"},
            "cv.html": {"title": "CV | Example", "page_class": "page-cv"},
        },
    )
