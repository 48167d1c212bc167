"""
Pytest configuration and fixtures for Beni tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from beni.domain.models import BuildConfiguration  # noqa: E402
from beni.infra.tools import BaselineProvider  # noqa: E402

HOME_TEMPLATE = """<!-- landing page -->
<section>
    <h1>{{ title }}</h1>
    <ul>
        {{#each items}}<li>{{ index }}: {{ this }}</li>{{/each}}
    </ul>
    <user-card name="{{ user.name }}"></user-card>
</section>
"""

ABOUT_TEMPLATE = "<p>{{#if loggedIn}}Welcome back{{/if}}{{#if !loggedIn}}Please sign in{{/if}}</p>"

USER_CARD = '<div class="card">{{ props.name }} <small>{{ props.role }}</small> {{ props.name }}</div>'

APP_JS = """// entry point
const home = template("home");
const about = template('docs/about');
// template("home") stays inside this comment
console.log("booting");
render(home + about);
"""


@pytest.fixture
def project(tmp_path):
    """Create a small but complete project tree."""
    root = tmp_path / "app"
    templates = root / "src" / "templates"
    (templates / "components").mkdir(parents=True)
    (templates / "docs").mkdir()
    (templates / "home.html").write_text(HOME_TEMPLATE)
    (templates / "docs" / "about.html").write_text(ABOUT_TEMPLATE)
    (templates / "components" / "user-card.html").write_text(USER_CARD)

    (root / "src" / "app.js").write_text(APP_JS)

    styles = root / "src" / "styles"
    styles.mkdir()
    (styles / "b-layout.css").write_text(".layout {\n  display: grid;\n}\n")
    (styles / "a-base.css").write_text("/* base */\nbody {\n  margin: 0;\n}\n")

    assets = root / "src" / "assets"
    assets.mkdir()
    (assets / "logo.svg").write_text('<svg xmlns="http://www.w3.org/2000/svg"></svg>')

    public = root / "public"
    public.mkdir()
    (public / "robots.txt").write_text("User-agent: *\n")
    (public / ".DS_Store").write_bytes(b"\x00\x01junk")
    return root


@pytest.fixture
def config(project):
    """BuildConfiguration for the project fixture, baseline tools only."""
    return BuildConfiguration(root=project, tools={"provider": "none"})


@pytest.fixture
def baseline_provider():
    return BaselineProvider()
