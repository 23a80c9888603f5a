from pathlib import Path

from alembic.config import Config
from alembic.script import ScriptDirectory

ROOT = Path(__file__).resolve().parent.parent


def script_directory():
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))
    return ScriptDirectory.from_config(config)


def test_single_linear_history():
    script = script_directory()
    assert script.get_heads() == ["001_affiliate_sales_session_unique"]
    assert script.get_bases() == ["001_affiliate_sales_session_unique"]


def test_every_revision_changes_the_schema():
    for revision in script_directory().walk_revisions():
        source = Path(revision.path).read_text()
        assert "op." in source, f"{revision.revision} has no operations"
