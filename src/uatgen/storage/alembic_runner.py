"""Apply the job store migrations programmatically."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

_PROJECT_ROOT = Path(__file__).resolve().parents[3]


def upgrade_head(db_path: Path) -> None:
    """Bring the SQLite job store at ``db_path`` to the latest revision."""

    alembic_dir = _PROJECT_ROOT / "alembic"
    if not alembic_dir.is_dir():
        raise FileNotFoundError(
            f"Alembic migrations not found at {alembic_dir}; "
            "install uatgen from a source checkout.",
        )

    config = Config(str(_PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(alembic_dir))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    command.upgrade(config, "head")
