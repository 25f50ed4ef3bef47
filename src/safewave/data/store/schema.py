"""
Alembic entry points for the store schema.

Revisions live in the `migrations` directory next to this module. Each one
inspects the live schema before changing it, so databases written by releases
without version tracking are upgraded in place.
"""
import logging
from pathlib import Path
from typing import List, Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / 'migrations'


def alembic_config(engine: Optional[Engine] = None, script_location=None) -> Config:
    cfg = Config()
    cfg.set_main_option('script_location', str(script_location or MIGRATIONS_DIR))
    if engine is not None:
        # ConfigParser interpolation treats '%' as a reference
        url = engine.url.render_as_string(hide_password=False).replace('%', '%%')
        cfg.set_main_option('sqlalchemy.url', url)
    return cfg


def head_revision(script_location=None) -> str:
    return ScriptDirectory.from_config(alembic_config(script_location=script_location)).get_current_head()


def current_revision(engine: Engine) -> Optional[str]:
    with engine.connect() as conn:
        return MigrationContext.configure(conn).get_current_revision()


def upgrade_schema(engine: Engine, revision: str = 'head', script_location=None) -> List[str]:
    """
    Upgrade the database to `revision`. Every revision runs in its own
    transaction, so a failure keeps the revisions applied before it.
    :return: revisions applied by this call, oldest first
    """
    cfg = alembic_config(engine, script_location)
    start = current_revision(engine)
    with engine.connect() as conn:
        cfg.attributes['connection'] = conn
        command.upgrade(cfg, revision)
        conn.commit()
    end = current_revision(engine)
    if end == start:
        return []
    script = ScriptDirectory.from_config(cfg)
    applied = [s.revision for s in script.iterate_revisions(end, start or 'base')]
    applied.reverse()
    logger.info("Schema upgraded to %s (%d revisions)", end, len(applied))
    return applied
