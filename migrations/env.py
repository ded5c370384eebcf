import logging
import os
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from flask import current_app

config = context.config
logger = logging.getLogger("alembic.env")

_ini = Path(config.config_file_name) if config.config_file_name else Path(__file__).parent / "alembic.ini"
if _ini.exists():
    fileConfig(str(_ini))
else:
    logging.basicConfig(level=logging.INFO)

# create_app() already imported sitestock.models, so metadata is complete here
_db = current_app.extensions["migrate"].db
_engine = _db.engine
config.set_main_option("sqlalchemy.url", _engine.url.render_as_string(hide_password=False).replace("%", "%%"))
target_metadata = _db.metadatas[None] if hasattr(_db, "metadatas") else _db.metadata

# expression indexes (lower(email)) reflect poorly; never drop one unless it is named here
_DROPPABLE_INDEXES = set(filter(None, (n.strip() for n in os.getenv("ALEMBIC_DROP_INDEX_ALLOWLIST", "").split(","))))


def include_object(obj, name, type_, reflected, compare_to):
    if type_ == "index" and reflected and compare_to is None:
        return name in _DROPPABLE_INDEXES
    return True


def _skip_empty_autogenerate(context_, revision, directives):
    if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []
        logger.info("No schema changes; revision not written.")


_COMPARE = dict(
    target_metadata=target_metadata,
    compare_type=True,
    compare_server_default=True,
    include_object=include_object,
)

if context.is_offline_mode():
    context.configure(url=config.get_main_option("sqlalchemy.url"), literal_binds=True, **_COMPARE)
    with context.begin_transaction():
        context.run_migrations()
else:
    extra = dict(current_app.extensions["migrate"].configure_args)
    extra.setdefault("process_revision_directives", _skip_empty_autogenerate)
    extra.update(_COMPARE)
    with _engine.connect() as connection:
        context.configure(connection=connection, **extra)
        with context.begin_transaction():
            context.run_migrations()
