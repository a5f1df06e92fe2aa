# appointment_service/extensions.py

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event

db = SQLAlchemy()
migrate = Migrate()


def lock_sqlite_on_begin(engine) -> bool:
    """
    Makes every transaction on a file SQLite engine start with BEGIN IMMEDIATE,
    so the conflict read of a create already holds the write lock and a second
    writer waits until the first one commits.
    In-memory databases share a single connection and are left alone.
    """
    if engine.dialect.name != "sqlite" or not engine.url.database or engine.url.database == ":memory:":
        return False

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        # pysqlite would otherwise emit its own deferred BEGIN before the first write
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return True
