#!/usr/bin/env python3
"""
Traffic database - one time-series table per port, one row per run with traffic
"""
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

import agent_log as log
from tenant_directory import is_registered_port

CREATE_TABLE = """CREATE TABLE IF NOT EXISTS {table} (
    traffic_diff BIGINT NOT NULL DEFAULT 0,
    collect_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (collect_time)
)"""
MYSQL_TABLE_OPTIONS = " ENGINE=InnoDB DEFAULT CHARSET=utf8"

INSERT_TRAFFIC = "INSERT INTO {table} (traffic_diff) VALUES (:traffic_diff)"


def table_name(port):
    return f"port_{int(port)}"


class TrafficDatabase:
    def __init__(self, engine):
        self.engine = engine

    @classmethod
    def open(cls, url, **engine_options):
        """Create the engine for url and make sure the server answers"""
        engine = create_engine(url, pool_pre_ping=True, **engine_options)
        database = cls(engine)
        try:
            database.ping()
        except SQLAlchemyError:
            engine.dispose()
            raise
        return database

    def ping(self):
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def close(self):
        self.engine.dispose()

    def create_table_sql(self, port):
        sql = CREATE_TABLE.format(table=table_name(port))
        if self.engine.dialect.name == 'mysql':
            sql += MYSQL_TABLE_OPTIONS
        return sql

    def ensure_table(self, port):
        """Create port_<port> if it does not exist yet"""
        if not is_registered_port(port):
            log.error("port %s is invalid", port)
        table = table_name(port)
        log.trace("start creating table %s", table)
        try:
            with self.engine.begin() as conn:
                conn.execute(text(self.create_table_sql(port)))
        except SQLAlchemyError as e:
            log.error("execute create table %s failed: %s", table, e)
            return False

        log.trace("created table %s", table)
        return True

    def record(self, port, delta):
        """Append delta to port_<port>, a zero delta has nothing to write and succeeds"""
        table = table_name(port)
        if delta == 0:
            log.trace("no traffic on port %s, nothing to record", port)
            return True

        log.trace("start recording traffic %s on port %s", delta, port)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(text(INSERT_TRAFFIC.format(table=table)),
                                      {"traffic_diff": delta})
        except SQLAlchemyError as e:
            log.error("execute insert into %s failed: %s", table, e)
            return False

        if result.rowcount != 1:
            log.error("insert into %s affected %s rows", table, result.rowcount)
            return False

        log.trace("inserted traffic %s in %s", delta, table)
        return True
