#!/usr/bin/env python3
"""
Traffic Agent - per-port traffic accounting for a multi-user shadowsocks host

One run makes sure every tenant port has an iptables accounting rule, reads
the byte counters, turns them into per-run differences and appends them to
MySQL. Meant to be started by cron, it exits when the run is done.
"""
import os
import socket
import sys
import time

import click
import psutil
from sqlalchemy.exc import SQLAlchemyError

import agent_log as log
import tenant_directory
from agent_config import DEFAULT_CONFIG, ConfigError, load_config
from counter_store import CounterStore
from iptables_driver import IptablesDriver
from port_pipeline import RECORDED, PortPipeline
from tenant_directory import TenantDirectoryError
from traffic_db import TrafficDatabase


class SetupError(Exception):
    pass


def get_local_ip_address():
    """First non-loopback IPv4 address of this host, empty string if none"""
    for addrs in psutil.net_if_addrs().values():
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith("127."):
                continue
            return addr.address
    return ""


def make_tempdir(tempdir):
    """Create the directory the last-reading files go into"""
    directory = os.path.dirname(tempdir) if not tempdir.endswith(os.sep) else tempdir
    if not directory:
        return
    try:
        os.makedirs(directory, mode=0o755, exist_ok=True)
    except OSError as e:
        raise SetupError(f"create directory {directory} failed: {e}")


class TrafficAgent:
    def __init__(self, config):
        self.config = config
        self.database = None
        self.log_handlers = []

    def setup(self):
        """Everything that has to work before any port is touched"""
        try:
            os.chdir(self.config.workingdir)
        except OSError as e:
            raise SetupError(f"change working directory to {self.config.workingdir} failed: {e}")

        try:
            self.log_handlers = log.setup_logging(self.config.log)
        except OSError as e:
            raise SetupError(f"open log file {self.config.log} failed: {e}")
        log.trace("$PATH: %s", os.environ.get('PATH', ''))
        log.trace("config: %s", self.config.describe())

        make_tempdir(self.config.tempdir)

        try:
            self.database = TrafficDatabase.open(self.config.db.sqlalchemy_url())
        except (SQLAlchemyError, ValueError, ImportError) as e:
            raise SetupError(f"connect database {self.config.db.dsn()} failed: {e}")

    def close(self):
        if self.database is not None:
            self.database.close()
            self.database = None
        log.close_logging(self.log_handlers)
        self.log_handlers = []

    def run(self):
        start = time.time()
        self.setup()

        ports = tenant_directory.load(self.config.ssconfig)
        log.trace("port list: %s", ports)
        log.trace("local ip address: %s", get_local_ip_address())

        driver = IptablesDriver(self.config.iptables, self.config.iptables_save)
        pipeline = PortPipeline(driver, CounterStore(self.config.tempdir), self.database,
                                workers=self.config.workers,
                                baseline_zero=self.config.baseline_zero)
        records = pipeline.run(ports)

        driver.save()

        recorded = sum(1 for record in records if record.state == RECORDED)
        log.trace("recorded %s of %s ports", recorded, len(records))
        log.trace("all done in %.3fs", time.time() - start)
        return records


def run(config):
    """One full accounting run, fatal setup problems raise"""
    agent = TrafficAgent(config)
    try:
        return agent.run()
    except (SetupError, TenantDirectoryError) as e:
        if agent.log_handlers:
            log.error("%s", e)
        raise
    finally:
        agent.close()


@click.command()
@click.argument('config_path', default=DEFAULT_CONFIG, required=False)
@click.option('--baseline-zero', is_flag=True,
              help='Record nothing on the first reading of a port')
@click.option('-w', '--workers', type=click.IntRange(min=1), default=None,
              help='Worker threads for the port tasks')
def main(config_path, baseline_zero, workers):
    """Traffic Agent - collect per-port traffic from iptables into MySQL"""
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Config load for {config_path} failed: {e}", err=True)
        sys.exit(1)

    if baseline_zero:
        config.baseline_zero = True
    if workers is not None:
        config.workers = workers

    try:
        run(config)
    except (SetupError, TenantDirectoryError) as e:
        click.echo(f"Traffic agent failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
