"""Common fixtures: a fake iptables, a SQLite traffic database and a counter store."""
import subprocess

import pytest
from sqlalchemy import create_engine, text

import iptables_driver
from counter_store import CounterStore
from traffic_db import TrafficDatabase, table_name

MISSING_RULE = "iptables: Bad rule (does a matching rule exist in that chain?).\n"

LISTING_HEADER = """Chain INPUT (policy ACCEPT 0 packets, 0 bytes)
    pkts      bytes target     prot opt in     out     source               destination

Chain FORWARD (policy ACCEPT 0 packets, 0 bytes)
    pkts      bytes target     prot opt in     out     source               destination

Chain OUTPUT (policy ACCEPT 0 packets, 0 bytes)
    pkts      bytes target     prot opt in     out     source               destination
"""


class FakeIptables:
    """Stands in for subprocess.run, keeps OUTPUT accounting rules and their byte counters."""

    def __init__(self):
        self.rules = []
        self.counters = {}
        self.calls = []
        self.appends = []
        self.saves = 0
        self.fail_append = set()
        self.fail_list = False
        self.fail_save = False

    def listing(self):
        lines = [LISTING_HEADER.rstrip("\n")]
        for port in self.rules:
            byts = self.counters.get(port, 0)
            lines.append(f"{byts // 100:>8} {byts:>10}            tcp  --  *      *       "
                         f"0.0.0.0/0            0.0.0.0/0            tcp spt:{port}")
        return "\n".join(lines) + "\n"

    def run(self, args, stdout=None, stderr=None, text=None):
        self.calls.append(list(args))
        binary, rest = args[0], list(args[1:])
        if binary.endswith("iptables-save"):
            self.saves += 1
            if self.fail_save:
                return subprocess.CompletedProcess(args, 1, stdout="iptables-save: lock held\n")
            return subprocess.CompletedProcess(args, 0, stdout="*filter\nCOMMIT\n")

        verb = rest[0]
        if verb == "-vnL":
            if self.fail_list:
                return subprocess.CompletedProcess(args, 4, stdout="iptables: permission denied\n")
            return subprocess.CompletedProcess(args, 0, stdout=self.listing())

        port = int(rest[rest.index("--sport") + 1])
        if verb == "-C":
            if port in self.rules:
                return subprocess.CompletedProcess(args, 0, stdout="")
            return subprocess.CompletedProcess(args, 1, stdout=MISSING_RULE)
        if verb == "-A":
            if port in self.fail_append:
                return subprocess.CompletedProcess(args, 1, stdout="iptables: out of memory\n")
            self.appends.append(port)
            self.rules.append(port)
            return subprocess.CompletedProcess(args, 0, stdout="")
        raise AssertionError(f"unexpected iptables call {args}")


@pytest.fixture
def fake_iptables(monkeypatch):
    fake = FakeIptables()
    monkeypatch.setattr(iptables_driver.subprocess, "run", fake.run)
    return fake


@pytest.fixture
def driver(fake_iptables):
    return iptables_driver.IptablesDriver()


@pytest.fixture
def store(tmp_path):
    return CounterStore(f"{tmp_path}/last_")


@pytest.fixture
def database(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'traffic.db'}",
                           connect_args={"check_same_thread": False, "timeout": 30})
    db = TrafficDatabase(engine)
    yield db
    db.close()


def read_rows(database, port):
    with database.engine.connect() as conn:
        result = conn.execute(text(f"SELECT traffic_diff FROM {table_name(port)}"))
        return [row[0] for row in result]


@pytest.fixture
def table_rows():
    """traffic_diff values stored for a port"""
    return read_rows
