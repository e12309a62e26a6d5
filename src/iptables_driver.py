#!/usr/bin/env python3
"""
iptables driver - per-port accounting rules in the OUTPUT chain and their byte counters
"""
import subprocess

import agent_log as log

CHAIN = "OUTPUT"
MAX_COUNTER = 2 ** 64 - 1


class CounterReadError(Exception):
    pass


def rule_spec(port):
    """Accounting rule for a source port: no target, counting only"""
    return [CHAIN, "-w", "-p", "tcp", "--sport", str(port)]


def parse_counter(listing, port):
    """
    Byte counter of the first rule in an `iptables -vnL -x` listing
    whose line ends with spt:<port>
    """
    suffix = f"spt:{port}"
    for line in listing.splitlines():
        if not line.rstrip().endswith(suffix):
            continue
        columns = line.split()
        if len(columns) < 2 or not columns[1].isdigit():
            raise CounterReadError(f"convert iptables traffic {line.strip()!r} on port {port} failed")
        value = int(columns[1])
        if value > MAX_COUNTER:
            raise CounterReadError(f"iptables traffic {value} on port {port} overflows 64 bits")
        return value

    raise CounterReadError(f"no accounting rule for spt:{port} in iptables listing")


class IptablesDriver:
    def __init__(self, iptables="iptables", iptables_save="iptables-save"):
        self.iptables = iptables
        self.iptables_save = iptables_save

    def run(self, args):
        """Run a command with stdout and stderr merged"""
        return subprocess.run(args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)

    def ensure_rule(self, port):
        """
        Make sure the accounting rule for port exists, appending it if the check fails.

        The rule counts as present only when `iptables -C` exits 0 and prints
        nothing; any output or a non-zero exit means it is missing.
        """
        log.trace("start adding rule on port %s", port)
        try:
            check = self.run([self.iptables, "-C"] + rule_spec(port))
        except OSError as e:
            log.error("check iptables rule on port %s failed: %s", port, e)
            return False

        if check.returncode == 0 and not check.stdout:
            log.trace("rule on port %s already exists", port)
            return True
        if check.returncode != 0:
            # iptables reports a missing rule this way too
            log.error("check iptables rule on port %s: %s, exit status %s",
                      port, check.stdout.strip(), check.returncode)

        try:
            add = self.run([self.iptables, "-A"] + rule_spec(port))
        except OSError as e:
            log.error("add iptables rule on port %s failed: %s", port, e)
            return False
        if add.returncode != 0:
            log.error("add iptables rule on port %s failed: %s, exit status %s",
                      port, add.stdout.strip(), add.returncode)
            return False

        log.trace("added an iptables rule on port %s", port)
        return True

    def read_counter(self, port):
        """Cumulative byte count of the accounting rule for port"""
        log.trace("start collecting traffic on port %s", port)
        try:
            listing = self.run([self.iptables, "-vnL", "-t", "filter", "-w", "-x"])
        except OSError as e:
            raise CounterReadError(f"list iptables rules failed: {e}")
        if listing.returncode != 0:
            raise CounterReadError(f"list iptables rules failed: {listing.stdout.strip()}, "
                                   f"exit status {listing.returncode}")

        value = parse_counter(listing.stdout, port)
        log.trace("accumulated traffic on port %s: %s", port, value)
        return value

    def save(self):
        """Run iptables-save, output is not interpreted"""
        try:
            result = self.run([self.iptables_save])
        except OSError as e:
            log.error("save iptables rules failed: %s", e)
            return False
        if result.returncode != 0:
            log.error("save iptables rules failed: exit status %s", result.returncode)
            return False
        return True
