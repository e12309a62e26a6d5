#!/usr/bin/env python3
"""
Port pipeline - collects and records traffic for every port in parallel

Per port, a rule-and-collect task and a table task run side by side on the
worker pool; a joiner waits for both and records the delta only when both
succeeded. Each port owns one PortRecord, written by its own tasks and read
after the join, so nothing here needs a lock.
"""
import traceback
from concurrent.futures import ThreadPoolExecutor, wait

import agent_log as log
import delta as delta_computer

INIT = "init"
RECORDED = "recorded"
SKIPPED = "skipped"


class PortRecord:
    def __init__(self, port):
        self.port = port
        self.collected = True
        self.table_ready = True
        self.current = None
        self.delta = 0
        self.state = INIT

    def __repr__(self):
        return (f"PortRecord(port={self.port}, state={self.state}, collected={self.collected}, "
                f"table_ready={self.table_ready}, delta={self.delta})")


class PortPipeline:
    def __init__(self, driver, store, database, workers=None, baseline_zero=False):
        self.driver = driver
        self.store = store
        self.database = database
        self.workers = workers
        self.baseline_zero = baseline_zero

    def collect(self, record):
        """Rule and counter for one port, fills in record.delta"""
        try:
            if not self.driver.ensure_rule(record.port):
                record.collected = False
                return
            record.current = self.driver.read_counter(record.port)
            record.delta = delta_computer.compute(record.port, record.current, self.store,
                                                  self.baseline_zero)
        except Exception as e:
            log.error("collect traffic on port %s failed: %s", record.port, e)
            record.collected = False

    def create_table(self, record):
        try:
            if not self.database.ensure_table(record.port):
                record.table_ready = False
        except Exception as e:
            log.error("create table for port %s failed: %s\n%s", record.port, e, traceback.format_exc())
            record.table_ready = False

    def join_and_record(self, record, collect_future, table_future):
        """Wait for both halves of a port, then write its delta"""
        wait([collect_future, table_future])
        if not (record.collected and record.table_ready):
            log.error("port %s: adding rule and collecting data: %s, creating table: %s",
                      record.port, record.collected, record.table_ready)
            record.state = SKIPPED
            return

        try:
            recorded = self.database.record(record.port, record.delta)
        except Exception as e:
            log.error("record traffic on port %s failed: %s\n%s", record.port, e, traceback.format_exc())
            recorded = False
        record.state = RECORDED if recorded else SKIPPED

    def run(self, ports):
        """Process every port, returns only once all of them are done"""
        records = [PortRecord(port) for port in ports]
        worker_count = self.workers or max(1, 2 * len(records))

        with ThreadPoolExecutor(max_workers=worker_count) as workers, \
                ThreadPoolExecutor(max_workers=max(1, len(records))) as joiners:
            joins = []
            for record in records:
                collect_future = workers.submit(self.collect, record)
                table_future = workers.submit(self.create_table, record)
                joins.append(joiners.submit(self.join_and_record, record, collect_future, table_future))

            wait(joins)

        return records
