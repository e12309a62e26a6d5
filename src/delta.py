#!/usr/bin/env python3
"""
Delta computer - cumulative counter to per-run traffic difference
"""
import agent_log as log


def compute(port, current, store, baseline_zero=False):
    """
    Traffic since the last run for port, given the current cumulative counter.

    A zero counter means the rules were flushed (or just created): nothing is
    read or written and the delta is 0. Otherwise the current counter is
    persisted before the delta is returned. With no usable previous reading the
    whole counter is the delta, unless baseline_zero is set. A previous reading
    above the current one is a reset and the current counter is the delta.
    """
    if current == 0:
        log.trace("traffic counter on port %s is 0, skipping", port)
        return 0

    previous = store.read(port)
    store.write(port, current)

    if not previous:
        log.trace("no previous traffic reading on port %s", port)
        return 0 if baseline_zero else current

    log.trace("last traffic on port %s: %s", port, previous)
    if previous > current:
        log.error("current accumulated traffic %s is less than last traffic %s on port %s",
                  current, previous, port)
        return current

    return current - previous
