#!/usr/bin/env python3
"""
Tenant directory reader - the shadowsocks multi-user config, one port per tenant
"""
import json
import re

import agent_log as log

MIN_PORT = 1024
MAX_PORT = 49151

PORT_KEY = re.compile(r"[+-]?[0-9]+")


class TenantDirectoryError(Exception):
    pass


def is_registered_port(port):
    """Ports in (1024, 49151] are the only ones expected here"""
    return MIN_PORT < port <= MAX_PORT


def parse_ports(port_password):
    """Collect the integer keys of a port_password mapping"""
    ports = set()
    for key in port_password:
        if not PORT_KEY.fullmatch(key):
            log.error("parse port number %r failed: not a decimal integer", key)
            continue
        port = int(key, 10)
        if port in ports:
            log.error("duplicate port %s (key %r) skipped", port, key)
            continue
        if not is_registered_port(port):
            log.error("port %s is outside the registered range", port)
        ports.add(port)
    return sorted(ports)


def load(path):
    """Read the tenant directory at path and return its ports"""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except OSError as e:
        raise TenantDirectoryError(f"open {path} failed: {e}")
    except json.JSONDecodeError as e:
        raise TenantDirectoryError(f"unmarshal shadowsocks config {path} failed: {e}")

    port_password = data.get('port_password') if isinstance(data, dict) else None
    if not isinstance(port_password, dict):
        raise TenantDirectoryError(f"{path} has no port_password object")

    return parse_ports(port_password)
