#!/usr/bin/env python3
"""
Agent configuration - the JSON file passed on the command line
"""
import json

from sqlalchemy.engine import URL, make_url

DEFAULT_CONFIG = "config.json"

MYSQL_DRIVER = "mysql+pymysql"


class ConfigError(Exception):
    pass


class DBConfig:
    def __init__(self, host, protocol, user, password, dbname, url=None):
        self.host = host
        self.protocol = protocol
        self.user = user
        self.password = password
        self.dbname = dbname
        self.url = url

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigError(f"'Db' must be an object, got {type(data).__name__}")
        url = data.get('Url')
        if url is not None:
            return cls(data.get('Host', ''), data.get('Protocol', ''), data.get('User', ''),
                       data.get('Password', ''), data.get('Dbname', ''), url=url)
        try:
            return cls(str(data['Host']), str(data['Protocol']), str(data['User']),
                       str(data['Password']), str(data['Dbname']))
        except KeyError as e:
            raise ConfigError(f"missing database setting {e}")

    def dsn(self):
        """DSN in user:password@protocol(host)/dbname form, password masked"""
        return f"{self.user}:***@{self.protocol}({self.host})/{self.dbname}"

    def sqlalchemy_url(self):
        """SQLAlchemy URL for the database, Url wins over the DSN parts"""
        if self.url:
            return make_url(self.url)
        if self.protocol == 'unix':
            return URL.create(MYSQL_DRIVER, username=self.user, password=self.password,
                              database=self.dbname, query={'unix_socket': self.host})

        host, _, port = self.host.partition(':')
        return URL.create(MYSQL_DRIVER, username=self.user, password=self.password,
                          host=host, port=int(port) if port else None, database=self.dbname)


class Config:
    REQUIRED = ('Workingdir', 'Ssconfig', 'Log', 'Tempdir')

    def __init__(self, workingdir, ssconfig, log, tempdir, db,
                 iptables="iptables", iptables_save="iptables-save",
                 workers=None, baseline_zero=False):
        self.workingdir = workingdir
        self.ssconfig = ssconfig
        self.log = log
        self.tempdir = tempdir
        self.db = db
        self.iptables = iptables
        self.iptables_save = iptables_save
        self.workers = workers
        self.baseline_zero = baseline_zero

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ConfigError("config must be a JSON object")
        for key in cls.REQUIRED:
            if not isinstance(data.get(key), str):
                raise ConfigError(f"'{key}' must be a string")
        if 'Db' not in data:
            raise ConfigError("missing 'Db' section")

        baseline_zero = data.get('BaselineZero', False)
        if not isinstance(baseline_zero, bool):
            raise ConfigError(f"'BaselineZero' must be true or false, got {baseline_zero!r}")

        workers = data.get('Workers')
        if workers is not None and (not isinstance(workers, int) or isinstance(workers, bool) or workers < 1):
            raise ConfigError(f"'Workers' must be a positive integer, got {workers!r}")

        return cls(
            workingdir=data['Workingdir'],
            ssconfig=data['Ssconfig'],
            log=data['Log'],
            tempdir=data['Tempdir'],
            db=DBConfig.from_dict(data['Db']),
            iptables=data.get('Iptables', "iptables"),
            iptables_save=data.get('IptablesSave', "iptables-save"),
            workers=workers,
            baseline_zero=baseline_zero,
        )

    def describe(self):
        """Printable summary, no secrets"""
        return (f"Workingdir={self.workingdir} Ssconfig={self.ssconfig} Log={self.log} "
                f"Tempdir={self.tempdir} Db={self.db.dsn()} Workers={self.workers} "
                f"BaselineZero={self.baseline_zero}")


def load_config(path=DEFAULT_CONFIG):
    """Read and validate the agent config file"""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"read config file {path} failed: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"unmarshal config file {path} failed: {e}")

    return Config.from_dict(data)
