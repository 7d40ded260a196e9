"""
Unified environment loader
Reads the project .env file once and exposes typed getters for settings modules
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


class EnvLoader:
    """Loads .env once; real environment variables always win over the file"""

    def __init__(self, env_file=None):
        self.env_file = Path(env_file) if env_file else BASE_DIR / '.env'
        self.loaded = False

    def load(self):
        if not self.loaded:
            if self.env_file.exists():
                load_dotenv(self.env_file, override=False)
            self.loaded = True
        return self

    def get(self, key, default=None):
        self.load()
        value = os.environ.get(key)
        if value is None or value == '':
            return default
        return value


env_loader = EnvLoader()


def get_env(key, default=None):
    return env_loader.get(key, default)


def get_bool_env(key, default=False):
    value = env_loader.get(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def get_int_env(key, default=0):
    value = env_loader.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def get_list_env(key, default=None, separator=','):
    """Comma separated variable to list, blanks dropped"""
    value = env_loader.get(key)
    if value is None:
        return list(default) if default is not None else []
    return [item.strip() for item in value.split(separator) if item.strip()]
