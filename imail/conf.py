"""Configuration values computed from the environment and the running process."""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass, field
from functools import lru_cache

WORK_DIR_ENV = "IMAIL_WORK_DIR"
CUSTOM_DIR_ENV = "IMAIL_CUSTOM"


@dataclass
class DatabaseOptions:
    """Settings of the ``[database]`` section."""

    type: str = ""
    host: str = ""
    name: str = ""
    user: str = ""
    password: str = ""
    ssl_mode: str = ""
    path: str = ""
    prefix: str = ""
    charset: str = ""
    timezone: str = ""
    max_open_conns: int = 0
    max_idle_conns: int = 0


@dataclass
class I18nConf:
    """Settings of the ``[i18n]`` section."""

    langs: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)
    date_langs: dict[str, str] = field(default_factory=dict)

    def date_lang(self, lang: str) -> str:
        """Return the datetime plugin's name for a locale, ``"en"`` when unknown."""
        return self.date_langs.get(lang, "en")


def is_windows_runtime() -> bool:
    """Return True when running on Windows."""
    return sys.platform == "win32"


def is_prod_mode(run_mode: str) -> bool:
    """Return True when the run mode is ``prod``, in any letter case."""
    return run_mode.casefold() == "prod"


def _is_executable(path: str) -> bool:
    if not os.path.isfile(path):
        return False
    return is_windows_runtime() or os.access(path, os.X_OK)


def _look_path(name: str) -> str:
    separators = [os.sep] + ([os.altsep] if os.altsep else [])
    if any(sep in name for sep in separators):
        if _is_executable(name):
            return name
        raise FileNotFoundError(f"executable file not found: {name!r}")
    found = shutil.which(name)
    if found is None:
        raise FileNotFoundError(f"executable file not found in $PATH: {name!r}")
    return found


@lru_cache(maxsize=None)
def app_path() -> str:
    """Return the absolute path of the running program."""
    name = sys.argv[0] if sys.argv else ""
    try:
        path = _look_path(name)
    except FileNotFoundError as exc:
        raise RuntimeError(f"look executable path: {exc}") from exc
    return os.path.abspath(path)


@lru_cache(maxsize=None)
def work_dir() -> str:
    """Return the work directory: ``$IMAIL_WORK_DIR`` or the program's directory."""
    configured = os.environ.get(WORK_DIR_ENV, "")
    if configured:
        return configured
    return os.path.dirname(app_path())


@lru_cache(maxsize=None)
def custom_dir() -> str:
    """Return the directory of local overrides: ``$IMAIL_CUSTOM`` or ``<work dir>/custom``."""
    configured = os.environ.get(CUSTOM_DIR_ENV, "")
    if configured:
        return configured
    return os.path.join(work_dir(), "custom")


@lru_cache(maxsize=None)
def home_dir() -> str:
    """Return the home directory from the environment; may be empty."""
    for variable in ("HOME", "USERPROFILE"):
        value = os.environ.get(variable, "")
        if value:
            return value
    return os.environ.get("HOMEDRIVE", "") + os.environ.get("HOMEPATH", "")


def current_username() -> str:
    """Return the name of the user running the program, or ``""`` if unknown."""
    for variable in ("USER", "USERNAME"):
        value = os.environ.get(variable, "")
        if value:
            return value
    try:
        import pwd

        return pwd.getpwuid(os.getuid()).pw_name
    except (ImportError, KeyError, AttributeError):
        return ""


def ensure_abs(path: str) -> str:
    """Return ``path`` unchanged if absolute, otherwise joined onto the work directory."""
    if os.path.isabs(path):
        return path
    return os.path.join(work_dir(), path)


def check_run_user(run_user: str) -> tuple[str, bool]:
    """Return the actual user and whether it matches ``run_user``.

    The check always passes on Windows, with an empty user name.
    """
    if is_windows_runtime():
        return "", True
    current = current_username()
    return current, run_user == current