import json
import os
from dataclasses import asdict, dataclass, fields
from typing import Callable, Optional

from macrorec.native import normalize_key_token

CONFIG_ENV = "MACROREC_CONFIG"
DEFAULT_STOP_KEY = "f8"


def default_config_path() -> str:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return env
    return os.path.join(os.path.expanduser("~"), ".macrorec", "config.json")


@dataclass
class Settings:
    stop_key: str = DEFAULT_STOP_KEY
    move_sample_hz: int = 60
    loop_count: int = 1
    loop_infinite: bool = False
    last_dir: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            field_ = known.get(key)
            if field_ is None:
                continue
            default = field_.default
            try:
                if isinstance(default, bool):
                    values[key] = bool(value)
                elif isinstance(default, int):
                    values[key] = int(value)
                else:
                    values[key] = str(value)
            except (TypeError, ValueError):
                continue
        settings = cls(**values)
        settings.move_sample_hz = max(0, settings.move_sample_hz)
        settings.loop_count = max(1, settings.loop_count)
        settings.stop_key = normalize_key_token(settings.stop_key)
        return settings

    def to_dict(self) -> dict:
        return asdict(self)


def load_settings(path: Optional[str] = None, log_callback: Optional[Callable[[str], None]] = None) -> Settings:
    path = path or default_config_path()
    if not os.path.exists(path):
        return Settings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        if log_callback:
            log_callback(f"Ignoring config {path}: {exc}")
        return Settings()
    if not isinstance(data, dict):
        if log_callback:
            log_callback(f"Ignoring config {path}: expected an object")
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Optional[str] = None) -> str:
    path = path or default_config_path()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=4)
    return path
