from __future__ import annotations

from configparser import ConfigParser
from pathlib import Path


class AppConfig:
    def __init__(self, path: str | Path | None = None) -> None:
        parser = ConfigParser()
        if path is not None:
            parser.read(path)
        else:
            package_root = Path(__file__).resolve().parent.parent
            parser.read(package_root / "config.ini")
            if not parser.sections():
                parser.read(Path("config.ini"))
        self._parser = parser

    def engine_settings(self) -> dict[str, object]:
        return {
            "history_size": self._get_int("engine", "history_size", 1000),
            "action_timeout_seconds": self._get_float("engine", "action_timeout_seconds", 30.0),
            "load_builtin_flows": self._get_bool("engine", "load_builtin_flows", True),
            "definition_files": self._get_csv("engine", "definition_files", []),
        }

    def scheduler_settings(self) -> dict[str, object]:
        return {
            "enabled": self._get_bool("scheduler", "enabled", True),
            "poll_interval_seconds": self._get_float("scheduler", "poll_interval_seconds", 30.0),
        }

    def check_settings(self) -> dict[str, object]:
        return {
            "enabled": self._get_bool("checks", "enabled", True),
            "follow_up_interval_seconds": self._get_float("checks", "follow_up_interval_seconds", 3600.0),
            "milestone_interval_seconds": self._get_float("checks", "milestone_interval_seconds", 21600.0),
        }

    def store_settings(self) -> dict[str, object]:
        return {
            "db_path": self._get_str("store", "db_path", "data/flows.db"),
            "persist_executions": self._get_bool("store", "persist_executions", True),
        }

    def logging_settings(self) -> dict[str, object]:
        return {
            "level": self._get_str("logging", "level", "INFO").upper(),
            "serialize": self._get_bool("logging", "serialize", False),
        }

    def webhook_settings(self) -> dict[str, object]:
        return {
            "allow_domains": self._get_csv("webhooks", "allow_domains", []),
            "timeout_seconds": self._get_float("webhooks", "timeout_seconds", 10.0),
        }

    def template_globals(self) -> dict[str, str]:
        if not self._parser.has_section("template_globals"):
            return {}
        return dict(self._parser.items("template_globals"))

    def _get_str(self, section: str, key: str, fallback: str) -> str:
        return self._parser.get(section, key, fallback=fallback)

    def _get_int(self, section: str, key: str, fallback: int) -> int:
        return self._parser.getint(section, key, fallback=fallback)

    def _get_float(self, section: str, key: str, fallback: float) -> float:
        return self._parser.getfloat(section, key, fallback=fallback)

    def _get_bool(self, section: str, key: str, fallback: bool) -> bool:
        return self._parser.getboolean(section, key, fallback=fallback)

    def _get_csv(self, section: str, key: str, fallback: list[str]) -> list[str]:
        value = self._parser.get(section, key, fallback="")
        if not value:
            return list(fallback)
        return [part.strip() for part in value.split(",") if part.strip()]


app_config = AppConfig()
