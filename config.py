import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml

ALIGN_MODES = ("position", "name")

DEFAULTS: Dict[str, Any] = {
    "data_dir": "uploads",
    "master_filename": "masterdatabase.csv",
    "bulk_results_filename": "bulk_results.csv",
    "upload_align": "position",
    "log_level": "INFO",
}

ENV_OVERRIDES = {
    "SHELF_SCANNER_DATA_DIR": "data_dir",
    "SHELF_SCANNER_UPLOAD_ALIGN": "upload_align",
    "SHELF_SCANNER_LOG_LEVEL": "log_level",
}


@dataclass
class Settings:
    data_dir: str
    master_path: str
    bulk_results_path: str
    upload_align: str = "position"
    log_level: str = "INFO"


def _read_yaml(path: str) -> Dict[str, Any]:
    if not os.path.isfile(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return raw


def load_settings(path: str | None = None) -> Settings:
    if path is None:
        path = os.path.join(os.path.dirname(__file__), "settings.yml")
    values = dict(DEFAULTS)
    values.update({k: v for k, v in _read_yaml(path).items() if v is not None})
    for env_key, key in ENV_OVERRIDES.items():
        if os.getenv(env_key):
            values[key] = os.environ[env_key]

    align = str(values["upload_align"]).strip().lower()
    if align not in ALIGN_MODES:
        raise ValueError(f"upload_align must be one of {ALIGN_MODES}, got {align!r}")

    data_dir = os.path.abspath(str(values["data_dir"]))
    master_path = os.getenv("SHELF_SCANNER_MASTER_CSV") or os.path.join(
        data_dir, str(values["master_filename"])
    )
    return Settings(
        data_dir=data_dir,
        master_path=os.path.abspath(master_path),
        bulk_results_path=os.path.join(data_dir, str(values["bulk_results_filename"])),
        upload_align=align,
        log_level=str(values["log_level"]).upper(),
    )


SETTINGS = load_settings()
