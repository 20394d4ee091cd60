"""
Maintenance gate for storefront processes.

A storefront asks `MaintenanceGate.is_blocked(path)` once per page load. Admin
pages always pass. Everything else is blocked while the API reports
maintenance mode, and also when the API cannot be reached and no earlier
answer is cached.
"""
import json
import logging
import os
from typing import Optional

import requests

logger = logging.getLogger(__name__)

ADMIN_PREFIX = "/admin"


def is_admin_path(path: str) -> bool:
    return path == ADMIN_PREFIX or path.startswith(ADMIN_PREFIX + "/")


def should_block(path: str, maintenance_mode: bool) -> bool:
    return bool(maintenance_mode) and not is_admin_path(path)


class MaintenanceGate:
    def __init__(self, api_base: str, cache_path: str, timeout: float = 5.0):
        self.api_base = api_base.rstrip("/")
        self.cache_path = cache_path
        self.timeout = timeout

    def _read_cache(self) -> Optional[bool]:
        if not os.path.exists(self.cache_path):
            return None
        try:
            with open(self.cache_path) as f:
                return bool(json.load(f)["maintenanceMode"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Unreadable maintenance cache %s: %s", self.cache_path, e)
            return None

    def _write_cache(self, maintenance_mode: bool) -> None:
        try:
            with open(self.cache_path, "w") as f:
                json.dump({"maintenanceMode": maintenance_mode}, f)
        except OSError as e:
            logger.warning("Could not cache maintenance flag: %s", e)

    def fetch_flag(self) -> bool:
        try:
            response = requests.get(f"{self.api_base}/settings/maintenance", timeout=self.timeout)
            response.raise_for_status()
            flag = bool(response.json()["maintenanceMode"])
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.warning("Maintenance check failed, using last known value: %s", e)
            cached = self._read_cache()
            return True if cached is None else cached
        self._write_cache(flag)
        return flag

    def is_blocked(self, path: str) -> bool:
        if is_admin_path(path):
            return False
        return self.fetch_flag()
