import os
import time
import logging
from typing import Dict, Tuple

import requests
from sqlalchemy import text

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("HealthMonitor")


BACKEND_API_URL = os.getenv("BACKEND_API_URL", "http://backend-api:8000")
CHECK_INTERVAL = int(os.getenv("HEALTH_CHECK_INTERVAL", "60"))


def check_http_service(name: str, url: str, timeout: float = 5.0) -> Tuple[bool, str]:
    try:
        resp = requests.get(url, timeout=timeout)
        if resp.ok:
            return True, f"{name}: OK ({resp.status_code})"
        return False, f"{name}: FAIL ({resp.status_code})"
    except requests.RequestException as e:
        return False, f"{name}: ERROR ({e})"


def check_backend_api() -> Tuple[bool, str]:
    return check_http_service("backend-api /health", f"{BACKEND_API_URL}/health")


def check_catalog() -> Tuple[bool, str]:
    return check_http_service("backend-api /products", f"{BACKEND_API_URL}/products")


def check_database() -> Tuple[bool, str]:
    from database import engine

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True, f"database ({engine.dialect.name}): OK"
    except Exception as e:
        return False, f"database: ERROR ({e})"


def monitor_all_services(checks=None) -> Dict[str, bool]:
    checks = checks or {
        "backend_api": check_backend_api,
        "catalog": check_catalog,
        "database": check_database,
    }

    results: Dict[str, bool] = {}
    logger.info("=" * 60)
    logger.info("Health check results:")

    for name, func in checks.items():
        ok, message = func()
        results[name] = ok
        if ok:
            logger.info(f"[OK ] {message}")
        else:
            logger.warning(f"[FAIL] {message}")

    logger.info("=" * 60)
    return results


if __name__ == "__main__":
    logger.info("Health Monitor Service Started")
    logger.info(f"Checking services every {CHECK_INTERVAL} seconds...")

    while True:
        try:
            monitor_all_services()
        except Exception as e:
            logger.error(f"Error during monitoring: {e}")
        time.sleep(CHECK_INTERVAL)
