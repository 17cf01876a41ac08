#!/usr/bin/env python
"""
Management entry point for the disputes backend.

Loads backend/.env before Django reads settings, so `manage.py
sweep_dispute_deadlines` and `celery -A core worker` see the same config.
"""

import os
import sys
import logging
from pathlib import Path

from dotenv import load_dotenv, find_dotenv

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent  # -> .../backend

explicit_env = BASE_DIR / ".env"
loaded = False
if explicit_env.exists():
    load_dotenv(dotenv_path=explicit_env, override=True)
    loaded = True
else:
    discovered = find_dotenv(filename=".env", usecwd=True)
    if discovered:
        load_dotenv(discovered, override=True)
        loaded = True


def _maybe_log_env_status():
    debug = os.environ.get("DEBUG", "False").lower() in ("1", "true", "t", "yes", "y")
    if not loaded and debug:
        logger.warning("No .env file found at %s; using process environment only", explicit_env)


def main():
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings")
    _maybe_log_env_status()

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        logger.error("Django import failed: %s", exc)
        raise

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
