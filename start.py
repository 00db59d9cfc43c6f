#!/usr/bin/env python3
# CUI // SP-PROPIN
"""OppDesk startup script.

Prepares a working instance before handing off to the Flask API:
  1. Frees the API port if a stale process still holds it
  2. Creates or migrates the SQLite schema
  3. Reports catalog size and SAM.gov key status, then starts Flask

Usage:
  python start.py                   # prepare + start Flask
  python start.py --port 5002       # override port
  python start.py --validate-only   # prepare without starting Flask
"""

import argparse
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

from oppdesk.core.config import db_path, load_config, sam_api_key
from oppdesk.db.init_db import init_db
from oppdesk.testing.health_check import check_health

BASE_DIR = Path(__file__).resolve().parent

GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
BOLD = "\033[1m"
RESET = "\033[0m"


def _ok(msg):   print(f"{GREEN}  ok{RESET} {msg}")
def _warn(msg): print(f"{YELLOW}  !!{RESET} {msg}")
def _err(msg):  print(f"{RED}  xx{RESET} {msg}")


def pids_on_port(port: int) -> list:
    """PIDs listening on ``port`` (Unix lsof; empty list when unavailable)."""
    try:
        out = subprocess.check_output(
            ["lsof", "-ti", f"tcp:{port}"], text=True, stderr=subprocess.DEVNULL
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return []
    return sorted({int(p) for p in out.split() if p.isdigit()})


def free_port(port: int) -> bool:
    for pid in pids_on_port(port):
        _warn(f"Port {port} held by PID {pid}, terminating")
        try:
            os.kill(pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            _err(f"Could not stop PID {pid}: {e}")
            return False
    for _ in range(6):
        if not pids_on_port(port):
            return True
        time.sleep(0.5)
    return False


def run(args):
    print(f"\n{BOLD}OppDesk startup{RESET}  (port {args.port})\n")

    print(f"{BOLD}[1/3] Port check{RESET}")
    if pids_on_port(args.port):
        if args.no_kill:
            _err(f"Port {args.port} in use (--no-kill given)")
            return 1
        if not free_port(args.port):
            _err(f"Port {args.port} still in use")
            return 1
    _ok(f"Port {args.port} is free")

    print(f"\n{BOLD}[2/3] Database{RESET}")
    result = init_db(str(db_path()))
    _ok(f"{result['db_path']} ({result['tables']} tables)")
    health = check_health()
    catalog = health["checks"].get("catalog", {})
    if catalog.get("status") == "ok":
        _ok(f"Catalog: {catalog['active_nsns']} active NSNs")
    else:
        _warn("Catalog is empty; import NSNs with python -m oppdesk.catalog.nsn_catalog")
    config = load_config()
    _ok(f"Config: scoring threshold {config['scoring']['high_relevance_threshold']}")
    if not sam_api_key():
        _warn("SAM_GOV_API_KEY not set; sync and live detail are disabled")

    if args.validate_only:
        print(f"\n{BOLD}Validation complete.{RESET}\n")
        return 0

    print(f"\n{BOLD}[3/3] Starting Flask{RESET}")
    proc = subprocess.Popen(
        [sys.executable, "-m", "oppdesk.dashboard.app", "--port", str(args.port)],
        cwd=str(BASE_DIR),
    )
    try:
        proc.wait()
    except KeyboardInterrupt:
        proc.terminate()
        proc.wait(timeout=5)
        _ok("Stopped")
    return 0


def main():
    parser = argparse.ArgumentParser(description="OppDesk startup")
    parser.add_argument("--port", type=int, default=int(os.environ.get("FLASK_PORT", 5001)))
    parser.add_argument("--validate-only", action="store_true",
                        help="Prepare the database and exit without starting Flask")
    parser.add_argument("--no-kill", action="store_true",
                        help="Don't stop existing processes on the port")
    args = parser.parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
