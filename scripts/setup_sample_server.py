"""Utility that launches a sample RethinkDB Docker container for rethinksession."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from rethinksession.config import CONFIG_FILE, load_config, save_config

DEFAULT_CONTAINER = "rethinksession-sample"
DEFAULT_PORT = 28015
DOCKER_IMAGE = "rethinkdb:2.4"


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(["docker", "run", "-d", "--name", name, "-p", f"{port}:28015", DOCKER_IMAGE])
    wait_for_start(name)


def wait_for_start(name: str, retries: int = 15, delay: float = 1.0) -> None:
    for _ in range(retries):
        result = subprocess.run(
            ["docker", "logs", name],
            text=True,
            capture_output=True,
        )
        if "Server ready" in result.stdout:
            return
        time.sleep(delay)
    print("Warning: server did not report ready state; continuing anyway.")


def update_config(port: int) -> bool:
    """Point the config file at the sample server; returns True when it changed."""

    config = load_config()
    url = f"rethinkdb://localhost:{port}"
    if config.url == url:
        print(f"Config already points at {url}; leaving as-is.")
        return False
    save_config(config.model_copy(update={"url": url}))
    print(f"Pointed {CONFIG_FILE} at {url}.")
    return True


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose RethinkDB on")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    update_config(args.port)
    print("Sample server is ready. Run `python -m rethinksession` to provision it.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
