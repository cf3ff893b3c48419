"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator, TypedDict

import pytest

from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"
TEST_TOKEN = "integration-secret"


def _launch_server(
    host: str,
    port: int,
    workdir: Path,
    extra_args: list[str] | None = None,
    log_file: Path | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--workdir",
        str(workdir),
        "--host",
        host,
        "--port",
        str(port),
        "--token",
        TEST_TOKEN,
        "--shutdown-grace-seconds",
        "3",
    ]
    if log_file:
        args.extend(["--log-destination", str(log_file)])
    if extra_args:
        args.extend(extra_args)

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            # Surface startup output when the agent never came up
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nAgent stdout:\n{stdout}")
            print(f"\nAgent stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "ws_url": f"ws://{host}:{port}/ws/terminal",
            "host": host,
            "port": port,
            "workdir": workdir,
            "token": TEST_TOKEN,
            "process": process,
            "log_file": log_file,
        }

        if process.poll() is None:
            process.terminate()
            try:
                process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                process.kill()


class ServerProcessInfo(TypedDict):
    """Metadata describing a running agent fixture instance."""

    base_url: str
    ws_url: str
    host: str
    port: int
    workdir: Path
    token: str
    process: subprocess.Popen[str]
    log_file: Path | None


def _new_workdir(tmp_path_factory: "TempPathFactory", name: str) -> tuple[Path, Path]:
    base = tmp_path_factory.mktemp(name)
    workdir = base / "workspace"
    workdir.mkdir()
    return workdir, base / "agent.log"


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the agent in a background process for integration tests."""

    host = "127.0.0.1"
    port = reserve_port(host)
    workdir, log_file = _new_workdir(tmp_path_factory, "agent")
    yield from _launch_server(host, port, workdir, log_file=log_file)


@pytest.fixture(name="limited_server_process")
def _limited_server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the agent with strict connection limits."""

    host = "127.0.0.1"
    port = reserve_port(host)
    workdir, log_file = _new_workdir(tmp_path_factory, "agent-limited")
    limit_args = [
        "--max-connections",
        "1",
        "--max-connections-per-ip",
        "1",
        "--max-body-bytes",
        "1024",
    ]
    yield from _launch_server(host, port, workdir, limit_args, log_file=log_file)


@pytest.fixture(name="protected_server_process")
def _protected_server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the agent with the file API behind bearer authorization."""

    host = "127.0.0.1"
    port = reserve_port(host)
    workdir, log_file = _new_workdir(tmp_path_factory, "agent-protected")
    yield from _launch_server(
        host, port, workdir, ["--protect-files"], log_file=log_file
    )


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    """Expose the running agent base URL to integration tests."""

    return server_process["base_url"]


@pytest.fixture()
def auth_header() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
