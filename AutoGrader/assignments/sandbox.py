# assignments/sandbox.py
"""
Sandboxed execution of one student function call.

Every call gets a brand-new interpreter (a throwaway Docker container, or a
child process) running ``sandbox_harness.py``; nothing is cached or reused
between test cases or students. The wall-clock deadline travels in the
request and is armed inside the child as a real-time interval timer, so the
kernel ends the run on time however long the container took to start. The
parent keeps an outer timeout as a backstop and kills the whole process group
(or the container) when it fires.

Backends
--------
docker      harness inside a container with ``network_mode="none"``, a
            read-only root filesystem, an init process and memory/CPU/pid
            caps (default; the isolation boundary)
subprocess  local ``python -I -S -B`` child in its own session with an empty
            environment, a temp working directory and POSIX resource limits;
            relies on the in-process guards only, meant for development
"""

from __future__ import annotations

import json
import logging
import math
import os
import signal
import subprocess
import sys
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import docker
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .catalog import CallbackSource

logger = logging.getLogger(__name__)

HARNESS_PATH = Path(__file__).resolve().with_name("sandbox_harness.py")
DEFAULT_TIMEOUT_MS = 2000
DEFAULT_BACKEND = "docker"
# tini/docker-init exits with 128 + signal number
DEADLINE_EXIT_CODE = 128 + signal.SIGALRM


@dataclass(frozen=True)
class ExecutionOutcome:
    ok: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Any) -> "ExecutionOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, message: str) -> "ExecutionOutcome":
        return cls(ok=False, error=message or "Execution error")


class SandboxExecutor(Protocol):
    def execute(
        self,
        source: str,
        function_name: str,
        args: Sequence[Any],
        timeout_ms: Optional[int] = None,
    ) -> ExecutionOutcome:
        ...


# -----------------------
# Wire format shared by both backends
# -----------------------
def encode_args(args: Sequence[Any]) -> List[Dict[str, Any]]:
    out = []
    for a in args:
        if isinstance(a, CallbackSource):
            out.append({"kind": "callback", "source": a.source})
        else:
            out.append({"kind": "literal", "value": a})
    return out


def build_request(source: str, function_name: str, args: Sequence[Any], nonce: str, timeout_ms: int) -> str:
    return json.dumps({
        "nonce": nonce,
        "source": source,
        "function": function_name,
        "timeoutMs": timeout_ms,
        "args": encode_args(args),
    })


def parse_reply(stdout: str, nonce: str) -> Optional[ExecutionOutcome]:
    for line in reversed((stdout or "").splitlines()):
        if not line.startswith(nonce):
            continue
        try:
            reply = json.loads(line[len(nonce):])
        except json.JSONDecodeError:
            return ExecutionOutcome.failure("Sandbox error: malformed reply")
        if reply.get("ok"):
            return ExecutionOutcome.success(reply.get("value"))
        return ExecutionOutcome.failure(str(reply.get("error") or "Execution error"))
    return None


def _timeout_message(timeout_ms: int) -> str:
    return f"Execution timed out after {timeout_ms}ms"


def _tail(text: Optional[str], limit: int = 300) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else "..." + text[-limit:]


# -----------------------
# Local subprocess backend
# -----------------------
def _kill_group(proc: subprocess.Popen) -> None:
    """SIGKILL everything in the child's session, grandchildren included."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass
    if proc.poll() is None:
        proc.kill()


class SubprocessSandbox:
    def __init__(
        self,
        python: Optional[str] = None,
        memory_mb: Optional[int] = None,
        default_timeout_ms: Optional[int] = None,
    ) -> None:
        self._python = python or sys.executable
        self._memory_mb = memory_mb or int(getattr(settings, "GRADER_SANDBOX_MEMORY_MB", 256))
        self._default_timeout_ms = default_timeout_ms or int(
            getattr(settings, "GRADER_SANDBOX_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
        )

    def command(self) -> List[str]:
        return [self._python, "-I", "-S", "-B", "-X", "utf8", str(HARNESS_PATH)]

    def _limits(self, timeout_ms: int):
        if not sys.platform.startswith(("linux", "darwin")):
            return None
        memory_bytes = self._memory_mb * 1024 * 1024
        cpu_seconds = max(1, math.ceil(timeout_ms / 1000)) + 1

        def apply() -> None:
            import resource
            resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
            resource.setrlimit(resource.RLIMIT_CORE, (0, 0))
            resource.setrlimit(resource.RLIMIT_FSIZE, (0, 0))
            try:
                # no new processes for this uid; not enforced for root
                resource.setrlimit(resource.RLIMIT_NPROC, (0, 0))
                resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
            except (ValueError, OSError):
                pass  # not enforceable on macOS

        return apply

    def execute(
        self,
        source: str,
        function_name: str,
        args: Sequence[Any],
        timeout_ms: Optional[int] = None,
    ) -> ExecutionOutcome:
        timeout_ms = int(timeout_ms or self._default_timeout_ms)
        nonce = uuid.uuid4().hex
        request = build_request(source, function_name, args, nonce, timeout_ms)
        started = time.monotonic()

        with tempfile.TemporaryDirectory(prefix="sandbox_") as workdir:
            try:
                proc = subprocess.Popen(
                    self.command(),
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    cwd=workdir,
                    env={},
                    preexec_fn=self._limits(timeout_ms),
                    start_new_session=True,
                )
            except OSError as e:
                logger.error("sandbox: could not start interpreter %s: %s", self._python, e)
                return ExecutionOutcome.failure(f"Sandbox error: {e}")

            try:
                stdout, stderr = proc.communicate(request, timeout=timeout_ms / 1000)
            except subprocess.TimeoutExpired:
                _kill_group(proc)
                proc.communicate()
                logger.warning("sandbox: %s timed out after %sms", function_name, timeout_ms)
                return ExecutionOutcome.failure(_timeout_message(timeout_ms))
            finally:
                _kill_group(proc)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        outcome = parse_reply(stdout, nonce)
        if outcome is not None:
            logger.debug("sandbox: %s finished in %sms ok=%s", function_name, elapsed_ms, outcome.ok)
            return outcome

        rc = proc.returncode
        if rc == -signal.SIGALRM:
            logger.warning("sandbox: %s hit its %sms deadline", function_name, timeout_ms)
            return ExecutionOutcome.failure(_timeout_message(timeout_ms))
        logger.warning("sandbox: %s produced no reply (rc=%s) stderr=%s", function_name, rc, _tail(stderr))
        if rc is not None and rc < 0:
            return ExecutionOutcome.failure(f"Execution killed by signal {-rc} (resource limit exceeded)")
        return ExecutionOutcome.failure(f"Sandbox error: interpreter exited with code {rc}")


# -----------------------
# Docker backend
# -----------------------
class DockerSandbox:
    def __init__(
        self,
        image: Optional[str] = None,
        memory_mb: Optional[int] = None,
        default_timeout_ms: Optional[int] = None,
        startup_grace_s: float = 5.0,
        client=None,
    ) -> None:
        self._image = image or getattr(settings, "GRADER_DOCKER_IMAGE", "python:3.12-slim")
        self._memory_mb = memory_mb or int(getattr(settings, "GRADER_SANDBOX_MEMORY_MB", 256))
        self._default_timeout_ms = default_timeout_ms or int(
            getattr(settings, "GRADER_SANDBOX_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)
        )
        # backstop only; the deadline itself is armed inside the container
        self._startup_grace_s = startup_grace_s
        self._client = client

    def _get_client(self):
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def execute(
        self,
        source: str,
        function_name: str,
        args: Sequence[Any],
        timeout_ms: Optional[int] = None,
    ) -> ExecutionOutcome:
        timeout_ms = int(timeout_ms or self._default_timeout_ms)
        nonce = uuid.uuid4().hex

        with tempfile.TemporaryDirectory(prefix="sandbox_") as workdir:
            (Path(workdir) / "harness.py").write_text(HARNESS_PATH.read_text(encoding="utf-8"), encoding="utf-8")
            (Path(workdir) / "request.json").write_text(
                build_request(source, function_name, args, nonce, timeout_ms), encoding="utf-8"
            )
            try:
                container = self._get_client().containers.run(
                    self._image,
                    ["python", "-I", "-S", "-B", "-X", "utf8", "/work/harness.py", "/work/request.json"],
                    detach=True,
                    init=True,  # PID 1 ignores a default-action SIGALRM
                    working_dir="/tmp",
                    network_mode="none",
                    mem_limit=f"{self._memory_mb}m",
                    nano_cpus=1_000_000_000,
                    pids_limit=32,
                    read_only=True,
                    cap_drop=["ALL"],
                    security_opt=["no-new-privileges"],
                    volumes={workdir: {"bind": "/work", "mode": "ro"}},
                )
            except Exception as e:
                logger.error("sandbox: docker create failed for %s: %s", function_name, e)
                return ExecutionOutcome.failure(f"Sandbox error: {e}")

            try:
                finished = _poll_wait_or_kill(container, timeout_ms / 1000 + self._startup_grace_s)
                exit_code = container.attrs.get("State", {}).get("ExitCode")
                try:
                    out = container.logs(stdout=True, stderr=False).decode("utf-8", "replace")
                except Exception:
                    out = ""
            finally:
                try:
                    container.remove(force=True)
                except Exception as e:
                    logger.warning("sandbox: could not remove container %s: %s", getattr(container, "id", "?"), e)

        if not finished or exit_code == DEADLINE_EXIT_CODE:
            logger.warning("sandbox: %s timed out after %sms (docker)", function_name, timeout_ms)
            return ExecutionOutcome.failure(_timeout_message(timeout_ms))
        outcome = parse_reply(out, nonce)
        if outcome is None:
            return ExecutionOutcome.failure("Sandbox error: container produced no reply")
        return outcome


def _poll_wait_or_kill(container, timeout_s: float, interval_s: float = 0.05) -> bool:
    """True when the container exited on its own within ``timeout_s``."""
    start = time.monotonic()
    try:
        while True:
            container.reload()
            status = container.attrs.get("State", {}).get("Status")
            if status in ("exited", "dead"):
                return True
            if time.monotonic() - start > timeout_s:
                container.kill()
                return False
            time.sleep(interval_s)
    except Exception as e:
        logger.warning("sandbox: polling container failed: %s", e)
        try:
            container.kill()
        except Exception:
            pass
        return False


def get_sandbox(backend: Optional[str] = None) -> SandboxExecutor:
    name = (backend or getattr(settings, "GRADER_SANDBOX_BACKEND", DEFAULT_BACKEND)).strip().lower()
    if name == "docker":
        return DockerSandbox()
    if name == "subprocess":
        return SubprocessSandbox()
    raise ImproperlyConfigured(f"Unknown GRADER_SANDBOX_BACKEND '{name}' (use 'docker' or 'subprocess')")
