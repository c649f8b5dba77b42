"""Sandbox tests. The subprocess ones start real child interpreters."""

import json
import signal
import subprocess
import textwrap
import time
from pathlib import Path
from unittest import mock

import pytest
from django.core.exceptions import ImproperlyConfigured

from assignments.catalog import CallbackSource
from assignments.sandbox import (
    DockerSandbox,
    SubprocessSandbox,
    encode_args,
    get_sandbox,
    parse_reply,
)


def src(code):
    return textwrap.dedent(code)


@pytest.fixture
def sandbox():
    return SubprocessSandbox(memory_mb=512, default_timeout_ms=5000)


class TestSubprocessSandbox:
    def test_returns_value(self, sandbox):
        out = sandbox.execute(src("def add(a, b):\n    return a + b\n"), "add", [1, 2])
        assert out.ok
        assert out.value == 3

    def test_tuple_becomes_list(self, sandbox):
        out = sandbox.execute("def pair():\n    return (1, 'a')\n", "pair", [])
        assert out.value == [1, "a"]

    def test_exception_message(self, sandbox):
        code = src("""
            def divide(a, b):
                if b == 0:
                    raise ValueError("Cannot divide by zero")
                return a / b
        """)
        out = sandbox.execute(code, "divide", [1, 0])
        assert not out.ok
        assert out.error == "Cannot divide by zero"

    def test_empty_exception_message_uses_type_name(self, sandbox):
        out = sandbox.execute("def f():\n    raise KeyError()\n", "f", [])
        assert out.error == "KeyError"

    def test_missing_export(self, sandbox):
        out = sandbox.execute("def add(a, b):\n    return a + b\n", "mul", [1, 2])
        assert out.error == "Function 'mul' not found or not exported"

    def test_private_names_are_not_exported(self, sandbox):
        out = sandbox.execute("def _helper():\n    return 1\n", "_helper", [])
        assert out.error == "Function '_helper' not found or not exported"

    def test_dunder_all_limits_exports(self, sandbox):
        code = src("""
            __all__ = ["add"]
            def add(a, b):
                return a + b
            def sub(a, b):
                return a - b
        """)
        assert sandbox.execute(code, "add", [2, 1]).value == 3
        assert not sandbox.execute(code, "sub", [2, 1]).ok

    def test_single_callable_fallback(self, sandbox):
        code = src("""
            def add(a, b):
                return a + b
            __all__ = ["plus"]
            plus = add
        """)
        out = sandbox.execute(code, "add", [2, 2])
        assert out.ok and out.value == 4

    def test_non_callable_export(self, sandbox):
        out = sandbox.execute("add = 3\n", "add", [])
        assert out.error == "Function 'add' not found or not exported"

    def test_callback_argument(self, sandbox):
        code = src("""
            def find_first(items, predicate):
                for item in items:
                    if predicate(item):
                        return item
                return None
        """)
        out = sandbox.execute(code, "find_first", [[1, 4, 9], CallbackSource("lambda x: x > 3")])
        assert out.value == 4

    def test_callback_sees_module_namespace(self, sandbox):
        code = src("""
            LIMIT = 10
            def call(fn):
                return fn()
        """)
        assert sandbox.execute(code, "call", [CallbackSource("lambda: LIMIT * 2")]).value == 20

    @pytest.mark.parametrize("expr", ["42", "lambda: (", "import os"])
    def test_invalid_callback(self, sandbox, expr):
        out = sandbox.execute("def call(fn):\n    return fn()\n", "call", [CallbackSource(expr)])
        assert out.error == "Invalid function expression"

    def test_print_output_is_discarded(self, sandbox):
        code = src("""
            print("loading")
            def noisy():
                print("{\\"ok\\": false}")
                return 7
        """)
        out = sandbox.execute(code, "noisy", [])
        assert out.ok and out.value == 7

    def test_unserializable_return(self, sandbox):
        out = sandbox.execute("def f():\n    return {1, 2}\n", "f", [])
        assert out.error == "Return value is not JSON-serializable: set"

    def test_syntax_error(self, sandbox):
        out = sandbox.execute("def broken(:\n    pass\n", "broken", [])
        assert not out.ok
        assert out.error

    def test_fresh_interpreter_per_call(self, sandbox):
        code = src("""
            calls = []
            def count():
                calls.append(1)
                return len(calls)
        """)
        assert sandbox.execute(code, "count", []).value == 1
        assert sandbox.execute(code, "count", []).value == 1

    def test_stdlib_imports_work(self, sandbox):
        code = src("""
            import math
            from collections import Counter
            from dataclasses import dataclass
            @dataclass
            class P:
                x: int
            def f():
                return [math.sqrt(16), Counter("aab")["a"], P(3).x]
        """)
        assert sandbox.execute(code, "f", []).value == [4.0, 2, 3]

    def test_timeout(self, sandbox):
        out = sandbox.execute("def spin():\n    while True:\n        pass\n", "spin", [], timeout_ms=300)
        assert not out.ok
        assert out.error == "Execution timed out after 300ms"

    def test_blocked_import(self, sandbox):
        out = sandbox.execute("import socket\ndef f():\n    return 1\n", "f", [])
        assert out.error == "Module 'socket' is not available in the grading sandbox"

    def test_file_access_is_rejected(self, sandbox):
        out = sandbox.execute("def f():\n    return open('/etc/hostname').read()\n", "f", [])
        assert not out.ok
        assert "File access is not allowed" in out.error

    def test_file_write_is_rejected(self, sandbox):
        out = sandbox.execute("def f():\n    open('x.txt', 'w').write('hi')\n    return 1\n", "f", [])
        assert "File access is not allowed" in out.error

    def test_process_spawning_is_rejected(self, sandbox):
        out = sandbox.execute("import random\ndef f():\n    return random._os.system('true')\n", "f", [])
        assert "os.system" in out.error

    def test_environment_is_empty(self, sandbox):
        out = sandbox.execute("import random\ndef f():\n    return dict(random._os.environ)\n", "f", [])
        assert out.ok
        assert "PATH" not in out.value

    @pytest.mark.parametrize("name", ["_posixsubprocess", "_socket", "posix", "os", "sys", "importlib"])
    def test_only_allowlisted_modules_import(self, sandbox, name):
        out = sandbox.execute(f"import {name}\ndef f():\n    return 1\n", "f", [])
        assert out.error == f"Module '{name}' is not available in the grading sandbox"

    def test_import_guard_ignores_forged_globals(self, sandbox):
        out = sandbox.execute("def f():\n    return str(__import__('ctypes', {}))\n", "f", [])
        assert out.error == "Module 'ctypes' is not available in the grading sandbox"

    @pytest.mark.parametrize("attempt", [
        "import _posixsubprocess",
        "__import__('_posixsubprocess', {{'__name__': 'json'}})",
        # unpoison and import from code that claims a standard-library file
        "random._os.sys.modules.pop('_posixsubprocess', None)\n"
        "    exec(compile('import _posixsubprocess', random.__file__, 'exec'), {{}})",
        "random._os.system('touch {marker}')",
        "random._os.posix_spawn('/bin/sh', ['/bin/sh', '-c', 'touch {marker}'], {{}})",
    ])
    def test_cannot_spawn_processes(self, sandbox, tmp_path, attempt):
        marker = tmp_path / "spawned"
        body = attempt.format(marker=marker)
        code = f"import random\ndef f():\n    {body}\n    return 'escaped'\n"

        out = sandbox.execute(code, "f", [])

        assert not out.ok
        assert not marker.exists()

    def test_deadline_is_enforced_inside_the_child(self):
        """The harness ends itself at timeoutMs even when nobody kills it from outside."""
        request = json.dumps({
            "nonce": "n", "source": "def spin():\n    while True:\n        pass\n",
            "function": "spin", "timeoutMs": 300, "args": [],
        })
        started = time.monotonic()
        completed = subprocess.run(
            SubprocessSandbox().command(), input=request, capture_output=True, text=True, timeout=30, env={},
        )
        assert completed.returncode == -signal.SIGALRM
        assert time.monotonic() - started < 5

    def test_timeout_kills_the_process_group(self, sandbox):
        proc = mock.MagicMock(pid=4242, returncode=-9)
        proc.communicate.side_effect = [subprocess.TimeoutExpired("python", 0.3), ("", "")]
        proc.poll.return_value = -9
        with mock.patch("assignments.sandbox.subprocess.Popen", return_value=proc) as popen, \
                mock.patch("assignments.sandbox.os.killpg") as killpg:
            out = sandbox.execute("def f(): pass", "f", [], timeout_ms=300)

        assert out.error == "Execution timed out after 300ms"
        assert popen.call_args[1]["start_new_session"] is True
        killpg.assert_any_call(4242, signal.SIGKILL)
        assert json.loads(popen.return_value.communicate.call_args_list[0][0][0])["timeoutMs"] == 300

    def test_missing_interpreter_is_a_sandbox_error(self):
        out = SubprocessSandbox(python="/nonexistent/python3").execute("def f():\n    return 1\n", "f", [])
        assert not out.ok
        assert out.error.startswith("Sandbox error:")


class TestWireFormat:
    def test_encode_args(self):
        assert encode_args([1, CallbackSource("lambda: 1")]) == [
            {"kind": "literal", "value": 1},
            {"kind": "callback", "source": "lambda: 1"},
        ]

    def test_parse_reply_ignores_other_lines(self):
        stdout = 'noise\nabc{"ok": true, "value": 5}\n'
        assert parse_reply(stdout, "abc").value == 5

    def test_parse_reply_missing(self):
        assert parse_reply("hello\n", "abc") is None

    def test_parse_reply_garbled(self):
        out = parse_reply("abc{not json\n", "abc")
        assert out.error == "Sandbox error: malformed reply"


class TestDockerSandbox:
    def _client(self, status="exited", logs=b"", exit_code=0):
        container = mock.MagicMock()
        container.attrs = {"State": {"Status": status, "ExitCode": exit_code}}
        container.logs.return_value = logs
        client = mock.MagicMock()
        client.containers.run.return_value = container
        return client, container

    def _capture_request(self, client):
        """Keep a copy of request.json before the work dir is cleaned up."""
        seen = {}

        def run(image, command, **kwargs):
            workdir = Path(list(kwargs["volumes"])[0])
            seen.update(json.loads((workdir / "request.json").read_text(encoding="utf-8")))
            return client.containers.run.return_value

        client.containers.run.side_effect = run
        return seen

    def test_runs_locked_down_container(self):
        client, container = self._client(logs=b'feed{"ok": true, "value": 3}\n')
        with mock.patch("assignments.sandbox.uuid.uuid4") as uuid4:
            uuid4.return_value.hex = "feed"
            out = DockerSandbox(image="python:3.12-slim", client=client).execute("def add(a, b): return a + b", "add", [1, 2])

        assert out.ok and out.value == 3
        _, kwargs = client.containers.run.call_args
        assert kwargs["network_mode"] == "none"
        assert kwargs["read_only"] is True
        assert kwargs["cap_drop"] == ["ALL"]
        assert list(kwargs["volumes"].values())[0]["mode"] == "ro"
        assert kwargs["init"] is True
        container.remove.assert_called_once_with(force=True)

    def test_deadline_travels_in_the_request(self):
        client, _ = self._client(logs=b"")
        seen = self._capture_request(client)
        DockerSandbox(client=client).execute("def f(): pass", "f", [], timeout_ms=750)
        assert seen["timeoutMs"] == 750
        assert seen["function"] == "f"

    def test_deadline_exit_is_a_timeout(self):
        """An exit from the in-container timer is reported without waiting out the grace period."""
        client, container = self._client(status="exited", exit_code=128 + signal.SIGALRM)
        sandbox = DockerSandbox(client=client, default_timeout_ms=300, startup_grace_s=60)
        started = time.monotonic()

        out = sandbox.execute("def spin():\n    while True:\n        pass\n", "spin", [])

        assert out.error == "Execution timed out after 300ms"
        assert time.monotonic() - started < 5
        container.kill.assert_not_called()
        container.remove.assert_called_once_with(force=True)

    def test_timeout_kills_container(self):
        client, container = self._client(status="running")
        sandbox = DockerSandbox(client=client, default_timeout_ms=10, startup_grace_s=0)
        out = sandbox.execute("def f(): pass", "f", [])
        assert out.error == "Execution timed out after 10ms"
        container.kill.assert_called()
        container.remove.assert_called_once_with(force=True)

    def test_docker_unavailable(self):
        client = mock.MagicMock()
        client.containers.run.side_effect = RuntimeError("daemon not running")
        out = DockerSandbox(client=client).execute("def f(): pass", "f", [])
        assert out.error == "Sandbox error: daemon not running"


def test_get_sandbox_defaults_to_docker(settings):
    del settings.GRADER_SANDBOX_BACKEND
    assert isinstance(get_sandbox(), DockerSandbox)


def test_get_sandbox(settings):
    settings.GRADER_SANDBOX_BACKEND = "subprocess"
    assert isinstance(get_sandbox(), SubprocessSandbox)
    assert isinstance(get_sandbox("docker"), DockerSandbox)
    settings.GRADER_SANDBOX_BACKEND = "lxc"
    with pytest.raises(ImproperlyConfigured):
        get_sandbox()
