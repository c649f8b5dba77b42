"""
Child-side half of the grading sandbox. Never imported by the web process.

Runs in a fresh interpreter started as ``python -I -S -B sandbox_harness.py [payload.json]``.
Reads one JSON request (stdin or the file named on the command line)::

    {"nonce": "...", "source": "...", "function": "add", "timeoutMs": 2000,
     "args": [{"kind": "literal", "value": 1}, {"kind": "callback", "source": "lambda: 5"}]}

and writes exactly one reply line to the original stdout, prefixed with the nonce::

    <nonce>{"ok": true, "value": 3}
    <nonce>{"ok": false, "error": "division by zero"}

Student output (print, stderr) is swallowed. Before the submission runs:

* a real-time interval timer with the default SIGALRM action is armed, so the
  kernel ends the process at ``timeoutMs`` however late the interpreter started;
* capability modules (process creation, sockets, ctypes, signals, ...) and their
  C-level twins are poisoned in ``sys.modules`` and refused by the audit hook's
  ``import`` event, whoever asks for them;
* code that is not part of the standard library may only import modules from
  ``_ALLOWED_MODULES``;
* an audit hook rejects file access outside the standard library, sockets and
  process creation.

This is a second line of defence. The Docker backend is the isolation boundary.
"""

import builtins
import io
import json
import os
import sys

MODULE_NAME = "submission"

# what submission code may import
_ALLOWED_MODULES = frozenset({
    "__future__", "abc", "array", "base64", "binascii", "bisect", "calendar", "cmath",
    "collections", "contextlib", "copy", "dataclasses", "datetime", "decimal", "difflib",
    "enum", "fractions", "functools", "graphlib", "hashlib", "heapq", "io", "itertools",
    "json", "keyword", "math", "numbers", "operator", "pprint", "random", "re", "reprlib",
    "statistics", "string", "struct", "textwrap", "time", "typing", "unicodedata", "zlib",
    # imported lazily from C on the submission's behalf
    "_strptime", "warnings", "encodings",
})

# never loaded by anyone once the harness is locked down
_DENIED_MODULES = frozenset({
    "subprocess", "_posixsubprocess", "multiprocessing", "_multiprocessing", "_posixshmem",
    "socket", "_socket", "ssl", "_ssl", "select", "selectors", "asyncio", "_asyncio",
    "ctypes", "_ctypes", "mmap", "fcntl", "pty", "termios", "resource", "signal", "_signal",
    "sqlite3", "_sqlite3", "dbm", "_dbm", "_gdbm", "readline", "_curses", "_tkinter",
    "_interpreters", "_xxsubinterpreters", "_interpchannels", "_xxinterpchannels", "_interpqueues",
    "_testcapi", "_testinternalcapi", "_testbuffer", "_testmultiphase", "_ctypes_test",
})

_BLOCKED_EVENT_PREFIXES = (
    "socket.", "subprocess.", "ctypes.", "shutil.", "gc.", "webbrowser.",
    "os.system", "os.exec", "os.spawn", "os.posix_spawn", "os.fork", "os.forkpty",
    "os.kill", "os.killpg", "os.remove", "os.rename", "os.rmdir", "os.mkdir",
    "os.chmod", "os.chown", "os.chdir", "os.truncate", "os.link", "os.symlink",
    "os.putenv", "os.unsetenv", "os.startfile",
    "urllib.", "ftplib.", "smtplib.", "poplib.", "imaplib.", "telnetlib.",
)

_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_CREAT | os.O_TRUNC


def _top_level(name):
    return name.split(".")[0] if type(name) is str else ""


def _make_audit_hook(stdlib_root, realpath, fsdecode):
    prefix = stdlib_root + os.sep

    def inside_stdlib(path):
        # exact str/bytes only: subclasses could run submission code inside the hook
        if type(path) is bytes:
            path = fsdecode(path)
        if type(path) is not str:
            return False
        full = realpath(path)
        return full == stdlib_root or full.startswith(prefix)

    def hook(event, args):
        if event == "import":
            if _top_level(args[0]) in _DENIED_MODULES:
                raise ImportError(f"Module '{args[0]}' is not available in the grading sandbox")
        elif event == "open":
            path = args[0]
            mode = args[1] if len(args) > 1 else None
            flags = args[2] if len(args) > 2 else 0
            if type(mode) is str:
                writing = any(c in mode for c in "wax+")
            elif mode is None:
                writing = type(flags) is int and bool(flags & _WRITE_FLAGS)
            else:
                writing = True
            if writing or not inside_stdlib(path):
                raise PermissionError(f"File access is not allowed in the grading sandbox: {path!r}")
        elif event in ("os.listdir", "os.scandir"):
            if not inside_stdlib(args[0]):
                raise PermissionError("Directory listing is not allowed in the grading sandbox")
        elif event.startswith(_BLOCKED_EVENT_PREFIXES):
            raise PermissionError(f"Operation '{event}' is not allowed in the grading sandbox")

    return hook


def _make_import_guard(real_import, getframe, stdlib_dirs):
    prefixes = tuple(d + os.sep for d in stdlib_dirs)

    def trusted_caller():
        # the importing code's own file decides, not the globals it passes in
        frame = getframe(2)
        filename = frame.f_code.co_filename if frame is not None else ""
        return type(filename) is str and (filename.startswith("<frozen ") or filename.startswith(prefixes))

    def guarded_import(name, globals=None, locals=None, fromlist=(), level=0):
        if not trusted_caller():
            if level != 0 or _top_level(name) not in _ALLOWED_MODULES:
                raise ImportError(f"Module '{name}' is not available in the grading sandbox")
        return real_import(name, globals, locals, fromlist, level)

    return guarded_import


def _arm_deadline(timeout_ms):
    import signal

    if timeout_ms and hasattr(signal, "setitimer"):
        signal.signal(signal.SIGALRM, signal.SIG_DFL)
        signal.setitimer(signal.ITIMER_REAL, max(float(timeout_ms), 1.0) / 1000)


def _lock_down():
    for name in _DENIED_MODULES:
        sys.modules[name] = None

    stdlib_dir = os.path.dirname(os.__file__)
    stdlib_root = os.path.realpath(stdlib_dir)
    builtins.__import__ = _make_import_guard(builtins.__import__, sys._getframe, {stdlib_dir, stdlib_root})
    sys.addaudithook(_make_audit_hook(stdlib_root, os.path.realpath, os.fsdecode))


def _error_message(exc):
    return str(exc) or type(exc).__name__ or "Execution error"


def _exports(namespace):
    names = namespace.get("__all__")
    if isinstance(names, (list, tuple)):
        return {n: namespace[n] for n in names if isinstance(n, str) and n in namespace}
    return {k: v for k, v in namespace.items() if not k.startswith("_")}


def _resolve(namespace, function_name):
    exports = _exports(namespace)
    fn = exports.get(function_name)
    if callable(fn):
        return fn
    callables = [v for v in exports.values() if callable(v) and not isinstance(v, type)]
    if len(callables) == 1 and getattr(callables[0], "__name__", None) == function_name:
        return callables[0]
    return None


def _build_args(raw_args, namespace):
    args = []
    for item in raw_args:
        if item.get("kind") == "callback":
            try:
                value = eval(compile(item["source"], "<callback>", "eval"), namespace)
            except Exception:
                return None, "Invalid function expression"
            if not callable(value):
                return None, "Invalid function expression"
            args.append(value)
        else:
            args.append(item.get("value"))
    return args, None


def _reject_unserializable(value):
    raise TypeError(f"Return value is not JSON-serializable: {type(value).__name__}")


def run_request(request, dumps, loads):
    namespace = {"__name__": MODULE_NAME, "__builtins__": builtins}
    try:
        exec(compile(request["source"], "<submission>", "exec"), namespace)
    except BaseException as e:
        return {"ok": False, "error": _error_message(e)}

    function_name = request["function"]
    fn = _resolve(namespace, function_name)
    if fn is None:
        return {"ok": False, "error": f"Function '{function_name}' not found or not exported"}

    args, err = _build_args(request.get("args") or [], namespace)
    if err:
        return {"ok": False, "error": err}

    try:
        value = fn(*args)
    except BaseException as e:
        return {"ok": False, "error": _error_message(e)}

    try:
        encoded = dumps(value, default=_reject_unserializable)
    except (TypeError, ValueError, RecursionError) as e:
        return {"ok": False, "error": _error_message(e)}
    return {"ok": True, "value": loads(encoded)}


def main():
    if len(sys.argv) > 1:
        with open(sys.argv[1], encoding="utf-8") as f:
            request = json.load(f)
    else:
        request = json.loads(sys.stdin.read())

    nonce = request.pop("nonce")
    dumps, loads = json.dumps, json.loads
    reply_stream = sys.stdout
    sys.stdin = io.StringIO()
    sys.stdout = sys.__stdout__ = io.StringIO()
    sys.stderr = sys.__stderr__ = io.StringIO()

    _arm_deadline(request.get("timeoutMs"))
    _lock_down()

    reply = run_request(request, dumps, loads)
    reply_stream.write(nonce + dumps(reply) + "\n")
    reply_stream.flush()


if __name__ == "__main__":
    main()
