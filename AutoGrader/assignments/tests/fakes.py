from assignments.sandbox import ExecutionOutcome


class FakeExecutor:
    """Scripted stand-in for a sandbox backend.

    ``script`` is either a list of outcomes/exceptions consumed in call order,
    or a callable ``(function_name, args) -> outcome``.
    """

    def __init__(self, script):
        self.script = script
        self.calls = []

    def execute(self, source, function_name, args, timeout_ms=None):
        self.calls.append((source, function_name, list(args), timeout_ms))
        if callable(self.script):
            item = self.script(function_name, list(args))
        else:
            item = self.script[len(self.calls) - 1]
        if isinstance(item, Exception):
            raise item
        return item


def ok(value):
    return ExecutionOutcome.success(value)


def fail(message):
    return ExecutionOutcome.failure(message)
