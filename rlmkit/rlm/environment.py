"""
RLM Evaluator

This is where the model's code runs. One call to `Evaluator.evaluate`:

- starts from a copy of the bindings (input, question, rlm_call, and
  whatever earlier snippets created)
- runs the snippet and returns the value of its last expression
- captures everything printed to stdout/stderr
- turns any exception into an ExecutionError value

There is no sandbox. The code runs with the full privileges of this
process (files, network, subprocesses).
"""

import ast
import io
import sys
import threading
import traceback
from dataclasses import dataclass
from typing import Any, Dict, List, NamedTuple, Optional, TextIO, Tuple


@dataclass(frozen=True)
class ExecutionError:
    """Returned as the value of a snippet that raised."""
    message: str

    def __str__(self) -> str:
        return self.message


class EvalResult(NamedTuple):
    value: Any
    output: str
    bindings: Dict[str, Any]


class _RoutedStream(io.TextIOBase):
    """Writes to the innermost capture of the current thread, else to the fallback."""

    def __init__(self, router: "_StreamRouter", index: int, fallback: TextIO):
        self._router = router
        self._index = index
        self._fallback = fallback

    def _target(self) -> TextIO:
        stack = self._router.stack()
        if stack:
            return stack[-1].buffers[self._index]
        return self._fallback

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        return self._target().write(text)

    def flush(self) -> None:
        self._target().flush()


class _StreamRouter:
    """
    Owns sys.stdout/sys.stderr while at least one capture is open.

    The first capture saves the real streams and installs routing proxies;
    the last capture to close puts the saved streams back. Captures can
    therefore close in any order across threads (nested rlm_call() runs,
    sibling sub-runs) without leaving a stale buffer installed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._local = threading.local()
        self._open = 0
        self._saved: Optional[Tuple[TextIO, TextIO]] = None

    def stack(self) -> List["OutputCapture"]:
        if not hasattr(self._local, "stack"):
            self._local.stack = []
        return self._local.stack

    def acquire(self, capture: "OutputCapture") -> None:
        with self._lock:
            if self._open == 0:
                self._saved = (sys.stdout, sys.stderr)
                sys.stdout = _RoutedStream(self, 0, self._saved[0])
                sys.stderr = _RoutedStream(self, 1, self._saved[1])
            self._open += 1
        self.stack().append(capture)

    def release(self, capture: "OutputCapture") -> None:
        stack = self.stack()
        if capture in stack:
            stack.remove(capture)
        with self._lock:
            self._open -= 1
            if self._open == 0:
                sys.stdout, sys.stderr = self._saved
                self._saved = None


_router = _StreamRouter()


class OutputCapture:
    """
    Scoped capture of stdout and stderr for the current thread.

        with OutputCapture() as capture:
            print("hi")
        capture.getvalue()  # "hi\\n"

    The original streams are restored when the block exits, however it exits.
    """

    def __init__(self):
        self.buffers = (io.StringIO(), io.StringIO())

    def __enter__(self) -> "OutputCapture":
        _router.acquire(self)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _router.release(self)
        return False

    def getvalue(self) -> str:
        """stdout text followed by stderr text."""
        return self.buffers[0].getvalue() + self.buffers[1].getvalue()


class Evaluator:
    """
    Runs code snippets against a binding environment.

    Example:
        evaluator = Evaluator()
        value, output, bindings = evaluator.evaluate({"x": 2}, "print(x)\\nx * 21")
        # value == 42, output == "2\\n", bindings == {"x": 2}
    """

    def __init__(self, filename: str = "<rlm>"):
        self.filename = filename

    def evaluate(self, bindings: Dict[str, Any], code: str) -> EvalResult:
        """
        Run `code` with `bindings` as its variables.

        Never raises for errors in the snippet: the value becomes an
        ExecutionError and the returned bindings are the ones passed in.
        """
        namespace = dict(bindings)
        capture = OutputCapture()

        try:
            with capture:
                value = self._run(code, namespace)
        except (Exception, SystemExit) as e:
            message = "".join(traceback.format_exception_only(type(e), e)).strip()
            return EvalResult(ExecutionError(message), capture.getvalue(), bindings)

        namespace.pop("__builtins__", None)
        return EvalResult(value, capture.getvalue(), namespace)

    def _run(self, code: str, namespace: Dict[str, Any]) -> Any:
        tree = ast.parse(code, filename=self.filename, mode="exec")

        # A trailing expression is evaluated separately so its value is returned
        last_expr = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last_expr = ast.Expression(tree.body.pop().value)

        exec(compile(tree, self.filename, "exec"), namespace)

        if last_expr is None:
            return None
        return eval(compile(last_expr, self.filename, "eval"), namespace)
