"""
RLM Engine - The Main Loop

This is the heart of RLM. It runs this loop:

    1. Send the conversation to the code generator
    2. The model writes Python code
    3. Execute the code in the Evaluator (variables persist)
    4. Send a summary of the outcome back to the model
    5. Repeat until the code sets `final` or the budget runs out

The key insight: the input is NOT in the prompt. The model only sees its
length and a short preview, and reaches the rest through code. Generated
code can call rlm_call(sub_question, sub_input) to solve a piece of the
problem with a fresh, independent run of this same loop.
"""

import asyncio
import concurrent.futures
import logging
import re
import threading
from typing import Any, Dict, List, Optional, Union

from ..config import RunOptions
from ..llm import CodeGenerator, LLMRouter, Message
from ..recall import RecallStore
from .base import (
    Answer,
    BudgetExhausted,
    IterationRecord,
    PartialOutcome,
    RLMError,
    SubCallLog,
    SubCallTimeoutError,
)
from .environment import EvalResult, Evaluator
from .trajectory import TrajectoryLogger

logger = logging.getLogger(__name__)

RunResult = Union[Answer, BudgetExhausted]

# The answer may be assigned under any of these names
FINAL_NAMES = ("final", "Final", "FINAL")

TRANSIENT_PATTERNS = [
    re.compile(r"\bstatus\s+(429|500|502|503|504)\b", re.IGNORECASE),
    re.compile(r"\bhttp\s+(429|500|502|503|504)\b", re.IGNORECASE),
    re.compile(r"(timed?\s*out|timeout|etimedout)\b", re.IGNORECASE),
]

CODE_BLOCK = re.compile(r"```(?:python3?|py)?[ \t]*\n?(.*?)```", re.DOTALL)


# This prompt teaches the model how to use the REPL
SYSTEM_PROMPT = '''You are writing Python code for an evaluation loop.

## Rules
- Output only Python code in one ```python block, no prose.
- Do not define functions or classes (no def, class or lambda helpers).
- Variables in scope: `input` (the input text), `question` (the task),
  `rlm_call(sub_question, sub_input)` (solves a sub-problem with a fresh
  run and returns its answer) and the `re` module.
- Variables you create persist between steps.
- You only see the length and a short preview of what your code prints.
- To finish, assign final = <answer>.
{examples}
## Examples of valid patterns
    words = input.split()
    final = " ".join(words[:5])

    half = input[: len(input) // 2]
    final = rlm_call("Summarize this chunk", half)

Keep code concise and valid Python.'''


def extract_code(text: str) -> str:
    """Contents of the first fenced block, or the whole reply."""
    match = CODE_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def is_transient(error: BaseException) -> bool:
    """Rate limits, overloaded servers and timeouts are worth retrying."""
    message = str(error)
    return any(p.search(message) for p in TRANSIENT_PATTERNS)


def final_value(bindings: Dict[str, Any]) -> Any:
    for name in FINAL_NAMES:
        value = bindings.get(name)
        if value is not None:
            return value
    return None


def safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception as e:
        return f"<unrepresentable {type(value).__name__}: {e}>"


def render_examples(snippets: List[str]) -> str:
    if not snippets:
        return ""
    rendered = "\n\n".join(
        f"{i}.\n```python\n{snippet}\n```" for i, snippet in enumerate(snippets, 1)
    )
    return f"\n## Previously successful approaches\n\n{rendered}\n"


def input_metadata(question: str, text: str) -> str:
    return "\n".join([
        f"Question: {question}",
        "Input metadata:",
        f"- length: {len(text)}",
        f"- prefix_200: {text[:200]!r}",
        "Write Python code that works only from available variables and metadata.",
    ])


def execution_feedback(result: Any, stdout: str, bindings: Dict[str, Any]) -> str:
    return "\n".join([
        "Execution metadata:",
        f"- result: {safe_repr(result)}",
        f"- stdout_length: {len(stdout)}",
        f"- stdout_preview_200: {stdout[:200]!r}",
        f"- final_set: {final_value(bindings) is not None}",
        "Respond with the next Python code.",
    ])


class RLMEngine:
    """
    The main RLM engine that coordinates everything.

    Usage:
        engine = RLMEngine()
        result = await engine.run("What is this about?", document_text,
                                  RunOptions(return_meta=True))
        print(result.value)
    """

    def __init__(
        self,
        generator: Optional[CodeGenerator] = None,
        evaluator: Optional[Evaluator] = None,
        recall_store: Optional[RecallStore] = None,
        trajectory_logger: Optional[TrajectoryLogger] = None,
    ):
        """
        Args:
            generator: Turns a conversation into code (default: LLMRouter)
            evaluator: Runs the code (default: Evaluator)
            recall_store: Overrides the store built from RunOptions
            trajectory_logger: Overrides the logger built from RunOptions
        """
        self.generator = generator or LLMRouter()
        self.evaluator = evaluator or Evaluator()
        self.recall_store = recall_store
        self.trajectory_logger = trajectory_logger

    async def run(
        self,
        question: str,
        input: str,
        options: Optional[RunOptions] = None,
    ) -> Union[Any, RunResult]:
        """
        Answer `question` about `input`.

        Returns the bare final value, or an Answer carrying iteration count
        and trajectory path when options.return_meta is set. Running out of
        iterations returns BudgetExhausted. Generator failures that survive
        the retry policy propagate.
        """
        options = options or RunOptions.from_settings()
        result = await self._run(question, input, options, depth=0)

        if isinstance(result, Answer) and not options.return_meta:
            return result.value
        return result

    async def _run(self, question: str, input: str, options: RunOptions, depth: int) -> RunResult:
        recall = self.recall_store or RecallStore.from_options(options)
        trajectory = self.trajectory_logger or TrajectoryLogger.from_options(options)
        session = trajectory.open_session() if options.log_trajectory else None

        sub_calls = SubCallLog()
        bindings: Dict[str, Any] = {
            "input": input,
            "question": question,
            "re": re,
            "rlm_call": self._make_rlm_call(options, sub_calls, depth),
        }

        messages: List[Message] = [
            {"role": "system", "content": await self._system_prompt(question, recall)},
            {"role": "user", "content": input_metadata(question, input)},
        ]

        logger.info("Run started (depth=%d, input=%d chars): %s", depth, len(input), question[:80])

        last: Optional[PartialOutcome] = None

        # === THE MAIN RLM LOOP ===
        for iteration in range(1, options.max_iterations + 1):
            self._notify(options, iteration)

            # Step 1: Ask the model for code
            response = await self._complete(messages, options)
            code = extract_code(response)

            # Step 2: Execute it
            sub_calls.drain()
            result, stdout, bindings = await self._evaluate(bindings, code)
            calls = sub_calls.drain()
            logger.debug("Iteration %d (depth=%d): %d sub-calls, %d chars output",
                         iteration, depth, len(calls), len(stdout))

            if session:
                trajectory.append(session, IterationRecord(
                    iteration=iteration,
                    code=code,
                    stdout_preview=stdout[:200],
                    sub_calls=calls,
                ).to_dict())

            # Step 3: Done?
            final = final_value(bindings)
            if final is not None:
                await self._remember(recall, question, code)
                logger.info("Run answered after %d iterations (depth=%d)", iteration, depth)
                return Answer(value=final, iterations=iteration, trajectory=session)

            # Step 4: Feed the outcome back
            messages.append({"role": "assistant", "content": code})
            messages.append({"role": "user", "content": execution_feedback(result, stdout, bindings)})
            last = PartialOutcome(result=result, stdout=stdout, code=code)

        logger.info("Run exhausted %d iterations (depth=%d)", options.max_iterations, depth)
        return BudgetExhausted(partial=last, iterations=options.max_iterations, trajectory=session)

    async def _evaluate(self, bindings: Dict[str, Any], code: str) -> EvalResult:
        """
        Run the Evaluator on its own thread.

        The event loop stays free while the snippet runs, so rlm_call()
        sub-runs scheduled from inside it can make progress.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(outcome, error):
            if future.done():
                return
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(outcome)

        def worker():
            outcome, error = None, None
            try:
                outcome = self.evaluator.evaluate(bindings, code)
            except BaseException as e:
                error = e
            # An abandoned sub-run can outlive the loop that started it
            if loop.is_closed():
                return
            try:
                loop.call_soon_threadsafe(resolve, outcome, error)
            except RuntimeError:
                logger.debug("Event loop closed before evaluation finished")

        threading.Thread(target=worker, name="rlm-eval", daemon=True).start()
        return await future

    def _make_rlm_call(self, options: RunOptions, sub_calls: SubCallLog, depth: int):
        """Build the rlm_call(sub_question, sub_input) binding for one run."""
        loop = asyncio.get_running_loop()

        def rlm_call(sub_question, sub_input):
            sub_question, sub_input = str(sub_question), str(sub_input)
            sub_calls.record(sub_question, sub_input)

            try:
                asyncio.get_running_loop()
            except RuntimeError:
                pass
            else:
                raise RLMError("rlm_call() cannot block inside the event loop thread")

            sub_options = options.model_copy(update={"max_iterations": options.max_iterations})
            future = asyncio.run_coroutine_threadsafe(
                self._run(sub_question, sub_input, sub_options, depth + 1), loop
            )
            try:
                result = future.result(timeout=options.task_timeout)
            except concurrent.futures.TimeoutError:
                raise SubCallTimeoutError(
                    f"rlm_call timed out after {options.task_timeout}s"
                ) from None

            if isinstance(result, Answer):
                return result.value
            return result

        return rlm_call

    async def _complete(self, messages: List[Message], options: RunOptions) -> str:
        if not options.retry_with_backoff:
            return await self.generator.complete(list(messages), options)

        attempt = 0
        while True:
            try:
                return await self.generator.complete(list(messages), options)
            except Exception as e:
                if attempt >= options.llm_retries or not is_transient(e):
                    raise
                delay = options.llm_retry_backoff * (2 ** attempt)
                logger.warning("Transient generator failure (attempt %d/%d), retrying in %.2fs: %s",
                               attempt + 1, options.llm_retries, delay, e)
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    async def _system_prompt(self, question: str, recall: RecallStore) -> str:
        try:
            examples = await asyncio.to_thread(recall.retrieve, question)
        except Exception as e:
            logger.warning("Recall lookup failed, continuing without examples: %s", e)
            examples = []
        return SYSTEM_PROMPT.format(examples=render_examples(examples))

    async def _remember(self, recall: RecallStore, question: str, code: str) -> None:
        try:
            await asyncio.to_thread(recall.store, question, code)
        except Exception:
            logger.warning("Could not store snippet in recall cache", exc_info=True)

    @staticmethod
    def _notify(options: RunOptions, iteration: int) -> None:
        if options.on_iteration is None:
            return
        try:
            options.on_iteration(iteration)
        except Exception:
            logger.warning("on_iteration callback failed", exc_info=True)


def run(
    question: str,
    input: str,
    options: Optional[RunOptions] = None,
    generator: Optional[CodeGenerator] = None,
) -> Union[Any, RunResult]:
    """Blocking convenience wrapper around RLMEngine.run()."""
    engine = RLMEngine(generator=generator)
    return asyncio.run(engine.run(question, input, options))
