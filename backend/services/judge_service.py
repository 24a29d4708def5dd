"""
LLM-backed grading collaborators for the code lab.

- CodeJudge.validate_solution: the LLM acts as an automated judge and
  reports, per test case, what the code printed and whether it matched
- CodeJudge.run_code: the LLM simulates one run of the code against stdin
- TutorService.answer: single-shot tutor reply with course context

None of these raise to the caller. Provider failures and unusable replies
are logged and mapped to fixed fallback outputs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from constants import (
    JUDGE_ERROR_OUTPUT,
    JUDGE_MISSING_OUTPUT,
    RUN_EMPTY_OUTPUT,
    RUN_UNAVAILABLE_OUTPUT,
    TUTOR_EMPTY_OUTPUT,
    TUTOR_ERROR_OUTPUT,
)
from observability.logger import log_event, now_ms
from observability.metrics import timed


JUDGE_SYSTEM_PROMPT = """Act as an Automated Code Judge.
Simulate the execution of the code strictly for each test case provided.
Return a JSON Object with a property "results" which is an array of objects.
Each object must have:
- "id": number (matching the test case index)
- "actualOutput": string (what the code actually produced)
- "passed": boolean (true if actualOutput matches expected, false otherwise)
Ignore whitespace differences when comparing (trim outputs).
ONLY RETURN JSON. NO MARKDOWN."""

RUN_SYSTEM_PROMPT = """Act as a Code Execution Engine.
INSTRUCTIONS:
1. Simulate the execution of the code strictly.
2. When the code calls input() or similar functions, read values sequentially from the STANDARD INPUT provided.
3. If input() is called but STANDARD INPUT is empty or exhausted, simulate language-specific behavior (e.g., EOFError for Python).
4. Return ONLY the STANDARD OUTPUT (stdout). Do not include any explanation, markdown formatting, or preamble.
5. If there is a syntax error or runtime error, print the error message exactly as the compiler/interpreter would."""

TUTOR_SYSTEM_PROMPT = (
    "You are an expert technical tutor for TechNexus Academy. "
    "Provide clear, concise, and helpful technical answers."
)


class JudgeError(Exception):
    """The judge reply could not be turned into per-test results."""


@dataclass(frozen=True)
class TestCase:
    __test__ = False  # not a pytest class

    input: str
    expected_output: str
    is_hidden: bool = False


@dataclass(frozen=True)
class TestResult:
    __test__ = False

    input: str
    expected_output: str
    actual_output: str
    passed: bool
    is_hidden: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "input": self.input,
            "expected_output": self.expected_output,
            "actual_output": self.actual_output,
            "passed": self.passed,
            "is_hidden": self.is_hidden,
        }


def build_judge_prompt(code: str, language: str, test_cases: list[TestCase]) -> str:
    cases = json.dumps([
        {"id": i, "input": tc.input, "expected": tc.expected_output}
        for i, tc in enumerate(test_cases)
    ])
    return (
        f"Language: {language}\n"
        f"User Code:\n```{language}\n{code}\n```\n\n"
        f"Test Cases:\n{cases}"
    )


def build_run_prompt(code: str, language: str, stdin: str) -> str:
    return (
        f"LANGUAGE: {language}\n\n"
        f"CODE TO EXECUTE:\n```{language}\n{code}\n```\n\n"
        f"STANDARD INPUT (stdin):\n{stdin}"
    )


def parse_judge_results(raw: str | None) -> dict[int, dict[str, Any]]:
    """
    Parse the judge reply into {test index: result object}.

    An empty reply means "no results". Anything that is not a JSON object
    with a "results" list raises JudgeError. Entries without an integer id
    are ignored; the first entry for an id wins.
    """
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise JudgeError(f"judge reply is not JSON: {e}") from e

    if not isinstance(parsed, dict) or not isinstance(parsed.get("results"), list):
        raise JudgeError("judge reply has no results array")

    by_id: dict[int, dict[str, Any]] = {}
    for entry in parsed["results"]:
        if not isinstance(entry, dict):
            continue
        test_id = entry.get("id")
        if isinstance(test_id, bool) or not isinstance(test_id, int):
            continue
        by_id.setdefault(test_id, entry)
    return by_id


def _message_text(completion: Any) -> str | None:
    """First choice content of a chat completion, if any."""
    try:
        return completion.choices[0].message.content
    except (AttributeError, IndexError):
        return None


def _log_failure(event_type: str, error: Exception, **fields: Any) -> None:
    log_event({
        "ts_ms": now_ms(),
        "event_type": event_type,
        "level": "error",
        "exception": type(error).__name__,
        "message": str(error),
        **fields,
    })


class CodeJudge:
    """
    Grades and runs learner code through a chat-completions model.
    """

    def __init__(self, *, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def validate_solution(
        self,
        code: str,
        language: str,
        test_cases: list[TestCase],
    ) -> list[TestResult]:
        """
        Judge code against every test case.

        Always returns one result per test case, in order. A test the judge
        did not report on gets actual_output "Error"; if the judge call or
        its reply fails as a whole every test gets "Judge Error".
        """
        if not test_cases:
            return []

        try:
            with timed("judge_latency", details={"language": language, "tests": len(test_cases)}):
                completion = await self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": JUDGE_SYSTEM_PROMPT},
                        {"role": "user", "content": build_judge_prompt(code, language, test_cases)},
                    ],
                    response_format={"type": "json_object"},
                )
            by_id = parse_judge_results(_message_text(completion))
        except (OpenAIError, JudgeError) as e:
            _log_failure("JUDGE_FAILED", e, language=language, tests=len(test_cases))
            return [
                TestResult(
                    input=tc.input,
                    expected_output=tc.expected_output,
                    actual_output=JUDGE_ERROR_OUTPUT,
                    passed=False,
                    is_hidden=tc.is_hidden,
                )
                for tc in test_cases
            ]

        results: list[TestResult] = []
        for index, tc in enumerate(test_cases):
            entry = by_id.get(index)
            if entry is None:
                actual, passed = JUDGE_MISSING_OUTPUT, False
            else:
                actual = str(entry.get("actualOutput", ""))
                passed = entry.get("passed") is True
            results.append(TestResult(
                input=tc.input,
                expected_output=tc.expected_output,
                actual_output=actual,
                passed=passed,
                is_hidden=tc.is_hidden,
            ))

        log_event({
            "ts_ms": now_ms(),
            "event_type": "JUDGE_COMPLETED",
            "language": language,
            "tests": len(results),
            "passed": sum(1 for r in results if r.passed),
            "missing": len(test_cases) - sum(1 for i in range(len(test_cases)) if i in by_id),
        })
        return results

    async def run_code(self, code: str, language: str, stdin: str = "") -> str:
        """Simulated stdout of one run of the code."""
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": RUN_SYSTEM_PROMPT},
                    {"role": "user", "content": build_run_prompt(code, language, stdin)},
                ],
            )
        except OpenAIError as e:
            _log_failure("RUN_SIMULATION_FAILED", e, language=language)
            return RUN_UNAVAILABLE_OUTPUT

        return _message_text(completion) or RUN_EMPTY_OUTPUT


class TutorService:
    def __init__(self, *, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self._model = model

    async def answer(self, question: str, context: str = "") -> str:
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": TUTOR_SYSTEM_PROMPT},
                    {"role": "user", "content": f"Course Context: {context}\nUser Question: {question}"},
                ],
            )
        except OpenAIError as e:
            _log_failure("TUTOR_FAILED", e)
            return TUTOR_ERROR_OUTPUT

        return _message_text(completion) or TUTOR_EMPTY_OUTPUT
