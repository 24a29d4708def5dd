# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio
import json
from types import SimpleNamespace

import httpx
import pytest
from openai import APIConnectionError

from services.judge_service import (
    CodeJudge,
    JudgeError,
    TestCase,
    TutorService,
    build_judge_prompt,
    parse_judge_results,
)
from services.score_service import ScoreBook


# ---------------------------------------------------------------------
# Fake chat-completions client
# ---------------------------------------------------------------------

class FakeCompletions:
    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(reply: str | None = None, error: Exception | None = None):
    completions = FakeCompletions(reply, error)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://llm.example/v1/chat/completions"))


CASES = [
    TestCase(input="2 3", expected_output="5"),
    TestCase(input="10 -4", expected_output="6", is_hidden=True),
]


# ---------------------------------------------------------------------
# Judge
# ---------------------------------------------------------------------

def test_judge_maps_results_by_index():
    reply = json.dumps({"results": [
        {"id": 1, "actualOutput": "7", "passed": False},
        {"id": 0, "actualOutput": "5", "passed": True},
    ]})
    client, completions = fake_client(reply)
    judge = CodeJudge(client=client, model="judge-model")

    results = asyncio.run(judge.validate_solution("print(sum(...))", "Python", CASES))

    assert [(r.actual_output, r.passed) for r in results] == [("5", True), ("7", False)]
    assert results[1].is_hidden is True
    assert completions.calls[0]["response_format"] == {"type": "json_object"}
    assert completions.calls[0]["model"] == "judge-model"


def test_judge_marks_missing_results_as_error():
    reply = json.dumps({"results": [{"id": 0, "actualOutput": "5", "passed": True}]})
    client, _ = fake_client(reply)

    results = asyncio.run(CodeJudge(client=client, model="m").validate_solution("x", "C", CASES))

    assert results[1].actual_output == "Error"
    assert results[1].passed is False


def test_judge_failure_fails_every_test():
    client, _ = fake_client(error=connection_error())

    results = asyncio.run(CodeJudge(client=client, model="m").validate_solution("x", "Java", CASES))

    assert [r.actual_output for r in results] == ["Judge Error", "Judge Error"]
    assert not any(r.passed for r in results)


def test_judge_unparseable_reply_fails_every_test():
    client, _ = fake_client("```json\nnope```")

    results = asyncio.run(CodeJudge(client=client, model="m").validate_solution("x", "C", CASES))

    assert all(r.actual_output == "Judge Error" for r in results)


def test_judge_with_no_tests_skips_the_call():
    client, completions = fake_client("{}")

    assert asyncio.run(CodeJudge(client=client, model="m").validate_solution("x", "C", [])) == []
    assert completions.calls == []


def test_judge_prompt_lists_cases_by_index():
    prompt = build_judge_prompt("print(1)", "Python", CASES)

    assert prompt.startswith("Language: Python\nUser Code:\n```Python\nprint(1)\n```")
    cases = json.loads(prompt.split("Test Cases:\n", 1)[1])
    assert cases == [
        {"id": 0, "input": "2 3", "expected": "5"},
        {"id": 1, "input": "10 -4", "expected": "6"},
    ]


def test_parse_judge_results_rules():
    assert parse_judge_results("") == {}
    assert parse_judge_results('{"results": [{"id": true}, {"id": 0, "passed": true}]}') == {
        0: {"id": 0, "passed": True},
    }
    with pytest.raises(JudgeError):
        parse_judge_results('{"items": []}')


# ---------------------------------------------------------------------
# Run simulation / tutor
# ---------------------------------------------------------------------

def test_run_code_returns_simulated_stdout():
    client, completions = fake_client("Hello\n")

    output = asyncio.run(CodeJudge(client=client, model="m").run_code("print('Hello')", "Python", "Asha"))

    assert output == "Hello\n"
    assert "STANDARD INPUT (stdin):\nAsha" in completions.calls[0]["messages"][1]["content"]


def test_run_code_fallbacks():
    empty, _ = fake_client("")
    broken, _ = fake_client(error=connection_error())

    assert asyncio.run(CodeJudge(client=empty, model="m").run_code("x", "C")) == "No output."
    assert asyncio.run(CodeJudge(client=broken, model="m").run_code("x", "C")) == "Execution unavailable."


def test_tutor_answer_and_fallbacks():
    ok, completions = fake_client("Use a dict.")
    empty, _ = fake_client(None)
    broken, _ = fake_client(error=connection_error())

    assert asyncio.run(TutorService(client=ok, model="m").answer("How?", "Hashing")) == "Use a dict."
    assert completions.calls[0]["messages"][1]["content"] == "Course Context: Hashing\nUser Question: How?"
    assert asyncio.run(TutorService(client=empty, model="m").answer("How?")) == "I couldn't generate a response."
    assert asyncio.run(TutorService(client=broken, model="m").answer("How?")) == "Error generating response."


# ---------------------------------------------------------------------
# Score book
# ---------------------------------------------------------------------

def test_award_is_idempotent_per_problem(tmp_path):
    book = ScoreBook(tmp_path / "scores.json")

    assert book.award("u1", "p1") is True
    assert book.award("u1", "p1") is False
    assert book.award("u1", "p2", points=10) is True

    assert book.score("u1") == 35
    assert book.completed("u1") == ["p1", "p2"]
    assert book.score("nobody") == 0


def test_scores_persist_across_instances(tmp_path):
    path = tmp_path / "nested" / "scores.json"
    ScoreBook(path).award("u1", "p1", points=25)

    reopened = ScoreBook(path)

    assert reopened.score("u1") == 25
    assert reopened.award("u1", "p1") is False
    assert json.loads(path.read_text(encoding="utf-8"))["users"]["u1"]["completed"] == ["p1"]


def test_award_rejects_negative_points(tmp_path):
    with pytest.raises(ValueError):
        ScoreBook(tmp_path / "scores.json").award("u1", "p1", points=-5)
