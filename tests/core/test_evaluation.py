# Copyright (c) Microsoft. All rights reserved.

from pytest import mark, raises

from aiglue import (
    ChatMessage,
    ChatResponse,
    EvaluationDiagnostic,
    EvaluationDiagnosticSeverity,
    EvaluationExpert,
    EvaluationRating,
    EvaluationResult,
    FactEvaluator,
    NumericMetric,
)
from aiglue.exceptions import EvaluationException

QUESTION = "Which countries does the Amazon flow through?"
IDEAL = "Brazil, Peru and Colombia"


@mark.parametrize(
    "reply, rating, value",
    [
        ("A", EvaluationRating.AVERAGE, 0.4),
        ("B", EvaluationRating.GOOD, 0.6),
        ("C", EvaluationRating.EXCEPTIONAL, 1.0),
        ("D", EvaluationRating.UNACCEPTABLE, 0.0),
        (" E\n", EvaluationRating.EXCEPTIONAL, 1.0),
    ],
)
async def test_fact_evaluator_ratings(chat_client_base, reply, rating, value):
    chat_client_base.run_responses = [ChatResponse(text=reply)]
    evaluator = FactEvaluator(chat_client_base)

    result = await evaluator.evaluate(
        QUESTION, "Brazil, Peru and Colombia.", additional_context=[EvaluationExpert(IDEAL)]
    )

    metric = result.get(FactEvaluator.METRIC_NAME)
    assert metric is not None
    assert metric.value == value
    assert metric.interpretation is not None
    assert metric.interpretation.rating == rating
    assert metric.interpretation.failed is False
    assert [(d.severity, d.message) for d in metric.diagnostics] == [
        (EvaluationDiagnosticSeverity.INFORMATIONAL, reply.strip())
    ]


async def test_fact_evaluator_inconclusive(chat_client_base):
    chat_client_base.run_responses = [ChatResponse(text="I cannot tell.")]

    result = await FactEvaluator(chat_client_base).evaluate(
        QUESTION, ChatResponse(text="Only Brazil."), additional_context=[EvaluationExpert(IDEAL)]
    )

    metric = result.get(FactEvaluator.METRIC_NAME)
    assert metric is not None
    assert metric.value is None
    assert metric.interpretation is not None
    assert metric.interpretation.rating == EvaluationRating.INCONCLUSIVE
    assert metric.interpretation.failed is True


async def test_fact_evaluator_grades_with_zero_temperature(chat_client_base):
    chat_client_base.run_responses = [ChatResponse(text="C")]

    await FactEvaluator().evaluate(
        QUESTION,
        ChatMessage(role="assistant", text=IDEAL),
        additional_context=[EvaluationExpert(IDEAL)],
        chat_client=chat_client_base,
    )

    assert chat_client_base.call_count == 1
    assert chat_client_base.received_options[0].temperature == 0.0


@mark.parametrize("context", [None, [], [EvaluationExpert("")]])
async def test_fact_evaluator_requires_ideal_answer(chat_client_base, context):
    with raises(EvaluationException, match="Ideal answer required"):
        await FactEvaluator(chat_client_base).evaluate(QUESTION, "Brazil.", additional_context=context)
    assert chat_client_base.call_count == 0


async def test_fact_evaluator_requires_chat_client():
    with raises(EvaluationException, match="chat client"):
        await FactEvaluator().evaluate(QUESTION, "Brazil.", additional_context=[EvaluationExpert(IDEAL)])


def test_fact_evaluator_prompt_uses_last_user_message():
    evaluator = FactEvaluator()

    prompt = evaluator.render_evaluation_prompt(
        ChatMessage(role="user", text=QUESTION),
        ChatMessage(role="assistant", text="Brazil."),
        [EvaluationExpert(IDEAL)],
    )

    assert f"[Question]: {QUESTION}" in prompt
    assert f"[Expert]: {IDEAL}" in prompt
    assert "[Submission]: Brazil." in prompt
    assert evaluator.evaluation_metric_names == ["FactEvaluator"]


async def test_fact_evaluator_ignores_history(chat_client_base):
    # the mock echoes the prompt it was sent
    history = [
        ChatMessage(role="user", text="What is the longest river?"),
        ChatMessage(role="assistant", text="The Amazon, by some measures."),
        ChatMessage(role="user", text=QUESTION),
    ]

    result = await FactEvaluator(chat_client_base).evaluate(
        history, "Brazil.", additional_context=[EvaluationExpert(IDEAL)]
    )

    metric = result.get(FactEvaluator.METRIC_NAME)
    assert metric is not None
    sent_prompt = metric.diagnostics[0].message
    assert f"[Question]: {QUESTION}" in sent_prompt
    assert "longest river" not in sent_prompt
    assert metric.interpretation is not None
    assert metric.interpretation.rating == EvaluationRating.INCONCLUSIVE


def test_parse_evaluation_response_requires_metric():
    with raises(EvaluationException, match="NumericMetric"):
        FactEvaluator().parse_evaluation_response("A", EvaluationResult())


def test_evaluation_result_diagnostics():
    result = EvaluationResult(NumericMetric(name="one"), NumericMetric(name="two"))

    result.add_diagnostic_to_all_metrics(
        EvaluationDiagnostic(severity=EvaluationDiagnosticSeverity.WARNING, message="slow")
    )

    assert list(result.metrics) == ["one", "two"]
    assert result.get("three") is None
    assert [metric.diagnostics[0].message for metric in result.metrics.values()] == ["slow", "slow"]
