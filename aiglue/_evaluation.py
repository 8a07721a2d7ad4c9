# Copyright (c) Microsoft. All rights reserved.

from collections.abc import Sequence
from enum import Enum
from typing import Any, Final

from pydantic import Field

from ._clients import ChatClientProtocol, prepare_messages
from ._logging import get_logger
from ._pydantic import AIGlueBaseModel
from ._types import ChatMessage, ChatResponse, Role
from .exceptions import EvaluationException

__all__ = [
    "EvaluationContext",
    "EvaluationDiagnostic",
    "EvaluationDiagnosticSeverity",
    "EvaluationExpert",
    "EvaluationMetricInterpretation",
    "EvaluationRating",
    "EvaluationResult",
    "FactEvaluator",
    "NumericMetric",
]

logger = get_logger("aiglue.evaluation")


class EvaluationRating(str, Enum):
    """How good a response was judged to be."""

    UNKNOWN = "Unknown"
    INCONCLUSIVE = "Inconclusive"
    UNACCEPTABLE = "Unacceptable"
    POOR = "Poor"
    AVERAGE = "Average"
    GOOD = "Good"
    EXCEPTIONAL = "Exceptional"


class EvaluationDiagnosticSeverity(str, Enum):
    INFORMATIONAL = "Informational"
    WARNING = "Warning"
    ERROR = "Error"


class EvaluationDiagnostic(AIGlueBaseModel):
    severity: EvaluationDiagnosticSeverity
    message: str


class EvaluationMetricInterpretation(AIGlueBaseModel):
    rating: EvaluationRating = EvaluationRating.UNKNOWN
    failed: bool = False
    reason: str | None = None


class NumericMetric(AIGlueBaseModel):
    """A named metric with a numeric value, its interpretation and diagnostics."""

    name: str
    value: float | None = None
    interpretation: EvaluationMetricInterpretation | None = None
    diagnostics: list[EvaluationDiagnostic] = Field(default_factory=list)

    def add_diagnostic(self, diagnostic: EvaluationDiagnostic) -> None:
        self.diagnostics.append(diagnostic)


class EvaluationResult(AIGlueBaseModel):
    metrics: dict[str, NumericMetric] = Field(default_factory=dict)

    def __init__(self, *metrics: NumericMetric, **kwargs: Any) -> None:
        if metrics:
            kwargs["metrics"] = {metric.name: metric for metric in metrics}
        super().__init__(**kwargs)

    def get(self, name: str) -> NumericMetric | None:
        return self.metrics.get(name)

    def add_diagnostic_to_all_metrics(self, diagnostic: EvaluationDiagnostic) -> None:
        for metric in self.metrics.values():
            metric.add_diagnostic(diagnostic)


class EvaluationContext(AIGlueBaseModel):
    """Additional information passed to an evaluator."""


class EvaluationExpert(EvaluationContext):
    """The expert (ideal) answer a submitted answer is compared with."""

    ideal_answer: str

    def __init__(self, ideal_answer: str, **kwargs: Any) -> None:
        super().__init__(ideal_answer=ideal_answer, **kwargs)


# From the OpenAI evals "fact" model-graded template:
# https://github.com/openai/evals/blob/a32c9826cd7d5d33d60a39b54fb96d1085498d9a/evals/registry/modelgraded/fact.yaml
FACT_PROMPT_TEMPLATE: Final[str] = """You are comparing a submitted answer to an expert answer on a given question. Here is the data:
[BEGIN DATA]
************
[Question]: {question}
************
[Expert]: {ideal}
************
[Submission]: {completion}
************
[END DATA]

Compare the factual content of the submitted answer with the expert answer. Ignore any differences in style, grammar, or punctuation.
The submitted answer may either be a subset or superset of the expert answer, or it may conflict with it. Determine which case applies. Answer the question by selecting one of the following options:
(A) The submitted answer is a subset of the expert answer and is fully consistent with it.
(B) The submitted answer is a superset of the expert answer and is fully consistent with it.
(C) The submitted answer contains all the same details as the expert answer.
(D) There is a disagreement between the submitted answer and the expert answer.
(E) The answers differ, but these differences don't matter from the perspective of factuality.

Return a string of choices, e.g. "A" or "B" or "C" or "D" or "E\""""  # noqa: E501

CHOICE_RATINGS: Final[dict[str, EvaluationRating]] = {
    "A": EvaluationRating.AVERAGE,
    "B": EvaluationRating.GOOD,
    "C": EvaluationRating.EXCEPTIONAL,
    "D": EvaluationRating.UNACCEPTABLE,
    "E": EvaluationRating.EXCEPTIONAL,
}
CHOICE_SCORES: Final[dict[str, float]] = {"A": 0.4, "B": 0.6, "C": 1.0, "D": 0.0, "E": 1.0}


class FactEvaluator:
    """Grades the factual content of a response against an expert answer.

    The conversation history is ignored: the last user message is the question.
    The grading model answers with one of the choices A to E, mapped to a rating and a score.

    Examples:
        .. code-block:: python

            from aiglue import EvaluationExpert, FactEvaluator

            evaluator = FactEvaluator(chat_client)
            result = await evaluator.evaluate(
                "Which countries does the Amazon flow through?",
                "Brazil, Peru and Colombia.",
                additional_context=[EvaluationExpert("Brazil, Peru and Colombia")],
            )
            print(result.get(FactEvaluator.METRIC_NAME).interpretation.rating)
    """

    METRIC_NAME: Final[str] = "FactEvaluator"

    def __init__(self, chat_client: ChatClientProtocol | None = None) -> None:
        self.chat_client = chat_client

    @property
    def evaluation_metric_names(self) -> list[str]:
        return [self.METRIC_NAME]

    def render_evaluation_prompt(
        self,
        user_request: ChatMessage | None,
        model_response: ChatMessage,
        additional_context: Sequence[EvaluationContext] | None = None,
    ) -> str:
        ideal = next(
            (context.ideal_answer for context in additional_context or [] if isinstance(context, EvaluationExpert)),
            None,
        )
        if not ideal:
            raise EvaluationException("Ideal answer required in the additional context.")
        return FACT_PROMPT_TEMPLATE.format(
            question=user_request.text if user_request is not None else "",
            ideal=ideal,
            completion=model_response.text,
        )

    def parse_evaluation_response(self, response_text: str, result: EvaluationResult) -> None:
        metric = result.get(self.METRIC_NAME)
        if metric is None:
            raise EvaluationException(f"NumericMetric '{self.METRIC_NAME}' required in the evaluation result.")
        choice = response_text.strip()
        rating = CHOICE_RATINGS.get(choice, EvaluationRating.INCONCLUSIVE)
        metric.value = CHOICE_SCORES.get(choice)
        result.add_diagnostic_to_all_metrics(
            EvaluationDiagnostic(severity=EvaluationDiagnosticSeverity.INFORMATIONAL, message=response_text)
        )
        metric.interpretation = EvaluationMetricInterpretation(
            rating=rating, failed=rating == EvaluationRating.INCONCLUSIVE
        )

    async def evaluate(
        self,
        messages: str | ChatMessage | Sequence[str | ChatMessage],
        model_response: str | ChatMessage | ChatResponse,
        *,
        additional_context: Sequence[EvaluationContext] | None = None,
        chat_client: ChatClientProtocol | None = None,
    ) -> EvaluationResult:
        """Evaluate a model response to the last user message.

        Args:
            messages: The conversation that led to the response.
            model_response: The response to evaluate.

        Keyword Args:
            additional_context: Must hold an ``EvaluationExpert`` with the ideal answer.
            chat_client: The grading model, defaults to the one given at construction.
        """
        client = chat_client or self.chat_client
        if client is None:
            raise EvaluationException("A chat client is required to evaluate a response.")

        user_request = next(
            (message for message in reversed(prepare_messages(messages)) if message.role == Role.USER), None
        )
        if isinstance(model_response, ChatResponse):
            response_message = ChatMessage(role=Role.ASSISTANT, text=model_response.text)
        elif isinstance(model_response, str):
            response_message = ChatMessage(role=Role.ASSISTANT, text=model_response)
        else:
            response_message = model_response

        prompt = self.render_evaluation_prompt(user_request, response_message, additional_context)
        result = EvaluationResult(NumericMetric(name=self.METRIC_NAME))
        grading = await client.get_response(prompt, temperature=0.0)
        logger.debug("Fact evaluation reply: %s", grading.text)
        self.parse_evaluation_response(grading.text, result)
        return result
