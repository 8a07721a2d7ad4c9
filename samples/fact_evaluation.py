# Copyright (c) Microsoft. All rights reserved.

import asyncio

from aiglue import ChatMessage, EvaluationExpert, FactEvaluator, setup_logging
from aiglue.ollama import OllamaChatClient

"""
Fact Evaluation Example

This sample asks a model a question and grades the factual content of its answer
against an expert answer, using a second call to the same model as the grader.

Environment Variables:
- OLLAMA_HOST: The Ollama server (optional, defaults to http://localhost:11434)
- OLLAMA_MODEL_ID: The model to use (e.g., "phi4", "llama3.2")
"""


async def main() -> None:
    setup_logging()
    client = OllamaChatClient()

    messages = [
        ChatMessage(role="system", text="Answer in one sentence."),
        ChatMessage(role="user", text="Which countries does the Amazon river flow through?"),
    ]
    response = await client.get_response(messages)
    print(f"Answer: {response.text}")

    evaluator = FactEvaluator(client)
    result = await evaluator.evaluate(
        messages,
        response,
        additional_context=[EvaluationExpert("Peru, Colombia and Brazil")],
    )

    metric = result.get(FactEvaluator.METRIC_NAME)
    if metric is not None and metric.interpretation is not None:
        interpretation = metric.interpretation
        print(f"Rating: {interpretation.rating.value} (score: {metric.value}, failed: {interpretation.failed})")
        for diagnostic in metric.diagnostics:
            print(f"  {diagnostic.severity.value}: {diagnostic.message}")


if __name__ == "__main__":
    asyncio.run(main())
