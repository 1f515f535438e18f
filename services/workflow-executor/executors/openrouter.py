"""
OpenRouter node executor.

Generates text with a chat model served through OpenRouter's OpenAI-compatible
API. The API key is looked up by `credentialId` in the credential store; the
system and user prompts are templates rendered against the run context.

Output:
    {variableName: {"aiResponse": text}}
"""

from __future__ import annotations

import logging
from typing import Any

import openai

from activities.credentials import CredentialStore
from activities.step_runner import StepRunner
from channels.publishers import StatusPublisher
from channels.status import OPENROUTER_NODE_CHANNEL
from core.config import config
from core.context import ExecutionContext
from core.errors import NodeExecutionError, NodeValidationError, RetriableError
from core.template_resolver import render_template
from executors.base import NodeExecutor, node_status, require

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 200

# Errors from the OpenAI client that are worth another attempt
_TRANSIENT_ERRORS = (
    openai.RateLimitError,
    openai.APIConnectionError,  # includes APITimeoutError
    openai.InternalServerError,
)


def generate_text(api_key: str, model: str, system_prompt: str, user_prompt: str) -> str:
    """Single chat completion; returns the first choice's text ('' if none)."""
    client = openai.OpenAI(
        base_url=config.OPENROUTER_BASE_URL,
        api_key=api_key,
        timeout=config.HTTP_TIMEOUT_SECONDS,
        max_retries=0,
    )

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    try:
        completion = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=MAX_OUTPUT_TOKENS,
        )
    except _TRANSIENT_ERRORS as e:
        raise RetriableError(f"OpenRouter request failed: {e}") from e
    except openai.OpenAIError as e:
        raise NodeExecutionError(f"OpenRouter request failed: {e}") from e

    if not completion.choices:
        return ""
    return completion.choices[0].message.content or ""


def make_openrouter_executor(credentials: CredentialStore) -> NodeExecutor:
    """Bind the OpenRouter executor to a credential store."""

    def openrouter_executor(
        *,
        node_id: str,
        data: dict[str, Any],
        context: ExecutionContext,
        step: StepRunner,
        publish: StatusPublisher,
    ) -> ExecutionContext:
        with node_status(publish, OPENROUTER_NODE_CHANNEL, node_id):
            variable_name = require(data, "variableName", "Variable name")
            credential_id = require(data, "credentialId", "Credential ID")
            model = require(data, "model", "Model")

            system_prompt = render_template(data.get("systemPrompt") or "", context)
            user_prompt = render_template(data.get("userPrompt") or "", context)

            logger.info(f"[OpenRouter] Node {node_id}: generating text with {model}")

            def generate() -> str:
                # Credential lookup retries with the call; only the text is memoized
                api_key = credentials.get(credential_id)
                if not api_key:
                    raise NodeValidationError(f"Credential not found: {credential_id}")
                return generate_text(api_key, model, system_prompt, user_prompt)

            text = step.run("openrouter-generate-text", generate)
            return context.with_output(variable_name, {"aiResponse": text})

    return openrouter_executor
