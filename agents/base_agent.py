# agents/base_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "blueprint" for the AI side of the daemon. It knows how to
# send a prompt to an LLM and get text back. The summarizer inherits from
# it.
#
# MULTI-PROVIDER SUPPORT:
#   This file supports two LLM providers:
#     1. OpenRouter (default), using the OpenAI-compatible API format.
#        Can route to many models (Kimi K2.5, GPT-4, etc.)
#     2. Anthropic (fallback), direct access to Claude models.
#   If OpenRouter fails, the call automatically falls back to Anthropic.
#
# There is no tool use and no retry loop here: a summary is a single
# prompt → single answer, and a failed summary just means the record is
# saved without one.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

# Anthropic SDK (fallback provider)
from anthropic import Anthropic

# OpenAI SDK (used for OpenRouter, which has an OpenAI-compatible API)
from openai import OpenAI

from utils.logger import logger


# ── PROVIDER SETTINGS ───────────────────────────────────────────────────
# Import from config so all settings live in one place.

from config.settings import (
    OPENROUTER_API_KEY, OPENROUTER_BASE_URL, OPENROUTER_MODEL,
    ANTHROPIC_API_KEY, ANTHROPIC_MODEL, MAX_TOKENS,
)

# Determine which provider is available.
# OpenRouter is preferred (primary); Anthropic is the fallback.
USE_OPENROUTER = bool(OPENROUTER_API_KEY)
USE_ANTHROPIC = bool(ANTHROPIC_API_KEY)


# ── SET UP LLM CLIENTS ─────────────────────────────────────────────────

openrouter_client = None
if USE_OPENROUTER:
    openrouter_client = OpenAI(
        base_url=OPENROUTER_BASE_URL,
        api_key=OPENROUTER_API_KEY,
    )

anthropic_client = None
if USE_ANTHROPIC:
    anthropic_client = Anthropic(api_key=ANTHROPIC_API_KEY)


def describe_providers() -> list[str]:
    """One line per configured provider, for startup logging."""
    lines = []
    if USE_OPENROUTER:
        lines.append(f"Primary provider: OpenRouter ({OPENROUTER_MODEL})")
    if USE_ANTHROPIC:
        label = "Fallback" if USE_OPENROUTER else "Primary"
        lines.append(f"{label} provider: Anthropic ({ANTHROPIC_MODEL})")
    return lines


# ── THE BASE AGENT CLASS ──────────────────────────────────────────────

class BaseAgent:
    """
    The shared foundation for LLM-backed helpers.

    Subclasses set `system_prompt` and call run() with a user prompt.
    """

    def __init__(self):
        self.system_prompt = "You are a helpful assistant."

    # ── LLM CALL METHODS ─────────────────────────────────────────────

    def _call_openrouter(self, prompt: str) -> str:
        """Call the LLM via OpenRouter and return the answer text."""
        response = openrouter_client.chat.completions.create(
            model=OPENROUTER_MODEL,
            max_tokens=MAX_TOKENS,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
        )
        return response.choices[0].message.content or ""

    def _call_anthropic(self, prompt: str) -> str:
        """Call the LLM via the Anthropic API and return the answer text."""
        response = anthropic_client.messages.create(
            model=ANTHROPIC_MODEL,
            max_tokens=MAX_TOKENS,
            system=self.system_prompt,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(
            block.text for block in response.content
            if getattr(block, 'type', None) == 'text'
        )

    def _call_llm(self, prompt: str) -> str:
        """
        Call the LLM with automatic provider fallback.

        Strategy:
          1. If OpenRouter is configured, try it first.
          2. If OpenRouter fails and Anthropic is available, fall back.
          3. If only Anthropic is configured, use it directly.
        """
        if USE_OPENROUTER and openrouter_client:
            try:
                return self._call_openrouter(prompt)
            except Exception as e:
                if USE_ANTHROPIC and anthropic_client:
                    logger.warn("OpenRouter failed, switching to Anthropic", error=str(e))
                    return self._call_anthropic(prompt)
                raise

        if USE_ANTHROPIC and anthropic_client:
            return self._call_anthropic(prompt)

        raise RuntimeError(
            "No LLM provider available. Set OPENROUTER_API_KEY or ANTHROPIC_API_KEY in .env"
        )

    def run(self, prompt: str) -> str:
        """Send one prompt, return the stripped answer text."""
        return self._call_llm(prompt).strip()
