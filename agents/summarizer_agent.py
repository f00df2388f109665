# agents/summarizer_agent.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Turns the user's reply to a reminder into a short summary that gets
# saved on the ReminderRecord.
#
# The prompt is built from three pieces:
#   1. Context about the commitment (name, tags, matching goals), if known
#   2. The template's custom summary prompt, if it has one. A "{reply}"
#      placeholder in it is replaced with the reply; otherwise the reply
#      is appended underneath.
#   3. The default instruction, when there is no custom prompt
#
# summarize() NEVER raises. Any failure returns None and the reply is saved
# without a summary.
# ============================================================================

from agents.base_agent import BaseAgent
from utils.logger import logger


DEFAULT_PROMPT = (
    "Summarize the following accountability update concisely (2-3 sentences max). "
    "Focus on what was accomplished, any blockers, and next steps if mentioned."
)


SUMMARIZER_SYSTEM_PROMPT = """You summarize short personal accountability updates.

The user replied to a reminder about one of their commitments. Write a brief,
factual summary of what they reported. Do not invent details, do not give
advice, and do not add a preamble like "Here is a summary". Plain text only."""


def build_prompt(text: str, context: dict | None = None, custom_prompt: str | None = None) -> str:
    parts = []

    if context:
        if context.get('name'):
            parts.append(f"Commitment: {context['name']}")
        if context.get('tags'):
            parts.append(f"Tags: {', '.join(context['tags'])}")
        if context.get('goals'):
            parts.append(context['goals'])
        if parts:
            parts.append('')

    if custom_prompt and custom_prompt.strip():
        if '{reply}' in custom_prompt:
            parts.append(custom_prompt.replace('{reply}', text))
        else:
            parts.append(custom_prompt.strip())
            parts.append('')
            parts.append(text)
    else:
        parts.append(DEFAULT_PROMPT)
        parts.append('')
        parts.append(text)

    return '\n'.join(parts)


class SummarizerAgent(BaseAgent):
    """Summarizer collaborator for the reply flow."""

    def __init__(self):
        super().__init__()
        self.system_prompt = SUMMARIZER_SYSTEM_PROMPT

    def summarize(self, text: str, context: dict | None = None,
                  custom_prompt: str | None = None) -> str | None:
        if not text or not text.strip():
            return None

        prompt = build_prompt(text, context, custom_prompt)
        logger.debug("Requesting summary", prompt_chars=len(prompt))

        try:
            summary = self.run(prompt)
        except Exception as e:
            logger.error("Summarization failed", error=str(e))
            return None

        if not summary:
            logger.warn("Summarizer returned an empty answer")
            return None

        logger.debug("Summary generated", chars=len(summary))
        return summary
