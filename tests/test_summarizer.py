# tests/test_summarizer.py
#
# Tests for the summarizer: how the prompt is assembled, the OpenRouter →
# Anthropic fallback in BaseAgent, and that summarize() never raises.
# We mock the LLM clients so no real API calls are made.

import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from agents.base_agent import BaseAgent
from agents.summarizer_agent import DEFAULT_PROMPT, SummarizerAgent, build_prompt


def _openai_response(text):
    response = MagicMock()
    response.choices[0].message.content = text
    return response


def _anthropic_response(text):
    block = MagicMock()
    block.type = "text"
    block.text = text
    response = MagicMock()
    response.content = [block]
    return response


class TestBuildPrompt:

    def test_default_prompt_then_reply(self):
        prompt = build_prompt("Ran 5k.")
        assert prompt == f"{DEFAULT_PROMPT}\n\nRan 5k."

    def test_custom_prompt_with_placeholder(self):
        prompt = build_prompt("Ran 5k.", custom_prompt="Rate this effort: {reply}")
        assert prompt == "Rate this effort: Ran 5k."

    def test_custom_prompt_without_placeholder_appends_reply(self):
        prompt = build_prompt("Ran 5k.", custom_prompt="One sentence only.")
        assert prompt == "One sentence only.\n\nRan 5k."

    def test_blank_custom_prompt_falls_back_to_default(self):
        assert build_prompt("Ran 5k.", custom_prompt="   ").startswith(DEFAULT_PROMPT)

    def test_context_comes_first(self):
        context = {
            'name': "Running",
            'tags': ["health", "fitness"],
            'goals': "Relevant goals:\n- Run a half marathon",
        }
        prompt = build_prompt("Ran 5k.", context=context)

        assert prompt.startswith(
            "Commitment: Running\n"
            "Tags: health, fitness\n"
            "Relevant goals:\n- Run a half marathon\n"
        )
        assert prompt.endswith("Ran 5k.")

    def test_empty_context_adds_nothing(self):
        assert build_prompt("Ran 5k.", context={'name': '', 'tags': [], 'goals': ''}) == \
            build_prompt("Ran 5k.")


class TestSummarize:

    def setup_method(self):
        self.agent = SummarizerAgent()

    @patch.object(SummarizerAgent, 'run', return_value="Ran 5k before work.")
    def test_returns_summary(self, mock_run):
        assert self.agent.summarize("Ran 5k.") == "Ran 5k before work."
        mock_run.assert_called_once()

    @patch.object(SummarizerAgent, 'run', side_effect=RuntimeError("provider down"))
    def test_failure_returns_none(self, mock_run):
        assert self.agent.summarize("Ran 5k.") is None

    @patch.object(SummarizerAgent, 'run', return_value="")
    def test_empty_answer_returns_none(self, mock_run):
        assert self.agent.summarize("Ran 5k.") is None

    @patch.object(SummarizerAgent, 'run')
    def test_blank_text_skips_the_call(self, mock_run):
        assert self.agent.summarize("   ") is None
        mock_run.assert_not_called()

    @patch('agents.base_agent.USE_ANTHROPIC', False)
    @patch('agents.base_agent.USE_OPENROUTER', False)
    def test_no_provider_returns_none(self):
        assert self.agent.summarize("Ran 5k.") is None


class TestProviderFallback:
    """BaseAgent._call_llm tries OpenRouter first, then Anthropic. No retries."""

    def setup_method(self):
        self.agent = BaseAgent()

    @patch('agents.base_agent.anthropic_client')
    @patch('agents.base_agent.openrouter_client')
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.USE_OPENROUTER', True)
    def test_openrouter_success(self, mock_openrouter, mock_anthropic):
        mock_openrouter.chat.completions.create.return_value = _openai_response(" Summary. ")

        assert self.agent.run("prompt") == "Summary."
        mock_anthropic.messages.create.assert_not_called()

    @patch('agents.base_agent.anthropic_client')
    @patch('agents.base_agent.openrouter_client')
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.USE_OPENROUTER', True)
    def test_falls_back_to_anthropic(self, mock_openrouter, mock_anthropic):
        mock_openrouter.chat.completions.create.side_effect = Exception("502 Bad Gateway")
        mock_anthropic.messages.create.return_value = _anthropic_response("From Claude.")

        assert self.agent.run("prompt") == "From Claude."
        assert mock_openrouter.chat.completions.create.call_count == 1
        assert mock_anthropic.messages.create.call_count == 1

    @patch('agents.base_agent.openrouter_client')
    @patch('agents.base_agent.USE_ANTHROPIC', False)
    @patch('agents.base_agent.USE_OPENROUTER', True)
    def test_openrouter_failure_without_fallback_raises(self, mock_openrouter):
        mock_openrouter.chat.completions.create.side_effect = Exception("429")

        with pytest.raises(Exception, match="429"):
            self.agent.run("prompt")

        # A single attempt: failures are not retried here.
        assert mock_openrouter.chat.completions.create.call_count == 1

    @patch('agents.base_agent.anthropic_client')
    @patch('agents.base_agent.USE_ANTHROPIC', True)
    @patch('agents.base_agent.USE_OPENROUTER', False)
    def test_anthropic_only(self, mock_anthropic):
        mock_anthropic.messages.create.return_value = _anthropic_response("Only Claude.")

        assert self.agent.run("prompt") == "Only Claude."
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs['messages'] == [{"role": "user", "content": "prompt"}]
        assert kwargs['system'] == self.agent.system_prompt
