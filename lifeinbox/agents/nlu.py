"""
Natural-language understanding collaborators.
A collaborator turns a prompt into free text; the query planner owns parsing and fallback.
"""

from abc import ABC, abstractmethod

import ollama

from ..util.logging import logger


class NLUnderstanding(ABC):
    """Abstract prompt-in, text-out capability used for query enhancement."""

    @abstractmethod
    def analyze(self, prompt: str) -> str:
        """
        Run a prompt and return the raw model output.

        Implementations may raise on transport or model errors; callers are
        expected to fall back.
        """
        pass


class OllamaUnderstanding(NLUnderstanding):
    """
    NL understanding backed by a local Ollama chat model.
    The HTTP client carries a timeout so a stuck model cannot hold a search.
    """

    def __init__(self, model_name: str, host: str = None, timeout: float = None,
                 system_prompt: str = "You are a search query analyzer. Respond with JSON only."):
        self.model_name = model_name
        self.system_prompt = system_prompt
        self.client = ollama.Client(host=host, timeout=timeout)

    def analyze(self, prompt: str) -> str:
        messages = []
        if self.system_prompt:
            messages.append({'role': 'system', 'content': self.system_prompt})
        messages.append({'role': 'user', 'content': prompt})

        try:
            response = self.client.chat(
                model=self.model_name,
                messages=messages,
                options={
                    'temperature': 0.3,  # low: structured output
                    'top_p': 0.9
                }
            )
        except ollama.ResponseError as e:
            logger.log_degraded_dependency("ollama", str(e), {"model": self.model_name})
            raise

        return response.get('message', {}).get('content', '')
