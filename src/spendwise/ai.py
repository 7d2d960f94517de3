"""
Spendwise - Gemini client

Shared plumbing for the Gemini-backed receipt scanner and financial advisor:
lazy model construction, empty/blocked response handling and JSON extraction
from free-form model output.

Author: Spendwise contributors
License: MIT
"""

import json
import logging

import google.generativeai as genai

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"


class AIServiceError(Exception):
    """Raised when Gemini is not configured or returns no usable answer."""


def extract_json(text):
    """
    Pull the first JSON object out of a model answer.

    Models wrap JSON in prose or ``` fences; everything outside the outermost
    braces is dropped.

    Raises:
        AIServiceError: If no JSON object can be decoded
    """
    start = (text or "").find("{")
    end = (text or "").rfind("}")
    if start == -1 or end == -1:
        raise AIServiceError("Response did not contain a JSON object")
    try:
        return json.loads(text[start:end + 1])
    except ValueError as e:
        raise AIServiceError(f"Invalid JSON in response: {e}") from None


class GeminiClient:
    """Base class for Gemini collaborators. Disabled when no API key is set."""

    generation_config = {"temperature": 0.4}

    def __init__(self, api_key=None, model_name=DEFAULT_MODEL):
        self.api_key = api_key
        self.model_name = model_name
        self._model = None
        if api_key:
            genai.configure(api_key=api_key)

    @property
    def enabled(self):
        return bool(self.api_key)

    def _get_model(self):
        if self._model is None:
            self._model = genai.GenerativeModel(
                model_name=self.model_name,
                generation_config=self.generation_config,
            )
        return self._model

    def generate(self, contents):
        """
        Send a prompt (or a list of prompt parts) and return the answer text.

        Raises:
            AIServiceError: When disabled, on provider errors, or on an empty answer
        """
        if not self.enabled:
            raise AIServiceError("AI features are not configured (GOOGLE_API_KEY is not set)")
        try:
            response = self._get_model().generate_content(contents)
        except Exception as e:
            logger.error("[AI] %s request failed: %s", type(self).__name__, e)
            raise AIServiceError(f"AI provider error: {e}") from e
        if not response.parts:
            logger.warning("[AI] Empty or blocked response for %s", type(self).__name__)
            raise AIServiceError("AI provider returned an empty response")
        return response.text.strip()
