"""
Gemini AI client used for CIF parsing and paper generation
"""
import google.generativeai as genai
import logging
import random
import time
from typing import Optional

from papergen.errors import ConfigurationError, GeneratorError

logger = logging.getLogger(__name__)

# Error fragments that indicate the request is worth retrying
_RETRYABLE_MARKERS = ("429", "503", "UNAVAILABLE", "RESOURCE_EXHAUSTED", "rate limit")


class GeminiService:
    """
    Thin wrapper around a Gemini model: prompt in, raw response text out.

    The response is untrusted text; callers are responsible for parsing it.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str = "gemini-2.5-flash",
        timeout: float = 120.0,
        max_retries: int = 3,
        initial_delay: float = 2.0,
    ):
        if not api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Add it to your .env file."
            )
        genai.configure(api_key=api_key)
        self.model_name = model_name
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.initial_delay = initial_delay
        self.model = genai.GenerativeModel(model_name)
        logger.info(f"Gemini client initialized (model={model_name}, timeout={timeout}s)")

    def generate(self, prompt: str, temperature: Optional[float] = None) -> str:
        """
        Generate a completion for the prompt

        Retries with exponential backoff on rate-limit / overload errors.

        Raises:
            GeneratorError: network, auth, timeout or empty response
        """
        generation_config = {"temperature": temperature} if temperature is not None else None
        delay = self.initial_delay

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.model.generate_content(
                    prompt,
                    generation_config=generation_config,
                    request_options={"timeout": self.timeout},
                )
                text = response.text
                if not text or not text.strip():
                    raise GeneratorError("Gemini returned an empty response")
                logger.info(f"Gemini response received ({len(text)} chars)")
                return text

            except GeneratorError:
                raise
            except Exception as e:
                message = str(e)
                retryable = any(marker in message for marker in _RETRYABLE_MARKERS)
                if retryable and attempt < self.max_retries:
                    wait_time = delay + random.uniform(0, 1)
                    logger.warning(
                        f"Gemini API busy (attempt {attempt}/{self.max_retries}), "
                        f"retrying in {wait_time:.2f}s: {message}"
                    )
                    time.sleep(wait_time)
                    delay *= 2
                    continue

                logger.error(f"Gemini generation failed: {message}")
                if "API_KEY" in message or "API key" in message:
                    raise GeneratorError("GEMINI_API_KEY is invalid") from e
                if "quota" in message.lower():
                    raise GeneratorError("Gemini API quota exceeded. Please try again later.") from e
                raise GeneratorError(f"Gemini generation failed: {message}") from e

        raise GeneratorError("Gemini generation failed after retries")
