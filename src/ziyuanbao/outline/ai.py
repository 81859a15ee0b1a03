"""
AI Outline Module - Delegate outline extraction to Gemini.
=========================================================

Sends stored course-content HTML to a Gemini model with an instruction to
reply with the outline JSON, then parses the reply through
CourseOutline.from_json (which strips code fences and accepts either key
language).

- Transport errors are retried with exponential backoff
- A reply that isn't outline JSON raises OutlineError with the raw text
- The caller persists nothing unless an outline comes back
"""

from typing import Any, Optional

from google import genai
from google.genai import types
from tenacity import (
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ziyuanbao.outline.prompts import SYSTEM_PROMPT, build_outline_prompt
from ziyuanbao.shared.config import Settings, get_settings
from ziyuanbao.shared.errors import ConfigurationError, OutlineError
from ziyuanbao.shared.logging import get_logger
from ziyuanbao.shared.schemas import CourseOutline

logger = get_logger(__name__)


class OutlineGenerator:
    """
    Gemini-backed course outline extractor.

    The google-genai client is created lazily on first use, or injected
    (tests pass a fake exposing ``models.generate_content``).

    Example:
        >>> generator = OutlineGenerator()
        >>> outline = generator.generate(resource.course_html)
        >>> print(outline.summary().total_duration)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[Any] = None,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        api_key: Optional[str] = None,
    ):
        """
        Initialize the generator.

        Args:
            settings: Settings to read defaults from (cached settings if None)
            client: Pre-built google-genai client
            model_name: Gemini model name (default from config)
            temperature: Generation temperature (default from config)
            api_key: Gemini API key (default from GEMINI_API_KEY)
        """
        settings = settings or get_settings()
        gen_config = settings.generation

        self.model_name = model_name or settings.get_effective_model()
        self.temperature = temperature if temperature is not None else gen_config.temperature
        self.max_tokens = gen_config.max_output_tokens
        self.max_retries = max(1, gen_config.max_retries)
        self.max_input_chars = gen_config.max_input_chars
        self.api_key = api_key or settings.gemini_api_key

        self._client = client

        logger.debug(
            f"OutlineGenerator initialized: model={self.model_name}, temp={self.temperature}"
        )

    @property
    def client(self) -> Any:
        """Lazy-load the Gemini client."""
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "Gemini API key not found. Set GEMINI_API_KEY environment variable."
                )
            self._client = genai.Client(api_key=self.api_key)
            logger.info(f"Gemini client initialized for model: {self.model_name}")
        return self._client

    def _generate_content(self, prompt: str) -> str:
        """Call the model with retry on transport errors."""
        config = types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            temperature=self.temperature,
            max_output_tokens=self.max_tokens,
        )

        for attempt in Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_not_exception_type(ConfigurationError),
            reraise=True,
        ):
            with attempt:
                response = self.client.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=config,
                )
        return response.text or ""

    def generate(self, course_html: str) -> CourseOutline:
        """
        Extract an outline from course-content HTML.

        Args:
            course_html: Raw course-content HTML

        Returns:
            Canonical CourseOutline

        Raises:
            ConfigurationError: If no API key is configured
            OutlineError: If the call fails or the reply isn't outline JSON
        """
        if not course_html or not course_html.strip():
            raise OutlineError("No course content to send for outline extraction")

        prompt = build_outline_prompt(course_html, max_chars=self.max_input_chars)
        logger.info(f"Requesting AI outline ({len(course_html)} chars of HTML)")

        try:
            text = self._generate_content(prompt)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"AI outline request failed: {e}")
            raise OutlineError(f"AI outline request failed: {e}") from e

        outline = CourseOutline.from_json(text)
        if outline.is_empty:
            raise OutlineError("AI reply contained no chapters", raw_response=text)

        summary = outline.summary()
        logger.info(
            f"AI outline: {summary.total_chapters} chapters, "
            f"{summary.total_lectures} lectures"
        )
        return outline
