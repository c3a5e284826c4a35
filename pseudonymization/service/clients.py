# pseudonymization/service/clients.py

"""Clients for the entity-extraction and language-model collaborators.

Both are treated as opaque transforms: the extraction service turns an
uploaded HOCR file into an annotated document, and the language model turns
text into rewritten text. Neither call is retried.
"""

import logging
from typing import Any, Optional

import openai
import requests
from openai import OpenAI

from pseudonymization.core.domain import HocrDocument
from pseudonymization.core.exceptions import ConfigurationError, ExternalServiceError
from pseudonymization.service.config import Settings

logger = logging.getLogger(__name__)

EXTRACTION = "entity-extraction"
LANGUAGE_MODEL = "language-model"


class EntityExtractionClient:
    """Uploads an HOCR document and returns the annotated response."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ConfigurationError("Entity extraction endpoint not configured")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings) -> "EntityExtractionClient":
        return cls(
            url=settings.extraction_url or "",
            api_key=settings.extraction_api_key,
            timeout=settings.request_timeout,
        )

    def extract(self, document: HocrDocument) -> Any:
        """Sends the document as a file upload.

        Returns:
            Parsed JSON for JSON responses, otherwise the response text

        Raises:
            ExternalServiceError: On transport errors, non-2xx status, or an
                unparseable JSON body.
        """
        headers = {"Accept": "application/json, text/html;q=0.9"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        files = {
            "file": ("document.hocr", document.markup.encode("utf-8"), "text/html")
        }

        try:
            response = self._session.post(
                self.url, files=files, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error("Entity extraction request failed", exc_info=True)
            raise ExternalServiceError(
                f"Entity extraction request failed: {e}", service=EXTRACTION
            ) from e

        if not response.ok:
            logger.error(
                "Entity extraction returned an error status",
                extra={"status_code": response.status_code},
            )
            raise ExternalServiceError(
                f"Entity extraction error: {response.status_code}",
                service=EXTRACTION,
                status_code=response.status_code,
            )

        content_type = response.headers.get("Content-Type", "")
        logger.info(
            "Entity extraction completed",
            extra={"content_type": content_type, "word_count": document.word_count},
        )

        if "json" in content_type:
            try:
                return response.json()
            except ValueError as e:
                raise ExternalServiceError(
                    "Invalid JSON response from entity extraction service",
                    service=EXTRACTION,
                    status_code=response.status_code,
                ) from e

        return response.text


class LanguageModelClient:
    """Rewrites text through an OpenAI-compatible chat-completion endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: Optional[str] = None,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        timeout: float = 30.0,
        client: Optional[OpenAI] = None,
    ) -> None:
        if not api_key and client is None:
            raise ConfigurationError("OpenAI API key not configured")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or OpenAI(
            api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "LanguageModelClient":
        return cls(
            api_key=settings.openai_api_key or "",
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            timeout=settings.request_timeout,
        )

    def improve(self, text: str, prompt: str) -> str:
        """Returns the model's rewrite of ``text`` under ``prompt``.

        Raises:
            ExternalServiceError: If the call fails or the response has no
                message content.
        """
        try:
            completion = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": text},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                frequency_penalty=0.0,
                presence_penalty=0.0,
            )
        except openai.APIStatusError as e:
            logger.error(
                "Language model returned an error status",
                extra={"status_code": e.status_code},
            )
            raise ExternalServiceError(
                f"OpenAI API error: {e.status_code} - {e.message}",
                service=LANGUAGE_MODEL,
                status_code=e.status_code,
            ) from e
        except openai.OpenAIError as e:
            logger.error("Language model request failed", exc_info=True)
            raise ExternalServiceError(
                f"OpenAI API request failed: {e}", service=LANGUAGE_MODEL
            ) from e

        choices = getattr(completion, "choices", None)
        message = choices[0].message if choices else None
        if message is None or message.content is None:
            raise ExternalServiceError(
                "Invalid response format from OpenAI API", service=LANGUAGE_MODEL
            )

        logger.info(
            "Language model rewrite completed",
            extra={"text_length": len(text), "model": self.model},
        )
        return message.content.strip()
