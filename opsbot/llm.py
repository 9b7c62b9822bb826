# opsbot/llm.py

import logging

import httpx

from .config import Settings

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """The model call failed (network, HTTP status, timeout or bad payload)."""


class OllamaClient:
    """
    One prompt in, one completion out, via Ollama's /api/generate.
    A single AsyncClient is shared by all in-flight requests.
    """

    def __init__(self, base_url: str, model: str, timeout: float = 60.0,
                 client: httpx.AsyncClient | None = None):
        self.model = model
        self._url = base_url.rstrip("/") + "/api/generate"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaClient":
        return cls(settings.ollama_url, settings.ollama_model, settings.llm_timeout)

    async def generate(self, prompt: str) -> str:
        try:
            resp = await self._client.post(
                self._url,
                json={"model": self.model, "prompt": prompt, "stream": False},
            )
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Ollama API error: %s", e)
            raise GenerationError(f"Model call failed: {e}") from e

        text = body.get("response") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise GenerationError("Model returned no text completion")
        return text.strip()

    async def aclose(self) -> None:
        await self._client.aclose()
