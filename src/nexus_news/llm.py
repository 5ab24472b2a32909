from __future__ import annotations

from typing import Any, Optional

from openai import OpenAI


class JudgementModel:
    """Chat-completions client that always asks for a JSON object reply."""

    def __init__(
        self,
        provider: str,
        openai_api_key: Optional[str],
        openai_model: str,
        deepseek_api_key: Optional[str] = None,
        deepseek_model: str = "deepseek-chat",
        deepseek_base_url: str = "https://api.deepseek.com",
        deepseek_strict_model: bool = True,
        timeout: int = 15,
    ):
        self.provider = provider.lower()
        self.model = openai_model
        self.deepseek_strict_model = deepseek_strict_model
        self.client = None

        if self.provider == "openai" and openai_api_key:
            self.client = OpenAI(api_key=openai_api_key, timeout=timeout)
        elif self.provider == "deepseek" and deepseek_api_key:
            self.model = deepseek_model
            self.client = OpenAI(api_key=deepseek_api_key, base_url=deepseek_base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Any) -> "JudgementModel":
        return cls(
            provider=settings.analysis_provider,
            openai_api_key=settings.openai_api_key,
            openai_model=settings.openai_model,
            deepseek_api_key=settings.deepseek_api_key,
            deepseek_model=settings.deepseek_model,
            deepseek_base_url=settings.deepseek_base_url,
            deepseek_strict_model=settings.deepseek_strict_model,
            timeout=settings.request_timeout_sec,
        )

    def _model_candidates(self) -> list[str]:
        if self.provider == "deepseek" and not self.deepseek_strict_model:
            unique: list[str] = []
            for model in [self.model, "deepseek-chat", "deepseek-reasoner"]:
                if model and model not in unique:
                    unique.append(model)
            return unique
        return [self.model]

    def generate_json(self, prompt: str, system: Optional[str] = None, temperature: float = 0.2) -> str:
        if self.client is None:
            raise RuntimeError(f"Language model provider '{self.provider}' is not configured")

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        completion = None
        last_error: Optional[Exception] = None
        for model in self._model_candidates():
            try:
                completion = self.client.chat.completions.create(
                    model=model,
                    temperature=temperature,
                    response_format={"type": "json_object"},
                    messages=messages,
                )
                break
            except Exception as exc:
                last_error = exc
                if "Model Not Exist" in str(exc):
                    continue
                raise
        if completion is None:
            raise RuntimeError(f"LLM completion failed: {last_error}")
        return completion.choices[0].message.content or ""
