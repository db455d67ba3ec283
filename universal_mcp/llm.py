"""
Text Generation — unified client over the configured LLM providers

Providers:
- OpenAI (chat completions)
- Google Gemini
- Anthropic Claude
- Hugging Face Inference API (plain HTTP)

A provider is available when its API key is configured. No automatic
fallback: asking for a provider that is not configured raises
ProviderUnavailable, and a remote failure raises ProviderError.
"""

import asyncio
import json
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import anthropic
import google.generativeai as genai
import httpx
import openai

from .config import Config
from .errors import DispatchError, ProviderError, ProviderUnavailable
from .logger import get_logger

log = get_logger("llm")

DEFAULT_SYSTEM_PROMPT = "You are a helpful and precise assistant."

QUERY_SYSTEM_PROMPT = """You are a MongoDB expert. Convert natural-language requests into MongoDB operations.

COLLECTION SCHEMA:
{schema}

INSTRUCTIONS:
- Return ONLY the MongoDB code, without explanations
- Use correct MongoDB syntax
- Use an aggregation pipeline for complex queries
- Keep the query efficient

Response formats:
- find: db.collection.find({{field: value}})
- aggregation: db.collection.aggregate([{{$match: {{}}}}, {{$group: {{}}}}])
- count: db.collection.countDocuments({{}})
"""

ANALYSIS_SYSTEM_PROMPT = """You are an expert data analyst. Analyze the data provided and answer the question.

INSTRUCTIONS:
- Give precise answers grounded in the data
- Include specific numbers where relevant
- Point out interesting patterns
- Be concise but informative
"""

_FENCE = re.compile(r"^```[a-zA-Z]*\n?|\n?```$")


class Provider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"
    HUGGINGFACE = "huggingface"


@dataclass
class ProviderSettings:
    provider: Provider
    model: str
    max_tokens: int

    def to_dict(self) -> Dict[str, Any]:
        return {"model": self.model, "maxTokens": self.max_tokens}


def load_api_keys() -> Dict[str, str]:
    """API keys from configuration (environment / .env)."""
    keys = {
        Provider.OPENAI.value: Config.OPENAI_API_KEY,
        Provider.GEMINI.value: Config.GOOGLE_API_KEY,
        Provider.ANTHROPIC.value: Config.ANTHROPIC_API_KEY,
        Provider.HUGGINGFACE.value: Config.HUGGINGFACE_API_KEY,
    }
    return {k: v for k, v in keys.items() if v}


def default_settings() -> Dict[Provider, ProviderSettings]:
    return {
        Provider.OPENAI: ProviderSettings(Provider.OPENAI, Config.OPENAI_MODEL, Config.OPENAI_MAX_TOKENS),
        Provider.GEMINI: ProviderSettings(Provider.GEMINI, Config.GEMINI_MODEL, Config.GEMINI_MAX_TOKENS),
        Provider.ANTHROPIC: ProviderSettings(
            Provider.ANTHROPIC, Config.ANTHROPIC_MODEL, Config.ANTHROPIC_MAX_TOKENS
        ),
        Provider.HUGGINGFACE: ProviderSettings(
            Provider.HUGGINGFACE, Config.HUGGINGFACE_MODEL, Config.HUGGINGFACE_MAX_TOKENS
        ),
    }


def strip_code_fence(text: str) -> str:
    return _FENCE.sub("", text.strip()).strip()


class TextGenerator:
    """
    Unified text-generation client.

    The OpenAI, Anthropic and Gemini SDK clients are synchronous; their calls
    run in the default executor. Hugging Face is called over httpx.
    """

    def __init__(
        self,
        api_keys: Optional[Dict[str, str]] = None,
        default_provider: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ):
        self.api_keys = api_keys if api_keys is not None else load_api_keys()
        self.default_provider = default_provider or Config.DEFAULT_PROVIDER
        self.timeout_s = timeout_s or Config.PROVIDER_TIMEOUT_S
        self._settings = default_settings()
        self._clients: Dict[Provider, Any] = {}
        self._init_clients()

    def _init_clients(self):
        """Initialize a client for every provider that has a key."""
        if self.api_keys.get(Provider.OPENAI.value):
            try:
                self._clients[Provider.OPENAI] = openai.OpenAI(api_key=self.api_keys["openai"])
            except openai.OpenAIError as e:
                log.warning(f"Could not initialize OpenAI client: {e}")

        if self.api_keys.get(Provider.ANTHROPIC.value):
            try:
                self._clients[Provider.ANTHROPIC] = anthropic.Anthropic(
                    api_key=self.api_keys["anthropic"]
                )
            except anthropic.AnthropicError as e:
                log.warning(f"Could not initialize Anthropic client: {e}")

        if self.api_keys.get(Provider.GEMINI.value):
            genai.configure(api_key=self.api_keys["gemini"])
            self._clients[Provider.GEMINI] = genai

        if self.api_keys.get(Provider.HUGGINGFACE.value):
            self._clients[Provider.HUGGINGFACE] = httpx.AsyncClient(
                base_url=Config.HUGGINGFACE_API_URL,
                headers={"Authorization": f"Bearer {self.api_keys['huggingface']}"},
                timeout=self.timeout_s,
            )

        for prov in self._clients:
            log.info(f"Provider ready: {prov.value} ({self._settings[prov].model})")

    def register_client(
        self,
        provider: str,
        client: Any,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ):
        """Install a pre-built client for a provider (replaces any existing one)."""
        prov = Provider(provider)
        settings = self._settings[prov]
        self._settings[prov] = ProviderSettings(
            prov, model or settings.model, max_tokens or settings.max_tokens
        )
        self._clients[prov] = client

    async def close(self):
        client = self._clients.get(Provider.HUGGINGFACE)
        if isinstance(client, httpx.AsyncClient):
            await client.aclose()
        self._clients.clear()

    # ── queries ──────────────────────────────────────────────────

    @property
    def available(self) -> bool:
        return bool(self._clients)

    def available_providers(self) -> List[str]:
        return [p.value for p in self._clients]

    def is_available(self, provider: str) -> bool:
        try:
            return Provider(provider) in self._clients
        except ValueError:
            return False

    def provider_info(self, provider: str) -> Optional[Dict[str, Any]]:
        if not self.is_available(provider):
            return None
        return self._settings[Provider(provider)].to_dict()

    def get_status(self) -> Dict[str, Any]:
        return {
            "defaultProvider": self.default_provider,
            "availableProviders": self.available_providers(),
            "providers": {p: self.provider_info(p) for p in self.available_providers()},
        }

    def _resolve(self, provider: Optional[str]) -> Provider:
        if not self._clients:
            raise ProviderUnavailable("No text-generation provider is configured")

        if provider is None:
            if self.is_available(self.default_provider):
                return Provider(self.default_provider)
            return next(iter(self._clients))

        try:
            prov = Provider(provider)
        except ValueError:
            raise ProviderUnavailable(
                f"Unknown provider: {provider}", {"available": self.available_providers()}
            )
        if prov not in self._clients:
            raise ProviderUnavailable(
                f"Provider not available: {provider}",
                {"provider": provider, "available": self.available_providers()},
            )
        return prov

    # ── generation ───────────────────────────────────────────────

    async def generate(
        self,
        prompt: str,
        provider: Optional[str] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
    ) -> str:
        """
        Generate text with one provider.

        Args:
            prompt: User message
            provider: Provider name (or None for the default)
            system_prompt: System/instruction prompt
            temperature: Sampling temperature (default 0.7)
            max_tokens: Maximum response tokens (default per provider)
            top_p: Nucleus sampling

        Returns:
            The generated text
        """
        prov = self._resolve(provider)
        settings = self._settings[prov]
        options = {
            "system_prompt": system_prompt or DEFAULT_SYSTEM_PROMPT,
            "temperature": 0.7 if temperature is None else temperature,
            "max_tokens": max_tokens or settings.max_tokens,
            "top_p": top_p,
        }

        handlers = {
            Provider.OPENAI: self._generate_openai,
            Provider.GEMINI: self._generate_gemini,
            Provider.ANTHROPIC: self._generate_anthropic,
            Provider.HUGGINGFACE: self._generate_huggingface,
        }

        start = time.time()
        try:
            text = await asyncio.wait_for(
                handlers[prov](prompt, settings.model, **options), timeout=self.timeout_s
            )
        except DispatchError:
            raise
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"{prov.value} timed out after {self.timeout_s}s", {"provider": prov.value}
            ) from exc
        except Exception as exc:
            log.error(f"{prov.value} generation failed: {exc}")
            raise ProviderError(
                f"{prov.value} generation failed: {exc}", {"provider": prov.value}
            ) from exc

        latency_ms = int((time.time() - start) * 1000)
        log.info(f"{prov.value}/{settings.model}: {len(text)} chars in {latency_ms}ms")
        return text

    async def _run_sync(self, fn):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    async def _generate_openai(self, prompt, model, system_prompt, temperature, max_tokens, top_p):
        client = self._clients[Provider.OPENAI]
        response = await self._run_sync(
            lambda: client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=1 if top_p is None else top_p,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            )
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def _generate_anthropic(self, prompt, model, system_prompt, temperature, max_tokens, top_p):
        client = self._clients[Provider.ANTHROPIC]
        kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": prompt}],
        }
        if top_p is not None:
            kwargs["top_p"] = top_p
        response = await self._run_sync(lambda: client.messages.create(**kwargs))
        return response.content[0].text if response.content else ""

    async def _generate_gemini(self, prompt, model, system_prompt, temperature, max_tokens, top_p):
        client = self._clients[Provider.GEMINI]
        full_prompt = f"{system_prompt}\n\nUser: {prompt}\nAssistant:"
        gemini_model = client.GenerativeModel(model)
        response = await self._run_sync(
            lambda: gemini_model.generate_content(
                full_prompt,
                generation_config=genai.types.GenerationConfig(
                    max_output_tokens=max_tokens,
                    temperature=temperature,
                    top_p=1 if top_p is None else top_p,
                ),
            )
        )
        return response.text or ""

    async def _generate_huggingface(self, prompt, model, system_prompt, temperature, max_tokens, top_p):
        client = self._clients[Provider.HUGGINGFACE]
        full_prompt = f"<s>[INST] <<SYS>>\n{system_prompt}\n<</SYS>>\n\n{prompt} [/INST]"
        resp = await client.post(
            f"/{model}",
            json={
                "inputs": full_prompt,
                "parameters": {
                    "max_new_tokens": max_tokens,
                    "temperature": temperature,
                    "top_p": 0.9 if top_p is None else top_p,
                    "do_sample": True,
                    "return_full_text": False,
                },
            },
        )
        resp.raise_for_status()
        data = resp.json()
        if isinstance(data, list):
            data = data[0] if data else {}
        text = data.get("generated_text", "")
        return text.replace(full_prompt, "").strip()

    # ── task helpers ─────────────────────────────────────────────

    async def generate_query(
        self, request: str, schema: Dict[str, Any], provider: Optional[str] = None,
    ) -> str:
        """Translate a natural-language request into MongoDB code. Best effort, unverified."""
        system_prompt = QUERY_SYSTEM_PROMPT.format(schema=json.dumps(schema, indent=2, default=str))
        text = await self.generate(
            f'Convert this request to MongoDB: "{request}"',
            provider=provider,
            system_prompt=system_prompt,
            temperature=0.1,
        )
        return strip_code_fence(text)

    async def analyze_data(
        self, data: Any, question: str, provider: Optional[str] = None,
    ) -> str:
        prompt = (
            f"DATA:\n{json.dumps(data, indent=2, default=str)}\n\n"
            f"QUESTION: {question}\n\nANALYSIS:\n"
        )
        return await self.generate(
            prompt, provider=provider, system_prompt=ANALYSIS_SYSTEM_PROMPT, temperature=0.3,
        )
