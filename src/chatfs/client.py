# chatfs: Model bridge interface and a minimal HTTP client for the OpenAI/Azure Responses API.
# generate() always returns Generated, Blocked or ServiceFailure; transport problems never raise.

import os
import random
import time
from typing import Any, Dict, List, Optional, Union

import requests

from .config import MAX_COMPLETION_TOKENS
from .context import Context
from .models import Blocked, GenerateResult, Generated, ServiceFailure, Speaker, Turn
from .prompts import get_prompt

_ROLE = {Speaker.user: "user", Speaker.assistant: "assistant", Speaker.system: "system"}


class ModelBridge:
    """Contract consumed by the orchestrator: ordered call-history turns in, one result out."""

    def generate(self, turns: List[Turn]) -> GenerateResult:
        raise NotImplementedError


class ResponsesClient(ModelBridge):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        settings: Optional[Dict[str, Any]] = None,
        ctx: Optional[Context] = None,
        max_retries: int = 3,
        timeout: int = 300,
    ) -> None:
        """
        Initialize an HTTP client for the Responses API with provider autodetection.

        Provider selection precedence (highest first):
          1) Constructor args (api_key/model/base_url)
          2) settings['api'] values (provider, api_key, model, base_url)
          3) Environment
             - OpenAI: OPENAI_API_KEY, AI_MODEL, OPENAI_BASE_URL
             - Azure:  AZURE_OPENAI_API_KEY, AZURE_OPENAI_MODEL, AZURE_OPENAI_ENDPOINT

        Missing credentials do not raise here; they are recorded in configuration_error
        and every generate() call reports them as a ServiceFailure.
        """
        self.session = requests.Session()
        self.ctx = ctx
        self.max_retries = max_retries
        self.timeout = timeout
        self.configuration_error: Optional[str] = None

        api_cfg = (settings or {}).get("api") if isinstance(settings, dict) else None
        api_cfg = api_cfg if isinstance(api_cfg, dict) else {}

        provider: Optional[str] = str(api_cfg.get("provider") or "").strip().lower() or None

        def _looks_like_azure(url: Optional[str]) -> bool:
            if not url:
                return False
            u = url.lower()
            return ("azure.com" in u) or ("/openai/" in u)

        if provider not in ("azure", "openai"):
            if (os.environ.get("AZURE_OPENAI_API_KEY") or os.environ.get("AZURE_OPENAI_ENDPOINT")) or _looks_like_azure(base_url or api_cfg.get("base_url")):
                provider = "azure"
            else:
                provider = "openai"

        if provider == "azure":
            resolved_api_key = api_key or api_cfg.get("api_key") or os.environ.get("AZURE_OPENAI_API_KEY")
            resolved_model = model or api_cfg.get("model") or os.environ.get("AZURE_OPENAI_MODEL")
            endpoint = base_url or api_cfg.get("base_url") or os.environ.get("AZURE_OPENAI_ENDPOINT") or ""
            # Normalize to {endpoint}/openai/v1
            endpoint = endpoint.rstrip("/")
            if endpoint and not endpoint.endswith("/openai/v1"):
                endpoint = f"{endpoint}/v1" if endpoint.endswith("/openai") else f"{endpoint}/openai/v1"
            resolved_base_url = endpoint
            if not endpoint:
                self.configuration_error = "Azure provider selected but no endpoint provided (AZURE_OPENAI_ENDPOINT or settings.api.base_url)."
            elif not resolved_api_key:
                self.configuration_error = "Azure provider selected but no API key provided (AZURE_OPENAI_API_KEY or settings.api.api_key)."
            elif not resolved_model:
                self.configuration_error = "Azure provider selected but no model deployment provided (AZURE_OPENAI_MODEL or settings.api.model)."
            self.session.headers.update({"api-key": resolved_api_key or "", "Content-Type": "application/json"})
        else:
            resolved_api_key = api_key or api_cfg.get("api_key") or os.environ.get("OPENAI_API_KEY")
            resolved_model = model or api_cfg.get("model") or os.environ.get("AI_MODEL") or "gpt-5"
            resolved_base_url = base_url or api_cfg.get("base_url") or os.environ.get("OPENAI_BASE_URL") or "https://api.openai.com/v1"
            # Ensure /v1 suffix
            resolved_base_url = resolved_base_url.rstrip("/")
            if not resolved_base_url.endswith("/v1"):
                resolved_base_url = f"{resolved_base_url}/v1"
            if not resolved_api_key:
                self.configuration_error = "API key not set (OPENAI_API_KEY or settings.api.api_key)."
            self.session.headers.update({
                "Authorization": f"Bearer {resolved_api_key or ''}",
                "Content-Type": "application/json",
            })

        self.model = resolved_model
        self.base_url = resolved_base_url
        self.provider = provider

    def _log(self, message: str) -> None:
        if self.ctx is not None:
            self.ctx.log(message)

    def _make_payload(self, turns: List[Turn]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "instructions": get_prompt("system.txt"),
            "input": [{"type": "message", "role": _ROLE[t.speaker], "content": t.text} for t in turns],
            "max_output_tokens": MAX_COMPLETION_TOKENS,
        }

    def _log_usage(self, resp_obj: Dict[str, Any]) -> None:
        usage = resp_obj.get("usage") or {}

        def _as_int(v: Any) -> int:
            try:
                return int(v) if v is not None else 0
            except (TypeError, ValueError):
                return 0

        input_tokens = usage.get("input_tokens", usage.get("prompt_tokens"))
        output_tokens = usage.get("output_tokens", usage.get("completion_tokens"))
        self._log(f"Model usage: input_tokens={_as_int(input_tokens)}, output_tokens={_as_int(output_tokens)}")

    def _post(self, url: str, payload: Dict[str, Any]) -> Union[Dict[str, Any], ServiceFailure]:
        """POST with bounded retry on timeouts and HTTP 5xx. 4xx errors are not retried."""
        attempt = 0
        while True:
            attempt += 1
            try:
                r = self.session.post(url, json=payload, timeout=self.timeout)
            except requests.exceptions.Timeout as e:
                if attempt <= self.max_retries:
                    delay = self._backoff(attempt)
                    self._log(f"Responses API timeout on attempt {attempt}; retrying in {delay:.2f}s...")
                    time.sleep(delay)
                    continue
                return ServiceFailure(message=f"Responses API timeout after {attempt} attempt(s): {e}")
            except requests.exceptions.RequestException as e:
                return ServiceFailure(message=f"Responses API request failed: {e}")

            if r.status_code == 200:
                try:
                    return r.json()
                except ValueError as e:
                    return ServiceFailure(message=f"Responses API returned invalid JSON: {e}")
            if r.status_code >= 500 and attempt <= self.max_retries:
                delay = self._backoff(attempt)
                self._log(f"Responses API attempt {attempt} received {r.status_code}; retrying in {delay:.2f}s...")
                time.sleep(delay)
                continue
            return ServiceFailure(message=f"Responses API error {r.status_code}: {r.text[:2000]}")

    @staticmethod
    def _backoff(attempt: int) -> float:
        # Exponential backoff with jitter.
        base_delay = [1.0, 2.0, 4.0][min(attempt - 1, 2)]
        return base_delay * random.uniform(0.5, 1.5)

    def generate(self, turns: List[Turn]) -> GenerateResult:
        if self.configuration_error:
            return ServiceFailure(message=self.configuration_error)
        url = f"{self.base_url}/responses"
        self._log(f"Calling model {self.model} with {len(turns)} turn(s)...")
        resp = self._post(url, self._make_payload(turns))
        if isinstance(resp, ServiceFailure):
            return resp
        self._log_usage(resp)
        return parse_response(resp)


def parse_response(resp_obj: Dict[str, Any]) -> GenerateResult:
    """
    Normalize a Responses API body into a bridge result.

    Refusal content items and content-filter incompletions are Blocked; a body without any
    output text is a ServiceFailure.
    """
    if not isinstance(resp_obj, dict):
        return ServiceFailure(message="Responses API returned an unexpected body.")
    error = resp_obj.get("error")
    if isinstance(error, dict) and error.get("message"):
        return ServiceFailure(message=str(error.get("message")))

    chunks: List[str] = []
    refusals: List[str] = []
    output = resp_obj.get("output")
    if isinstance(output, list):
        for o in output:
            if not isinstance(o, dict) or o.get("type") != "message":
                continue
            content = o.get("content")
            if isinstance(content, str):
                chunks.append(content)
            elif isinstance(content, list):
                for item in content:
                    if not isinstance(item, dict):
                        continue
                    if item.get("type") == "output_text":
                        chunks.append(str(item.get("text", "")))
                    elif item.get("type") == "refusal":
                        refusals.append(str(item.get("refusal", "")))

    if refusals and not chunks:
        return Blocked(reason=" ".join(r for r in refusals if r) or "refused")
    details = resp_obj.get("incomplete_details") or {}
    if resp_obj.get("status") == "incomplete" and isinstance(details, dict) and details.get("reason") == "content_filter":
        return Blocked(reason="content_filter")
    if not chunks:
        return ServiceFailure(message="Model returned an empty response.")
    return Generated(text="\n".join(chunks))
