"""
Vertex AI REST client for chat-style LLM interactions.
"""
import json
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ..errors import ProviderError, RateLimitError, is_rate_limit_response
from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

# Vertex calls the assistant side of a conversation "model"
_ROLE_MAP = {"assistant": "model", "user": "user"}


def _to_contents(messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """Convert chat messages to Vertex contents, merging same-role neighbours."""
    contents: List[Dict[str, Any]] = []
    for m in messages:
        role = _ROLE_MAP.get(m["role"], "user")
        if contents and contents[-1]["role"] == role:
            contents[-1]["parts"].append({"text": m["content"]})
        else:
            contents.append({"role": role, "parts": [{"text": m["content"]}]})
    return contents


class VertexRestClient:
    """REST-based client for Vertex AI Gemini models."""

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.base_url = f"https://{self.location}-aiplatform.googleapis.com/v1"
        self.model_resource = f"projects/{self.project}/locations/{self.location}/publishers/google/models/{self.model}"
        self._token = None
        self.timeout = timeout

    def _refresh_token(self):
        """Refresh the OAuth token for API calls."""
        if self.credentials_json:
            creds = service_account.Credentials.from_service_account_file(
                self.credentials_json,
                scopes=["https://www.googleapis.com/auth/cloud-platform"],
            )
        else:
            creds, _ = google.auth.default(scopes=["https://www.googleapis.com/auth/cloud-platform"])

        auth_req = google.auth.transport.requests.Request()
        creds.refresh(auth_req)
        self._token = creds.token

    def _ensure_token(self):
        if not self._token:
            self._refresh_token()

    def generate_chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_output_tokens: int = MAX_OUTPUT_TOKENS,
        response_json: bool = False,
    ) -> str:
        """
        Send a multi-turn conversation and return the model's reply text.

        Args:
            system_prompt: Instructions sent as the system instruction
            messages: Ordered ``{"role", "content"}`` dicts (user/assistant)
            temperature: Sampling temperature
            max_output_tokens: Upper bound on reply length
            response_json: Ask the model for a JSON response body

        Raises:
            RateLimitError: The provider throttled the request
            ProviderError: Any other HTTP or transport failure
        """
        self._ensure_token()
        url = f"{self.base_url}/{self.model_resource}:generateContent"

        contents = _to_contents(messages)
        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }
        if system_prompt:
            body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        if response_json:
            body["generationConfig"]["responseMimeType"] = "application/json"

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

        try:
            resp = requests.post(url, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(f"Vertex REST transport error: {e}") from e

        if resp.status_code == 401:
            # Token expired mid-session; next call refreshes
            self._token = None
        if resp.status_code >= 400:
            if is_rate_limit_response(resp.status_code, resp.text):
                raise RateLimitError(f"Vertex REST throttled: {resp.text}", status_code=resp.status_code)
            raise ProviderError(f"Vertex REST error {resp.status_code}: {resp.text}", status_code=resp.status_code)

        text = self._parse_response_text(resp.json())
        if not text.strip():
            raise ProviderError("Vertex REST returned an empty response")
        return text

    def _parse_response_text(self, resp_json: Dict[str, Any]) -> str:
        """
        Parse response JSON to extract text content.
        Tries Vertex schema first, then falls back to alternatives.
        """
        cands = resp_json.get("candidates", [])
        if cands:
            content = cands[0].get("content", {})
            parts = content.get("parts", []) if isinstance(content, dict) else []
            texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
            if texts:
                return "".join(texts)
            if isinstance(content, dict) and isinstance(content.get("text"), str):
                return content["text"]

        if isinstance(resp_json.get("text"), str):
            return resp_json["text"]

        logger.warning("Unrecognized response shape: %s", json.dumps(resp_json, separators=(",", ":"))[:500])
        return ""


def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object from LLM output, tolerating surrounding prose
    and markdown fences.

    Raises:
        ValueError: No JSON object could be recovered
    """
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except (TypeError, ValueError) as e:
        logger.debug("json.loads failed: %s", e)

    start = text.find("{") if text else -1
    end = text.rfind("}") if text else -1
    if start != -1 and end > start:
        try:
            parsed = json.loads(text[start:end + 1])
            if isinstance(parsed, dict):
                logger.debug("Parsed JSON from substring successfully")
                return parsed
        except ValueError as e:
            logger.warning("Substring parse also failed: %s", e)

    raise ValueError(f"LLM did not return valid JSON: {text!r}")
