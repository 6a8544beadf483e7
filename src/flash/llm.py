import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import requests

from flash.logger import setup_logger

logger = setup_logger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TIMEOUT_SECONDS = 30

PROVIDER_OPENAI = "openai"
PROVIDER_AZURE = "azure"


class LLMError(RuntimeError):
    pass


class ConfigurationError(LLMError, ValueError):
    pass


class TransportError(LLMError):
    pass


class DecodeError(LLMError):
    pass


class APIError(LLMError):
    """Non-2xx reply from the chat endpoint."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str = "",
        code: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.code = code
        self.error_message = error_message


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    ROLES = ("system", "user", "assistant")

    def __post_init__(self):
        if self.role not in self.ROLES:
            raise ConfigurationError(f"Unsupported chat role '{self.role}'")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatRequest:
    model: Optional[str]
    messages: List[ChatMessage] = field(default_factory=list)
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: Optional[float] = None

    def to_payload(self, include_model: bool = True) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if include_model:
            payload["model"] = self.model
        payload["messages"] = [m.to_dict() for m in self.messages]
        payload["max_tokens"] = self.max_tokens
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        return payload


@dataclass
class ProviderSettings:
    """
    Credential bundle for one chat endpoint.

    OpenAI and Azure OpenAI differ only in how the URL is built and how the key is sent:
    - openai: POST <endpoint>, Authorization: Bearer <key>, model in the body
    - azure:  POST <endpoint>/openai/deployments/<deployment>/chat/completions?api-version=<v>,
              api-key: <key>, no model in the body
    """

    provider: str
    api_key: str
    endpoint: str = OPENAI_CHAT_URL
    model: Optional[str] = None
    deployment_name: Optional[str] = None
    api_version: Optional[str] = None

    @property
    def is_azure(self) -> bool:
        return self.provider == PROVIDER_AZURE

    @property
    def label(self) -> str:
        return "Azure OpenAI" if self.is_azure else "OpenAI"

    def validate(self) -> None:
        if self.provider not in (PROVIDER_OPENAI, PROVIDER_AZURE):
            raise ConfigurationError(f"Unknown provider '{self.provider}'. Use 'openai' or 'azure'.")
        if not (self.endpoint or "").strip():
            raise ConfigurationError(f"Missing endpoint URL for {self.label}.")
        if not (self.api_key or "").strip():
            raise ConfigurationError(f"Missing API key for {self.label}.")
        if self.is_azure:
            if not (self.deployment_name or "").strip():
                raise ConfigurationError("Missing deployment name for Azure OpenAI.")
            if not (self.api_version or "").strip():
                raise ConfigurationError("Missing api-version for Azure OpenAI.")

    def chat_url(self, deployment: Optional[str] = None) -> str:
        if not self.is_azure:
            return self.endpoint
        return "{0}/openai/deployments/{1}/chat/completions?api-version={2}".format(
            self.endpoint.rstrip("/"),
            deployment or self.deployment_name,
            self.api_version,
        )

    def auth_headers(self) -> Dict[str, str]:
        if self.is_azure:
            return {"api-key": self.api_key}
        return {"Authorization": f"Bearer {self.api_key}"}


MessageLike = Union[ChatMessage, Dict[str, str]]


def _as_message(value: MessageLike) -> ChatMessage:
    if isinstance(value, ChatMessage):
        return value
    return ChatMessage(role=value.get("role", ""), content=value.get("content", ""))


def api_error_from_response(status_code: int, body: str) -> APIError:
    """
    Best-effort decoding of a non-2xx reply:
      - {"error": {"code", "message"}} with content -> "API error: <code> - <message>"
      - decodable but both fields empty -> status code plus raw body
      - not decodable -> status code plus raw body
    """
    try:
        data = json.loads(body)
    except ValueError:
        data = None

    err = None
    if isinstance(data, dict):
        err = data.get("error") or {}
    if not isinstance(err, dict):
        return APIError(
            f"API returned status code {status_code}: {body}",
            status_code=status_code,
            body=body,
        )

    code = "" if err.get("code") is None else str(err.get("code"))
    message = "" if err.get("message") is None else str(err.get("message"))
    if not code and not message:
        return APIError(
            f"API returned status code {status_code} but no error message. Raw response: {body}",
            status_code=status_code,
            body=body,
        )
    return APIError(
        f"API error: {code} - {message}",
        status_code=status_code,
        body=body,
        code=code,
        error_message=message,
    )


def extract_content(body: str) -> str:
    """Return the first choice's message content from a chat-completions body."""
    try:
        data = json.loads(body)
    except ValueError as e:
        raise DecodeError(f"error parsing API response: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError("error parsing API response: expected a JSON object")

    choices = data.get("choices") or []
    if not isinstance(choices, list) or not choices:
        raise DecodeError("no content in API response")
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    return content if isinstance(content, str) else ""


class LLMClient:
    """
    Single chat-completions POST against OpenAI or Azure OpenAI.
    No retries: transport, API and decode failures are raised straight away.
    """

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        timeout_seconds: Optional[int] = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        if settings is None:
            raise ConfigurationError("No API configuration provided.")
        settings.validate()
        self.settings = settings
        self.timeout_seconds = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None
        self.session = session or requests.Session()

    def build_request(
        self,
        messages: Sequence[MessageLike],
        model_or_deployment: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ) -> ChatRequest:
        if self.settings.is_azure:
            target = model_or_deployment or self.settings.deployment_name
        else:
            target = model_or_deployment or self.settings.model
            if not target:
                raise ConfigurationError("Missing model for OpenAI. Set OPENAI_MODEL or llm.openai.model.")
        return ChatRequest(
            model=target,
            messages=[_as_message(m) for m in messages],
            max_tokens=int(max_tokens),
            temperature=temperature,
        )

    def chat(
        self,
        messages: Sequence[MessageLike],
        model_or_deployment: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Send chat messages and return the assistant content of the first choice.
        """
        request = self.build_request(
            messages,
            model_or_deployment=model_or_deployment,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        url = self.settings.chat_url(request.model if self.settings.is_azure else None)
        headers = {"Content-Type": "application/json"}
        headers.update(self.settings.auth_headers())
        payload = request.to_payload(include_model=not self.settings.is_azure)

        logger.debug(
            f"Dispatching chat to {self.settings.label} target={request.model} "
            f"messages={len(request.messages)} max_tokens={request.max_tokens}"
        )
        try:
            resp = self.session.post(url, headers=headers, json=payload, timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            logger.error(f"LLM request failed: {e}")
            raise TransportError(f"API request failed: {e}") from e

        status = int(resp.status_code)
        body = resp.text or ""
        if not 200 <= status < 300:
            logger.debug(f"API returned non-OK status: {status}")
            logger.debug(f"Response body: {body}")
            raise api_error_from_response(status, body)

        return extract_content(body)
