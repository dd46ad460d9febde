from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from bemestar.settings import env_int, env_str


class BedrockError(RuntimeError):
    pass


class BedrockNotConfiguredError(BedrockError):
    pass


class BedrockDependencyError(BedrockError):
    pass


class BedrockInvocationError(BedrockError):
    pass


class BedrockQuotaError(BedrockInvocationError):
    pass


class BedrockTimeoutError(BedrockInvocationError):
    pass


@dataclass(frozen=True)
class BedrockInvokeResult:
    provider: str
    model_id: str | None
    text: str


DEFAULT_CONNECT_TIMEOUT_MS = 5_000
DEFAULT_READ_TIMEOUT_MS = 30_000
DEFAULT_MAX_ATTEMPTS = 2

QUOTA_ERROR_CODES = frozenset(
    {
        "ThrottlingException",
        "ServiceQuotaExceededException",
        "TooManyRequestsException",
        "LimitExceededException",
    }
)
TIMEOUT_ERROR_CODES = frozenset({"ModelTimeoutException", "RequestTimeout", "RequestTimeoutException"})

ClientSettings = tuple[int, int, int, str | None]

_bedrock_logger = logging.getLogger("bemestar.bedrock")
_client_cache: dict[tuple[str, int, int, int, str | None], Any] = {}
_client_cache_lock = threading.Lock()


def _bedrock_client_settings() -> ClientSettings:
    connect_timeout_ms = env_int("BEDROCK_CONNECT_TIMEOUT_MS", DEFAULT_CONNECT_TIMEOUT_MS, min_value=1)
    read_timeout_ms = env_int("BEDROCK_READ_TIMEOUT_MS", DEFAULT_READ_TIMEOUT_MS, min_value=1)
    max_attempts = env_int("BEDROCK_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS, min_value=1)
    retry_mode = env_str("BEDROCK_RETRY_MODE")
    return connect_timeout_ms, read_timeout_ms, max_attempts, retry_mode


def _build_bedrock_client(region: str) -> tuple[Any, bool, ClientSettings]:
    client_settings = _bedrock_client_settings()
    connect_timeout_ms, read_timeout_ms, max_attempts, retry_mode = client_settings
    cache_key = (region, *client_settings)
    with _client_cache_lock:
        cached = _client_cache.get(cache_key)
    if cached is not None:
        return cached, True, client_settings

    retries: dict[str, Any] = {"max_attempts": max_attempts}
    if retry_mode:
        retries["mode"] = retry_mode
    try:
        from botocore.config import Config  # type: ignore
    except ImportError as exc:  # pragma: no cover - depends on runtime
        raise BedrockDependencyError("Missing dependency: botocore") from exc
    config = Config(
        connect_timeout=connect_timeout_ms / 1000.0,
        read_timeout=read_timeout_ms / 1000.0,
        retries=retries,
    )

    try:
        import boto3  # type: ignore
    except ImportError as exc:  # pragma: no cover - depends on runtime
        raise BedrockDependencyError("Missing dependency: boto3") from exc

    client = boto3.client("bedrock-runtime", region_name=region, config=config)
    with _client_cache_lock:
        cached = _client_cache.get(cache_key)
        if cached is not None:
            return cached, True, client_settings
        _client_cache[cache_key] = client
    return client, False, client_settings


def _clear_bedrock_client_cache() -> None:
    with _client_cache_lock:
        _client_cache.clear()


def bedrock_model_id() -> str | None:
    return env_str("AWS_BEDROCK_INFERENCE_PROFILE_ID") or env_str("AWS_BEDROCK_MODEL_ID")


def bedrock_region() -> str | None:
    return env_str("AWS_REGION") or env_str("AWS_DEFAULT_REGION")


def is_bedrock_configured() -> bool:
    return bool(bedrock_model_id() and bedrock_region())


def _error_code(exc: BaseException) -> str | None:
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        code = (response.get("Error") or {}).get("Code")
        if code:
            return str(code)
    return None


def classify_invocation_error(exc: BaseException) -> BedrockInvocationError:
    """Map botocore failures onto quota / timeout / generic invocation errors."""
    code = _error_code(exc)
    name = type(exc).__name__
    message = str(exc) or name
    if code in QUOTA_ERROR_CODES or "quota" in message.lower():
        return BedrockQuotaError(message)
    if code in TIMEOUT_ERROR_CODES or "Timeout" in name or isinstance(exc, TimeoutError):
        return BedrockTimeoutError(message)
    return BedrockInvocationError(message)


def _response_text(response: Any) -> str:
    try:
        content = response["output"]["message"]["content"]
    except (KeyError, TypeError) as exc:
        raise BedrockInvocationError(f"Unexpected Bedrock response shape: {exc}") from exc
    chunks = [str(part.get("text") or "") for part in content if isinstance(part, dict)]
    return "".join(chunks).strip()


def invoke_bedrock_text(
    prompt: str,
    system_prompt: str | None = None,
    *,
    max_tokens: int = 1024,
    temperature: float = 0.3,
) -> BedrockInvokeResult:
    model_id = bedrock_model_id()
    region = bedrock_region()
    if not model_id or not region:
        raise BedrockNotConfiguredError(
            "Set AWS_REGION (or AWS_DEFAULT_REGION) and AWS_BEDROCK_MODEL_ID (or AWS_BEDROCK_INFERENCE_PROFILE_ID)."
        )

    started = time.perf_counter()
    client_ms = 0.0
    call_ms = 0.0
    client_reused = False
    client_settings: ClientSettings | None = None
    response_chars: int | None = None
    error_kind = "-"

    try:
        client_started = time.perf_counter()
        client, client_reused, client_settings = _build_bedrock_client(region)
        client_ms = (time.perf_counter() - client_started) * 1000

        system = [{"text": system_prompt}] if system_prompt else []
        call_started = time.perf_counter()
        try:
            response = client.converse(
                modelId=model_id,
                system=system,
                messages=[{"role": "user", "content": [{"text": prompt}]}],
                inferenceConfig={"maxTokens": max_tokens, "temperature": temperature},
            )
        except Exception as exc:  # pragma: no cover - depends on AWS credentials/runtime
            raise classify_invocation_error(exc) from exc
        finally:
            call_ms = (time.perf_counter() - call_started) * 1000

        text = _response_text(response)
        response_chars = len(text)
        return BedrockInvokeResult(provider="bedrock", model_id=model_id, text=text)
    except Exception as exc:
        error_kind = type(exc).__name__
        raise
    finally:
        total_ms = (time.perf_counter() - started) * 1000
        connect_ms, read_ms, attempts, retry_mode = client_settings or (None, None, None, None)
        _bedrock_logger.log(
            logging.INFO if error_kind == "-" else logging.WARNING,
            "bedrock.invoke result=%s region=%s model_id=%s prompt_chars=%s system_chars=%s "
            "response_chars=%s client_reused=%s client_ms=%.1f bedrock_ms=%.1f total_ms=%.1f "
            "connect_timeout_ms=%s read_timeout_ms=%s max_attempts=%s retry_mode=%s error=%s",
            "ok" if error_kind == "-" else "error",
            region,
            model_id,
            len(prompt or ""),
            len(system_prompt or ""),
            response_chars,
            client_reused,
            client_ms,
            call_ms,
            total_ms,
            connect_ms,
            read_ms,
            attempts,
            retry_mode,
            error_kind,
        )


MOCK_ACTIONS = {
    "actions": [
        {
            "title": "Revisar sinais críticos da semana",
            "why": "Resposta simulada: o motor de recomendações não está configurado.",
            "steps": ["Ler as notas com nota 1", "Agendar conversa com as lideranças"],
            "priority": "Média",
            "owner_hint": "RH",
        }
    ]
}


def invoke_text(
    prompt: str,
    system_prompt: str | None = None,
    *,
    allow_mock: bool = False,
) -> BedrockInvokeResult:
    if is_bedrock_configured():
        return invoke_bedrock_text(prompt, system_prompt=system_prompt)

    if allow_mock:
        return BedrockInvokeResult(
            provider="mock",
            model_id=None,
            text=json.dumps(MOCK_ACTIONS, ensure_ascii=False),
        )

    raise BedrockNotConfiguredError(
        "Bedrock is required and not configured. Set AWS_REGION (or AWS_DEFAULT_REGION) and AWS_BEDROCK_MODEL_ID "
        "(or AWS_BEDROCK_INFERENCE_PROFILE_ID). Auth uses boto3 credential resolution."
    )
