from __future__ import annotations

import asyncio
import base64
import json
import os
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from google import genai
from google.genai import types as genai_types
from openai import AsyncOpenAI

from ..config import (
    OPENAI_API_KEY,
    OPENAI_REASONING_EFFORT,
    OPENAI_VERBOSITY,
    DEFAULT_IMAGE_MIME_TYPE,
    MAX_COMPLETION_TOKENS,
)
from ..utils import _log_debug, _now_iso

_gemini_client: Any = None
_openai_client: Optional[AsyncOpenAI] = None


def _provider_for_model(model: str) -> str:
  provider = os.getenv("AGENT_LLM_PROVIDER", "auto").strip().lower()
  if provider in ("openai", "gemini"):
    return provider
  model_name = str(model or "").strip().lower()
  if model_name.startswith("gemini") or model_name.startswith("models/gemini"):
    return "gemini"
  return "openai"


def _canonical_gemini_model(model: str) -> str:
  model_name = str(model or "").strip()
  if not model_name:
    return "models/gemini-flash-latest"
  if model_name.startswith("models/"):
    return model_name
  return f"models/{model_name}"


def _gemini_client_or_reason() -> Tuple[Any, Optional[str]]:
  global _gemini_client
  if _gemini_client is None:
    gemini_api_key = os.getenv("GEMINI_API_KEY", "").strip()
    if not gemini_api_key:
      return None, "gemini_api_key_missing"
    _gemini_client = genai.Client(api_key=gemini_api_key)
  return _gemini_client, None


def get_async_client() -> AsyncOpenAI:
  global _openai_client
  if not OPENAI_API_KEY:
    raise RuntimeError("OPENAI_API_KEY is not set")
  if _openai_client is None:
    _openai_client = AsyncOpenAI(api_key=OPENAI_API_KEY)
  return _openai_client


def _compose_prompt(system_prompt: str, user_content: str) -> str:
  return (f"{system_prompt}\n\n"
          f"Current time: {_now_iso()}\n\n"
          f"User:\n{user_content}")


def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def _parse_json_output(raw_output: str) -> Optional[Any]:
  """Best-effort JSON decode: raw text, fence-stripped text, then the outermost {...} or [...] slice."""
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  for left_char, right_char in (("{", "}"), ("[", "]")):
    left = cleaned.find(left_char)
    right = cleaned.rfind(right_char)
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return json.loads(text)
    except ValueError:
      continue
  return None


def _build_gemini_config(max_completion_tokens: int,
                         json_mode: bool) -> Any:
  config: Dict[str, Any] = {}
  if json_mode:
    config["response_mime_type"] = "application/json"
  if isinstance(max_completion_tokens, int) and max_completion_tokens > 0:
    config["max_output_tokens"] = max_completion_tokens
  return genai_types.GenerateContentConfig(**config)


def _gemini_generate_sync(client: Any,
                          model: str,
                          prompt: str,
                          images: Sequence[bytes],
                          max_completion_tokens: int,
                          json_mode: bool) -> str:
  contents: List[Any] = [prompt]
  for image in images:
    contents.append(
        genai_types.Part.from_bytes(data=image,
                                    mime_type=DEFAULT_IMAGE_MIME_TYPE))
  response = client.models.generate_content(
      model=_canonical_gemini_model(model),
      contents=contents if images else prompt,
      config=_build_gemini_config(max_completion_tokens, json_mode),
  )
  return (response.text or "").strip()


def _compose_openai_messages(system_prompt: str,
                             user_content: str,
                             images: Sequence[bytes],
                             json_mode: bool) -> List[Dict[str, Any]]:
  instruction = f"{system_prompt}\n\nCurrent time: {_now_iso()}"
  # JSON 모드 사용 시 시스템 프롬프트에 'json' 명시 필수
  if json_mode and "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."

  user_parts: List[Dict[str, Any]] = [{"type": "text", "text": user_content}]
  for image in images:
    encoded = base64.b64encode(image).decode("ascii")
    user_parts.append({
        "type": "image_url",
        "image_url": {
            "url": f"data:{DEFAULT_IMAGE_MIME_TYPE};base64,{encoded}"
        }
    })
  return [
      {
          "role": "system",
          "content": instruction,
      },
      {
          "role": "user",
          "content": user_parts if images else user_content,
      },
  ]


async def _run_completion(*,
                          kind: str,
                          model: str,
                          system_prompt: str,
                          user_payload: Dict[str, Any],
                          images: Sequence[bytes],
                          max_completion_tokens: int,
                          json_mode: bool) -> Tuple[str, Dict[str, Any]]:
  provider = _provider_for_model(model)
  user_content = json.dumps(user_payload, ensure_ascii=False)
  meta: Dict[str, Any] = {"model": model, "provider": provider}

  if provider == "gemini":
    client, unavailable_reason = _gemini_client_or_reason()
    if client is None:
      meta.update(llm_available=False, unavailable_reason=unavailable_reason)
      return "", meta
    prompt = _compose_prompt(system_prompt, user_content)
    try:
      raw_output = await asyncio.to_thread(
          _gemini_generate_sync,
          client,
          model,
          prompt,
          list(images),
          max_completion_tokens,
          json_mode,
      )
    except Exception as exc:
      print(f"[ORACLE LLM ERROR] Gemini {kind} model={model} error={exc}",
            flush=True)
      meta.update(llm_available=True, llm_error=str(exc))
      return "", meta
  else:
    try:
      client = get_async_client()
    except RuntimeError as exc:
      meta.update(llm_available=False, unavailable_reason=str(exc))
      return "", meta
    request: Dict[str, Any] = {
        "model": model,
        "messages": _compose_openai_messages(system_prompt, user_content,
                                             images, json_mode),
        "reasoning_effort": OPENAI_REASONING_EFFORT,
        "verbosity": OPENAI_VERBOSITY,
        "max_completion_tokens": max_completion_tokens,
    }
    if json_mode:
      request["response_format"] = {"type": "json_object"}
    try:
      completion = await client.chat.completions.create(**request)
      raw_output = (completion.choices[0].message.content or "").strip()
    except Exception as exc:
      print(f"[ORACLE LLM ERROR] OpenAI {kind} model={model} error={exc}",
            flush=True)
      meta.update(llm_available=True, llm_error=str(exc))
      return "", meta

  _log_debug(f"[ORACLE LLM RAW] kind={kind} provider={provider} model={model} "
             f"images={len(images)}\n{raw_output or '(empty)'}")
  meta["llm_available"] = True
  return raw_output, meta


async def run_json_completion(
    *,
    model: str,
    system_prompt: str,
    user_payload: Dict[str, Any],
    images: Sequence[bytes] = (),
    max_completion_tokens: int = MAX_COMPLETION_TOKENS,
) -> Tuple[Optional[Any], str, Dict[str, Any]]:
  """Returns (parsed JSON or None, raw text, meta). Never raises for provider errors."""
  raw_output, meta = await _run_completion(
      kind="json",
      model=model,
      system_prompt=system_prompt,
      user_payload=user_payload,
      images=images,
      max_completion_tokens=max_completion_tokens,
      json_mode=True,
  )
  parsed = _parse_json_output(raw_output)
  if raw_output and parsed is None:
    meta["parse_failed"] = True
  return parsed, raw_output, meta


async def run_text_completion(
    *,
    model: str,
    system_prompt: str,
    user_payload: Dict[str, Any],
    max_completion_tokens: int = MAX_COMPLETION_TOKENS,
) -> Tuple[str, Dict[str, Any]]:
  return await _run_completion(
      kind="text",
      model=model,
      system_prompt=system_prompt,
      user_payload=user_payload,
      images=(),
      max_completion_tokens=max_completion_tokens,
      json_mode=False,
  )
