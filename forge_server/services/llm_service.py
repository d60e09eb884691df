"""LLM Service - Gemini/Claude chat that returns Roblox asset trees."""

import asyncio
import difflib
import hashlib
import json
import logging
import re
import time
from collections import OrderedDict
from typing import AsyncIterator

from pydantic import ValidationError

import rbxmx
from forge_server.models import ChatMessage, default_root
from forge_server.prompts.system_prompt import build_system_prompt
from forge_server.prompts.examples import format_few_shot
from forge_server import config

logger = logging.getLogger(__name__)

# ── Lazy Singleton Clients (connection reuse) ─────────────────
_claude_client = None
_gemini_client = None

def _get_claude_client():
    """Get or create singleton AsyncAnthropic client."""
    global _claude_client
    if _claude_client is None:
        import anthropic
        _claude_client = anthropic.AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)
        logger.info("Claude client initialized (singleton)")
    return _claude_client

def _get_gemini_client():
    """Get or create singleton genai.Client."""
    global _gemini_client
    if _gemini_client is None:
        from google import genai
        _gemini_client = genai.Client(api_key=config.GOOGLE_API_KEY)
        logger.info("Gemini client initialized (singleton)")
    return _gemini_client

SCRIPT_CLASSES = {"Script", "LocalScript", "ModuleScript"}

MAX_RETRIES = 2

FAILURE_REPLY = "Sorry, something went wrong while talking to the model. Please try again."

_JSON_FENCE = re.compile(r"```json[ \t]*\r?\n(.*?)\r?\n?```", re.DOTALL)


def _suggest_fix(error: str) -> str:
    """Generate a specific fix suggestion based on error pattern."""
    suggestions = []

    if "missing 'className'" in error:
        suggestions.append(
            "Every instance needs a 'className' such as Folder, Part, Script, "
            "LocalScript, ModuleScript, RemoteEvent, ScreenGui or Frame."
        )

    if "missing 'name'" in error:
        suggestions.append("Every instance needs a non-empty 'name' string.")

    # Source on a class that cannot hold code (often a typo in the class)
    for bad_name in re.findall(r"'source' on non-script class '([^']*)'", error):
        close = difflib.get_close_matches(bad_name, SCRIPT_CLASSES, n=1, cutoff=0.6)
        if close:
            suggestions.append(f"Unknown script class '{bad_name}'. Did you mean {close[0]}?")
        else:
            suggestions.append(
                f"'{bad_name}' cannot hold code. Move the source into a Script, "
                "LocalScript or ModuleScript child."
            )

    if "properties" in error:
        suggestions.append(
            "Property values must be plain strings, numbers or booleans. "
            "Drop nested objects, arrays and nulls."
        )

    return " ".join(suggestions) if suggestions else ""


# ── LLM Response Cache (LRU with TTL + maxsize) ──────────────

_cache: OrderedDict[str, dict] = OrderedDict()
CACHE_TTL = config.CACHE_TTL_SECONDS
CACHE_MAX_SIZE = 128  # Max cached entries to prevent unbounded memory growth


def _cache_key(
    message: str,
    history: list[ChatMessage],
    explorer_root: rbxmx.AssetNode,
    provider: str,
    model: str,
) -> str:
    """Generate a cache key from the whole conversation context."""
    raw = json.dumps(
        {
            "provider": provider,
            "model": model,
            "history": [(m.role, m.content) for m in history],
            "message": message,
            "root": rbxmx.to_json(explorer_root),
        },
        sort_keys=True,
    )
    return hashlib.sha256(raw.encode()).hexdigest()


def _cache_get(key: str) -> dict | None:
    """Get cached entry if exists and not expired. Promotes to MRU on hit."""
    entry = _cache.get(key)
    if entry is None:
        return None
    if time.time() - entry["timestamp"] > CACHE_TTL:
        del _cache[key]
        return None
    _cache.move_to_end(key)
    return entry


def _cache_set(key: str, reply: str, assets: list[rbxmx.AssetNode], metadata: dict) -> None:
    """Store result in cache with LRU eviction."""
    _cache[key] = {
        "reply": reply,
        "assets": [a.model_copy(deep=True) for a in assets],
        "metadata": metadata,
        "timestamp": time.time(),
    }
    _cache.move_to_end(key)
    while len(_cache) > CACHE_MAX_SIZE:
        _cache.popitem(last=False)


def cache_clear() -> int:
    """Clear all cached entries. Returns number of entries cleared."""
    count = len(_cache)
    _cache.clear()
    return count


# ── Prompt Building ──────────────────────────────────────────


def _system_prompt(explorer_root: rbxmx.AssetNode) -> str:
    hierarchy = rbxmx.to_json(explorer_root, indent=2)
    return build_system_prompt(hierarchy) + "\n\n## Examples\n\n" + format_few_shot()


def _build_messages(message: str, history: list[ChatMessage]) -> list[dict]:
    """Build provider-neutral message list from history plus the new message."""
    messages = [{"role": m.role, "content": m.content} for m in history]
    messages.append({"role": "user", "content": message})
    return messages


def _build_retry_messages(
    message: str, history: list[ChatMessage], error: str, bad_reply: str
) -> list[dict]:
    """Build messages for retry with error feedback."""
    fix_hint = _suggest_fix(error)
    fix_line = f"\n\nSpecific fix: {fix_hint}" if fix_hint else ""
    return _build_messages(message, history) + [
        {"role": "assistant", "content": bad_reply},
        {"role": "user", "content": (
            f"The json block you produced has a structural error:\n{error}\n\n"
            "Please answer again with a corrected json block. Every instance needs "
            "\"name\", \"className\" and \"children\"; only Script, LocalScript and "
            f"ModuleScript may carry \"source\".{fix_line}"
        )},
    ]


def _to_gemini_contents(messages: list[dict]) -> list[dict]:
    return [
        {
            "role": "user" if m["role"] == "user" else "model",
            "parts": [{"text": m["content"]}],
        }
        for m in messages
    ]


# ── JSON Extraction ──────────────────────────────────────────


def _repair_json(text: str) -> str:
    """Repair incomplete JSON by appending missing closing brackets/braces.

    Closers are appended innermost first; string contents are ignored.
    """
    in_string = False
    escape = False
    stack = []

    for ch in text:
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    if in_string:
        text += '"'
    return text + "".join(reversed(stack))


def _extract_json_block(text: str) -> str | None:
    """Return the body of the first ```json fenced block, or None."""
    match = _JSON_FENCE.search(text)
    if match is None:
        return None
    return match.group(1).strip()


def _extract_json(text: str) -> str:
    """Extract the first complete JSON object or array from text."""
    text = text.strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        raise ValueError("No JSON value found in LLM response")
    start = min(starts)

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    # Bracket mismatch: try to repair by appending missing closers
    repaired = _repair_json(text[start:])
    try:
        json.loads(repaired)
        return repaired
    except json.JSONDecodeError:
        raise ValueError(
            f"Incomplete JSON value in LLM response "
            f"(depth={depth}, tried repair but failed)"
        )


def _validate_asset_structure(obj) -> list[str]:
    """Validate asset JSON structure and return list of errors found."""
    errors = []

    def _check_node(node, path):
        if not isinstance(node, dict):
            errors.append(f"{path}: expected object, got {type(node).__name__}")
            return
        if not isinstance(node.get("name"), str) or not node.get("name"):
            errors.append(f"{path}: missing 'name'")
        class_name = node.get("className")
        if not isinstance(class_name, str) or not class_name:
            errors.append(f"{path}: missing 'className'")
        elif "source" in node and not rbxmx.is_script_class(class_name):
            errors.append(f"{path}: 'source' on non-script class '{class_name}'")
        props = node.get("properties")
        if props is not None:
            if not isinstance(props, dict):
                errors.append(f"{path}.properties: expected object")
            else:
                for key, value in props.items():
                    if rbxmx.to_property(value) is None:
                        errors.append(
                            f"{path}.properties.{key}: unsupported {type(value).__name__} value"
                        )
        children = node.get("children", [])
        if not isinstance(children, list):
            errors.append(f"{path}.children: expected array")
            return
        for i, child in enumerate(children):
            _check_node(child, f"{path}.children[{i}]")

    items = obj if isinstance(obj, list) else [obj]
    for i, item in enumerate(items):
        _check_node(item, f"asset[{i}]")

    return errors


def _parse_assets(block: str) -> list[rbxmx.AssetNode]:
    """Turn a json block (object or array of objects) into AssetNodes."""
    parsed = json.loads(_extract_json(block))
    items = parsed if isinstance(parsed, list) else [parsed]
    return [rbxmx.AssetNode.model_validate(item) for item in items]


# ── Provider Calls ───────────────────────────────────────────


async def chat_claude(
    system: str, messages: list[dict], model: str = config.DEFAULT_CLAUDE_MODEL
) -> tuple[str, float]:
    """Send a conversation to Claude. Returns (reply_text, elapsed_seconds)."""
    model_id = config.CLAUDE_MODELS.get(model, model)
    client = _get_claude_client()

    t0 = time.perf_counter()
    response = await client.messages.create(
        model=model_id,
        max_tokens=16384,
        system=system,
        messages=messages,
    )
    elapsed = time.perf_counter() - t0

    text = "".join(
        block.text for block in response.content if getattr(block, "type", "text") == "text"
    )
    return text, elapsed


async def chat_gemini(
    system: str, messages: list[dict], model: str = config.DEFAULT_GEMINI_MODEL
) -> tuple[str, float]:
    """Send a conversation to Gemini. Returns (reply_text, elapsed_seconds)."""
    model_id = config.GEMINI_MODELS.get(model, model)
    client = _get_gemini_client()

    t0 = time.perf_counter()
    response = await client.aio.models.generate_content(
        model=model_id,
        contents=_to_gemini_contents(messages),
        config={
            "system_instruction": system,
            "max_output_tokens": 65536,
        },
    )
    elapsed = time.perf_counter() - t0

    return response.text or "", elapsed


def _resolve_provider(provider: str, model: str | None):
    if provider == "gemini":
        return chat_gemini, model or config.DEFAULT_GEMINI_MODEL
    if provider == "claude":
        return chat_claude, model or config.DEFAULT_CLAUDE_MODEL
    raise ValueError(f"Unknown provider: {provider}")


def _rate_limit_delay(err_str: str) -> float | None:
    """Seconds to wait if the error is a rate limit, else None."""
    if "429" not in err_str and "RESOURCE_EXHAUSTED" not in err_str:
        return None
    delay_match = re.search(r"retry in (\d+(?:\.\d+)?)s", err_str, re.IGNORECASE)
    return float(delay_match.group(1)) if delay_match else 30.0


async def chat(
    message: str,
    history: list[ChatMessage] | None = None,
    explorer_root: rbxmx.AssetNode | None = None,
    provider: str = config.DEFAULT_PROVIDER,
    model: str | None = None,
) -> tuple[str, list[rbxmx.AssetNode], dict]:
    """Ask the model for a reply and any assets it generated.

    Retries with error feedback when the reply's json block is invalid.
    Returns (reply_text, assets, metadata).
    """
    history = history or []
    explorer_root = explorer_root or default_root()
    chat_fn, model = _resolve_provider(provider, model)

    key = _cache_key(message, history, explorer_root, provider, model)
    cached = _cache_get(key)
    if cached is not None:
        logger.info(f"Cache hit for message: {message[:50]}...")
        meta = {**cached["metadata"], "cache_hit": True}
        return cached["reply"], [a.model_copy(deep=True) for a in cached["assets"]], meta

    system = _system_prompt(explorer_root)
    total_elapsed = 0.0
    last_error = None
    bad_reply = ""
    retries_used = 0

    for attempt in range(1 + MAX_RETRIES):
        if attempt == 0:
            messages = _build_messages(message, history)
        else:
            logger.info(f"Retry {attempt}/{MAX_RETRIES}: {last_error}")
            messages = _build_retry_messages(message, history, last_error, bad_reply)

        try:
            reply, elapsed = await chat_fn(system, messages, model)
        except Exception as e:
            wait_sec = _rate_limit_delay(str(e))
            if wait_sec is not None and attempt < MAX_RETRIES:
                logger.info(f"Rate limited, waiting {wait_sec:.0f}s before retry...")
                await asyncio.sleep(wait_sec)
                retries_used = attempt + 1
                last_error = "rate limited"
                continue
            raise

        total_elapsed += elapsed
        metadata = {
            "provider": provider,
            "model": model,
            "llm_time_s": round(total_elapsed, 3),
            "retries": retries_used,
            "cache_hit": False,
        }

        block = _extract_json_block(reply)
        if block is None:
            _cache_set(key, reply, [], metadata)
            return reply, [], metadata

        # Step 1: structure checks that can be fed back to the model
        try:
            structure_errors = _validate_asset_structure(json.loads(_extract_json(block)))
        except ValueError as e:
            structure_errors = [f"json block is not valid JSON: {e}"]

        if structure_errors and attempt < MAX_RETRIES:
            bad_reply = reply
            last_error = "; ".join(structure_errors)
            retries_used = attempt + 1
            logger.warning(f"Asset structure errors (attempt {attempt+1}): {last_error}")
            continue
        if structure_errors:
            logger.warning(f"Asset structure errors persist after {MAX_RETRIES} retries")

        # Step 2: model validation (drops unsupported property kinds)
        try:
            assets = _parse_assets(block)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Giving up on assets from reply: {e}")
            metadata["asset_error"] = str(e)
            return reply, [], metadata

        _cache_set(key, reply, assets, metadata)
        return reply, assets, metadata

    raise RuntimeError(f"Chat failed after {MAX_RETRIES} retries: {last_error}")


# ── Streaming ────────────────────────────────────────────────


async def stream_chat_claude(
    system: str, messages: list[dict], model: str = config.DEFAULT_CLAUDE_MODEL
) -> AsyncIterator[str]:
    """Stream reply tokens from Claude API."""
    model_id = config.CLAUDE_MODELS.get(model, model)
    client = _get_claude_client()

    async with client.messages.stream(
        model=model_id,
        max_tokens=16384,
        system=system,
        messages=messages,
    ) as stream:
        async for text in stream.text_stream:
            yield text


async def stream_chat_gemini(
    system: str, messages: list[dict], model: str = config.DEFAULT_GEMINI_MODEL
) -> AsyncIterator[str]:
    """Stream reply tokens from Gemini API."""
    model_id = config.GEMINI_MODELS.get(model, model)
    client = _get_gemini_client()

    async for chunk in await client.aio.models.generate_content_stream(
        model=model_id,
        contents=_to_gemini_contents(messages),
        config={"system_instruction": system},
    ):
        if chunk.text:
            yield chunk.text


async def stream_chat(
    message: str,
    history: list[ChatMessage],
    explorer_root: rbxmx.AssetNode,
    provider: str = config.DEFAULT_PROVIDER,
    model: str | None = None,
) -> AsyncIterator[str]:
    """Stream reply tokens for one user message (no retry, no cache)."""
    if provider == "gemini":
        stream_fn, model = stream_chat_gemini, model or config.DEFAULT_GEMINI_MODEL
    elif provider == "claude":
        stream_fn, model = stream_chat_claude, model or config.DEFAULT_CLAUDE_MODEL
    else:
        raise ValueError(f"Unknown provider: {provider}")

    system = _system_prompt(explorer_root)
    async for token in stream_fn(system, _build_messages(message, history), model):
        yield token


def assets_from_reply(reply: str) -> list[rbxmx.AssetNode]:
    """Assets in a complete reply's json block; [] if there is none."""
    block = _extract_json_block(reply)
    if block is None:
        return []
    return _parse_assets(block)
