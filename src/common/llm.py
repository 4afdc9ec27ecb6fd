import io
import warnings
from typing import Any, Iterator

import litellm
from litellm import completion as litellm_completion

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
litellm.drop_params = True


def completion(
    model: str,
    messages: list[dict],
    stream: bool = False,
    api_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    **kwargs,
) -> Any:
    params = {
        "model": model,
        "messages": messages,
        "stream": stream,
        **kwargs,
    }
    if api_key:
        params["api_key"] = api_key
    if temperature is not None:
        params["temperature"] = temperature
    if max_tokens is not None:
        params["max_tokens"] = max_tokens

    return litellm_completion(**params)


def iter_stream_text(stream: Any) -> Iterator[str]:
    for chunk in stream:
        choices = getattr(chunk, "choices", None) or []
        if not choices:
            continue
        delta = choices[0].delta
        if hasattr(delta, "content") and delta.content:
            yield delta.content


def image_generation(
    prompt: str,
    model: str,
    api_key: str | None = None,
    **kwargs,
) -> Any:
    params = {
        "prompt": prompt,
        "model": model,
        "n": 1,
        "response_format": "b64_json",
        **kwargs,
    }
    if api_key:
        params["api_key"] = api_key
    return litellm.image_generation(**params)


def image_edit(
    image: bytes,
    prompt: str,
    model: str,
    mime_type: str = "image/png",
    api_key: str | None = None,
    **kwargs,
) -> Any:
    extension = mime_type.split("/")[-1] or "png"
    handle = io.BytesIO(image)
    handle.name = f"image.{extension}"
    params = {
        "image": handle,
        "prompt": prompt,
        "model": model,
        "response_format": "b64_json",
        **kwargs,
    }
    if api_key:
        params["api_key"] = api_key
    return litellm.image_edit(**params)
