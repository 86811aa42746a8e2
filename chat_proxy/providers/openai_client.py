from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from openai import APIError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError

from chat_proxy.providers.base import CompletionOptions, Message, ProviderClient, ProviderClientError


class OpenAIProviderClient(ProviderClient):
    """Chat completions over the OpenAI SDK.

    Also serves OpenAI-compatible endpoints (Gemini) through ``base_url``.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        timeout_seconds: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds, max_retries=0)

    async def stream_chat_completion(
        self, conversation: Sequence[Message], options: CompletionOptions
    ) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                messages=[message.to_payload() for message in conversation],
                max_tokens=options.max_tokens,
                temperature=options.temperature,
                stream=True,
            )
            try:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield content
            finally:
                await stream.close()
        except (APITimeoutError,) as exc:
            raise ProviderClientError(status_code=504, message=str(exc)) from exc
        except (RateLimitError,) as exc:
            raise ProviderClientError(status_code=429, message=str(exc)) from exc
        except (APIStatusError,) as exc:
            status = exc.status_code
            mapped_status = 502 if status and status >= 500 else (status or 502)
            raise ProviderClientError(status_code=mapped_status, message=str(exc)) from exc
        except APIError as exc:
            raise ProviderClientError(status_code=502, message=str(exc)) from exc

    async def aclose(self) -> None:
        await self._client.close()
