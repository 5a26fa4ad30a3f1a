from abc import abstractmethod
import inspect
from typing import AsyncIterator, Awaitable, Callable

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import ClientRequestError, CompletionError
from shared.helper.HelperConfig import HelperConfig


TokenCallback = Callable[[str], Awaitable[None] | None]


class LLMClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # chat / completion config
        self.chat_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_CHAT_MODEL", default=None)
        self.fast_model = helper_config.get_string_val(f"{self.get_client_type().upper()}_FAST_MODEL", default=self.chat_model)
        self.default_temperature = helper_config.get_number_val(f"{self.get_client_type().upper()}_TEMPERATURE", default=0.0)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "llm"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_chat(self) -> str:
        """Returns the endpoint path for chat/completion requests (e.g. "/api/chat")."""
        pass

    ################ PAYLOAD BUILDER ##################
    @abstractmethod
    def get_chat_payload(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        stream: bool = False,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> dict:
        """Build the backend-specific request body for a chat/completion request.

        Args:
            messages (list[dict]): OpenAI-format messages
                (e.g. [{"role": "user", "content": "..."}]).
            model (str): The model to use.
            temperature (float): Sampling temperature.
            stream (bool): Whether the backend should stream the reply.
            json_mode (bool): Whether the reply must be a JSON object.
            max_tokens (int | None): Optional cap on generated tokens.

        Returns:
            dict: JSON-serialisable request body.
        """
        pass

    ##########################################
    ################# OTHER ##################
    ##########################################

    @abstractmethod
    def extract_chat_response(self, response_data: dict) -> str:
        """Extract the assistant reply text from a raw chat API response.

        Raises:
            CompletionError: If the response does not contain a valid message.
        """
        pass

    @abstractmethod
    def extract_stream_delta(self, line: str) -> str | None:
        """Extract the text delta from one line of a streamed chat response.

        Args:
            line (str): One non-empty line of the streamed body.

        Returns:
            str | None: The text fragment, or None for lines without content
                (keep-alives, role headers, end markers).
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_chat(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float | None = None,
        json_mode: bool = False,
        max_tokens: int | None = None,
    ) -> str:
        """Send a chat/completion request and return the assistant reply text.

        Args:
            messages (list[dict]): OpenAI-format messages.
            model (str | None): Model override, defaults to the chat model.
            temperature (float | None): Temperature override.
            json_mode (bool): Ask the backend for a JSON object reply.
            max_tokens (int | None): Optional cap on generated tokens.

        Returns:
            str: The assistant reply text.

        Raises:
            CompletionError: If the request fails or the response holds no reply.
        """
        body = self.get_chat_payload(
            messages,
            model=model or self.chat_model,
            temperature=self.default_temperature if temperature is None else temperature,
            stream=False,
            json_mode=json_mode,
            max_tokens=max_tokens,
        )
        try:
            response = await self.do_request(
                method="POST",
                endpoint=self._get_endpoint_chat(),
                json=body,
                raise_on_error=True,
            )
        except (httpx.HTTPError, ClientRequestError) as exc:
            raise CompletionError(f"Chat request to {self.get_engine_name()} failed: {exc}") from exc
        return self.extract_chat_response(response.json())

    async def do_chat_stream(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        """Stream a chat/completion reply, yielding non-empty text fragments.

        Raises:
            CompletionError: If the request fails before or during streaming.
        """
        body = self.get_chat_payload(
            messages,
            model=model or self.chat_model,
            temperature=self.default_temperature if temperature is None else temperature,
            stream=True,
            max_tokens=max_tokens,
        )
        try:
            async for line in self.do_stream_lines(method="POST", endpoint=self._get_endpoint_chat(), json=body):
                delta = self.extract_stream_delta(line)
                if delta:
                    yield delta
        except (httpx.HTTPError, ClientRequestError) as exc:
            raise CompletionError(f"Streaming chat request to {self.get_engine_name()} failed: {exc}") from exc

    async def do_complete(self, prompt: str, model: str | None = None, temperature: float | None = None) -> str:
        """Single-prompt completion. Shorthand for do_chat with one user message."""
        return await self.do_chat([{"role": "user", "content": prompt}], model=model, temperature=temperature)

    async def do_complete_streaming(
        self,
        prompt: str,
        on_token: TokenCallback,
        model: str | None = None,
        temperature: float | None = None,
    ) -> str:
        """Stream a single-prompt completion to on_token and return the full text.

        Args:
            prompt (str): The user prompt.
            on_token (TokenCallback): Called with every text fragment; may be sync or async.
            model (str | None): Model override.
            temperature (float | None): Temperature override.

        Returns:
            str: The concatenated reply.
        """
        parts: list[str] = []
        async for token in self.do_chat_stream([{"role": "user", "content": prompt}], model=model, temperature=temperature):
            parts.append(token)
            result = on_token(token)
            if inspect.isawaitable(result):
                await result
        return "".join(parts)
