import asyncio
import os
from typing import Literal, Optional
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field
from difygen.log_output.log import log
from dotenv import load_dotenv
load_dotenv()

"""
LLMの呼び出しを共通のインターフェース(chat / complete / generate)にまとめるモジュール。
プロバイダごとの差はLangChainのチャットモデルが吸収し、ここではタイムアウトとリトライだけを扱う。
"""

SUPPORTED_PROVIDERS = ("openai", "anthropic", "google", "deepseek")


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class ChatOptions(BaseModel):
    temperature: Optional[float] = Field(None, description="未指定ならモデル生成時の値を使う")
    max_tokens: Optional[int] = None
    stop: Optional[list[str]] = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(BaseModel):
    content: str
    finish_reason: Literal["stop", "length", "error"] = "stop"
    usage: Optional[TokenUsage] = None
    model: str = ""


class LLMServiceError(Exception):
    """リトライを使い切ってもLLMの呼び出しに失敗した"""


def _to_langchain(message: ChatMessage) -> BaseMessage:
    if message.role == "system":
        return SystemMessage(content=message.content)
    if message.role == "assistant":
        return AIMessage(content=message.content)
    return HumanMessage(content=message.content)


def _content_text(message: BaseMessage) -> str:
    # Anthropicなどはcontentをブロックのリストで返す
    if isinstance(message.content, str):
        return message.content
    parts = []
    for block in message.content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class LLMService:
    """
    LangChainのチャットモデルを包み、1回ごとのタイムアウトと指数バックオフ付きリトライを行う。
    """
    def __init__(
        self,
        model: BaseChatModel,
        provider: str = "custom",
        model_name: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 3,
    ):
        self.model = model
        self.provider = provider
        self.model_name = model_name or getattr(model, "model_name", None) or getattr(model, "model", None) or provider
        self.timeout = timeout
        self.max_retries = max_retries

    async def chat(self, messages: list[ChatMessage], options: Optional[ChatOptions] = None) -> ChatResponse:
        options = options or ChatOptions()
        lc_messages = [_to_langchain(m) for m in messages]
        kwargs = {}
        if options.temperature is not None:
            kwargs["temperature"] = options.temperature
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens

        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                result = await asyncio.wait_for(
                    self.model.ainvoke(lc_messages, stop=options.stop, **kwargs),
                    timeout=self.timeout,
                )
                return self._to_response(result)
            except asyncio.TimeoutError as e:
                last_error = e
                log("warning", f"LLM({self.model_name})の応答が{self.timeout}秒以内に返りませんでした（{attempt + 1}/{self.max_retries}回目）")
            except Exception as e:
                last_error = e
                log("warning", f"LLM({self.model_name})の呼び出しに失敗しました（{attempt + 1}/{self.max_retries}回目）: {e}")
            if attempt < self.max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        log("error", f"LLM({self.model_name})の呼び出しが{self.max_retries}回とも失敗しました")
        raise LLMServiceError(f"LLM request failed after {self.max_retries} attempts: {last_error}") from last_error

    async def complete(self, prompt: str, options: Optional[ChatOptions] = None) -> ChatResponse:
        return await self.chat([ChatMessage(role="user", content=prompt)], options)

    async def generate(self, prompt: str) -> str:
        return (await self.complete(prompt)).content

    async def is_available(self) -> bool:
        try:
            await self.complete("ping", ChatOptions(max_tokens=1))
            return True
        except LLMServiceError:
            return False

    def _to_response(self, message: BaseMessage) -> ChatResponse:
        metadata = getattr(message, "response_metadata", None) or {}
        reason = metadata.get("finish_reason") or metadata.get("stop_reason") or "stop"
        usage = None
        usage_metadata = getattr(message, "usage_metadata", None)
        if usage_metadata:
            usage = TokenUsage(
                prompt_tokens=usage_metadata.get("input_tokens", 0),
                completion_tokens=usage_metadata.get("output_tokens", 0),
                total_tokens=usage_metadata.get("total_tokens", 0),
            )
        return ChatResponse(
            content=_content_text(message),
            finish_reason="length" if reason in ("length", "max_tokens", "MAX_TOKENS") else "stop",
            usage=usage,
            model=metadata.get("model_name") or metadata.get("model") or str(self.model_name),
        )


def create_chat_model(provider: str = "openai", model: Optional[str] = None, temperature: float = 0.0) -> BaseChatModel:
    models = {
        "openai": lambda: ChatOpenAI(model=model or "gpt-4o", temperature=temperature),
        "anthropic": lambda: ChatAnthropic(model=model or "claude-3-5-sonnet-latest", temperature=temperature),
        "google": lambda: ChatGoogleGenerativeAI(model=model or "gemini-2.5-flash", temperature=temperature),
        "deepseek": lambda: ChatOpenAI(
            model=model or "deepseek-chat",
            temperature=temperature,
            base_url="https://api.deepseek.com",
            api_key=os.environ.get("DEEPSEEK_API_KEY"),
        ),
        # ここに新しいプロバイダを追加可能
    }
    try:
        log("info", f"LLMモデル '{provider}:{model or 'default'}' を作成します。")
        return models[provider]()
    except KeyError:
        log("error", f"プロバイダ '{provider}' はサポートされていません。")
        raise ValueError(f"providerは {list(models.keys())} のみ指定可能です")


def create_llm_service(
    provider: str = "openai",
    model: Optional[str] = None,
    temperature: float = 0.0,
    timeout: float = 60.0,
    max_retries: int = 3,
) -> LLMService:
    chat_model = create_chat_model(provider=provider, model=model, temperature=temperature)
    return LLMService(chat_model, provider=provider, model_name=model, timeout=timeout, max_retries=max_retries)
