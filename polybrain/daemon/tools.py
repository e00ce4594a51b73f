"""MCP tools exposed by Polybrain.

ToolRouter holds the logic for each tool and raises PolybrainError
subclasses on failure. register_tools() wires the router into a FastMCP
server and turns every failure into an "Error: ..." text result, so one
bad request never takes the server down.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Annotated, Any, Dict, Optional, Tuple

from pydantic import Field

from polybrain.core.configs import ServerConfig
from polybrain.core.conversations import ConversationStore
from polybrain.core.errors import ModelNotConfigured, PolybrainError
from polybrain.daemon.protocol import serialize_error, serialize_result
from polybrain.providers.openai_compat import BackendClient

if TYPE_CHECKING:
    from mcp.server.fastmcp import FastMCP

logger = logging.getLogger(__name__)


class ToolRouter:
    """Routes tool calls to the conversation store and backend clients."""

    def __init__(
        self,
        config: ServerConfig,
        store: ConversationStore,
        clients: Optional[Dict[str, BackendClient]] = None,
    ):
        self.config = config
        self.store = store
        if clients is None:
            clients = {model.id: BackendClient.from_config(model) for model in config.models}
            for model in config.models:
                logger.debug("Registered model %s at %s", model.id, model.base_url)
        self.clients = clients

    def _require_model(self, model_id: str) -> BackendClient:
        client = self.clients.get(model_id)
        if client is None or self.config.get_model(model_id) is None:
            raise ModelNotConfigured(model_id)
        return client

    def resolve_conversation(
        self,
        conversation_id: Optional[str],
        model_id: Optional[str],
    ) -> Tuple[str, str]:
        """
        Pick the conversation and model a chat call should use.

        - No conversation id: create one for ``model_id`` (or the default model)
        - Same or no model: continue the existing conversation
        - Different model: clone the conversation onto that model

        The model is checked before anything is created or cloned.

        Raises:
            ConversationNotFound: If ``conversation_id`` is unknown
            ModelNotConfigured: If the target model is not in the config
        """
        if conversation_id:
            existing = self.store.get(conversation_id)
            if model_id and model_id != existing.model_id:
                self._require_model(model_id)
                return self.store.clone(conversation_id, model_id), model_id
            self._require_model(existing.model_id)
            return conversation_id, existing.model_id

        target = model_id or self.config.default_model.id
        self._require_model(target)
        return self.store.create(target), target

    async def chat(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        model_id: Optional[str] = None,
        reasoning: bool = False,
    ) -> Dict[str, Any]:
        """
        Send a message and record the exchange.

        The user message is appended before the backend call and stays in
        history if that call fails.

        Returns:
            {"conversationId", "response", "reasoning", "modelId"}
        """
        if not message:
            raise PolybrainError("Missing 'message' parameter")

        logger.debug(
            "Chat tool called conversation=%s model=%s", conversation_id, model_id
        )
        actual_id, actual_model = self.resolve_conversation(conversation_id, model_id)
        client = self._require_model(actual_model)
        model_name = self.config.get_model(actual_model).model_name

        self.store.append(actual_id, "user", message)
        history = self.store.history(actual_id)

        # The SDK call blocks; run it off the event loop
        result = await asyncio.to_thread(client.send, model_name, history, bool(reasoning))

        self.store.append(actual_id, "assistant", result.content)
        logger.info("Chat completed conversation=%s model=%s", actual_id, actual_model)

        return {
            "conversationId": actual_id,
            "response": result.content,
            "reasoning": result.reasoning,
            "modelId": actual_model,
        }

    def list_models(self) -> Dict[str, Any]:
        models = [model.public_info() for model in self.config.models]
        logger.debug("Listed %d models", len(models))
        return {"models": models}

    def history(self, conversation_id: str) -> Dict[str, Any]:
        """
        Truncated history of one conversation.

        Raises:
            ConversationNotFound: If ``conversation_id`` is unknown
        """
        conversation = self.store.get(conversation_id)
        messages = self.store.history(conversation_id)
        logger.debug(
            "Retrieved history conversation=%s messages=%d", conversation_id, len(messages)
        )
        return {
            "conversationId": conversation_id,
            "modelId": conversation.model_id,
            "messages": [m.to_dict() for m in messages],
        }


CHAT_DESCRIPTION = (
    "Send a message to one of the available LLM models. Use this when you need help "
    "from another model, want a second opinion on a problem, or need to discuss ideas "
    "with a different AI. Can start a new conversation, continue an existing one, or "
    "switch to a different model mid-conversation."
)
LIST_MODELS_DESCRIPTION = (
    "Get all the models you can chat with. Call this first to see which model is best "
    "for your question, or to find a specific model ID to use in the chat tool."
)
HISTORY_DESCRIPTION = (
    "See what you've already discussed with a specific model. Long conversations are "
    "automatically shortened to save context."
)


def register_tools(mcp: "FastMCP", router: ToolRouter) -> None:
    """Register chat, list_models and conversation_history on ``mcp``."""

    # Parameter names below are the wire schema seen by MCP clients.
    @mcp.tool(name="chat", description=CHAT_DESCRIPTION)
    async def chat(
        message: Annotated[str, Field(
            description="Your question or message to send to the other model."
        )],
        conversationId: Annotated[Optional[str], Field(
            description="ID of an existing conversation to continue. Leave empty to start a new one."
        )] = None,
        modelId: Annotated[Optional[str], Field(
            description=(
                "ID of model to use (see list_models). Passing a different modelId with an "
                "existing conversationId clones the conversation to that model and returns "
                "a new conversationId."
            )
        )] = None,
        reasoning: Annotated[Optional[bool], Field(
            description="Set to true to ask the model to show its thinking process."
        )] = None,
    ) -> str:
        try:
            result = await router.chat(
                message,
                conversation_id=conversationId,
                model_id=modelId,
                reasoning=bool(reasoning),
            )
        except PolybrainError as e:
            logger.warning("Chat tool error: %s", e)
            return serialize_error(e)
        except Exception as e:
            logger.exception("Unexpected chat tool error")
            return serialize_error(e)
        return serialize_result(result)

    @mcp.tool(name="list_models", description=LIST_MODELS_DESCRIPTION)
    async def list_models() -> str:
        return serialize_result(router.list_models())

    @mcp.tool(name="conversation_history", description=HISTORY_DESCRIPTION)
    async def conversation_history(
        conversationId: Annotated[str, Field(
            description="The ID of the conversation you want to review."
        )],
    ) -> str:
        try:
            return serialize_result(router.history(conversationId))
        except PolybrainError as e:
            return serialize_error(e)
        except Exception as e:
            logger.exception("Unexpected conversation_history tool error")
            return serialize_error(e)
