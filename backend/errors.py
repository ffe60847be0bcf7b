"""Exception hierarchy for the chat pipeline and its collaborators."""


class ChatError(Exception):
    """Base class for every error raised by the chat pipeline."""


class AuthenticationError(ChatError):
    """No valid actor identity on the request."""


class ConversationAuthorizationError(ChatError):
    """The requested chat does not exist or belongs to another actor."""

    def __init__(self, chat_id):
        super().__init__(f"Chat {chat_id} not found or unauthorized")
        self.chat_id = chat_id


class ModelError(ChatError):
    """The generation backend failed, was unreachable, or returned unusable output."""


class UnknownModelError(ModelError):
    """A model identifier does not belong to any known provider family."""

    def __init__(self, model_id: str):
        super().__init__(f"Unrecognized model identifier: {model_id!r}")
        self.model_id = model_id


class ToolError(ChatError):
    """Base class for failures recovered into a tool result."""

    kind = "execution"


class ToolNotFoundError(ToolError):
    kind = "not_found"

    def __init__(self, tool_name: str):
        super().__init__(f"Tool '{tool_name}' not found")
        self.tool_name = tool_name


class ToolInputValidationError(ToolError):
    kind = "validation"


class ToolExecutionError(ToolError):
    kind = "execution"


class DocumentNotFoundError(ToolExecutionError):
    def __init__(self, document_id):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class DocumentAccessError(ToolExecutionError):
    def __init__(self, document_id):
        super().__init__(f"You do not have permission to access document {document_id}")
        self.document_id = document_id


class PersistenceError(ChatError):
    """Writing the transcript or conversation metadata failed."""
