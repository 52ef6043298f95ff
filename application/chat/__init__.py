from application.chat.orchestrator import ChatOrchestrator, ChatSettings
from application.chat.prompts import Persona, build_system_prompt

__all__ = ["ChatOrchestrator", "ChatSettings", "Persona", "build_system_prompt"]
