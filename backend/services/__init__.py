"""Services module - Business logic layer"""

from .config_manager import ConfigManager
from .llm_service import LLMService, call_llm_stream
from .session_store import SessionStore
from .stream_parser import IncrementalStreamParser, StreamContractError
from .stream_session import LoggingObserver, StreamObserver, StreamSessionController

__all__ = [
    "ConfigManager",
    "LLMService",
    "call_llm_stream",
    "SessionStore",
    "IncrementalStreamParser",
    "StreamContractError",
    "LoggingObserver",
    "StreamObserver",
    "StreamSessionController",
]
