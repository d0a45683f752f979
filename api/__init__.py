"""Pepper chat API service.

Main components:
- main.py: FastAPI application, middleware and health endpoints
- routers/chat.py: thread management and the streamed chat turn
- orchestrators/chat_orchestrator.py: one chat turn end to end
- composer/: prompts, language detection, context blocks, table reflow
- tools/quick_answers.py: answers extracted from case records
- llm/completion_relay.py: upstream streaming completions
"""

# Importing the package must not build the FastAPI app.
__all__ = []
