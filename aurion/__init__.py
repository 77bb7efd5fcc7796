"""
Aurion self-edit package


Modules:
- self_edit: patch engine, backups, write fence, validation runner, proposal store, lifecycle orchestrator
- llm: chat-completion wrapper used to draft proposals
- memory: append-only memory journal (audit entries + keyword recall)
"""

__version__ = "0.2.0"
