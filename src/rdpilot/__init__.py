"""rdpilot - natural-language remote desktop assistant.

Chat requests become assistant commands (model-backed or rule-based), run
against one process-wide session orchestrator that is also exposed as an
MCP tool gateway over JSON-RPC.
"""

__version__ = "0.1.0"
