"""Prompts sent to the external model."""

from __future__ import annotations

from .services.conversation_store import ConversationContext

COMMAND_SYSTEM_PROMPT = """You are the command parser of a remote desktop (RDP) assistant.
Turn the user's request into exactly one JSON object with this shape:

{
  "action": "Connect" | "Disconnect" | "DisconnectAll" | "ListSessions" |
            "Screenshot" | "CreateProfile" | "LoadProfile" |
            "ChainedCommands" | "GeneralHelp" | "Unknown",
  "host": string or null,
  "username": string or null,
  "sessionId": string or null,
  "port": integer (default 3389),
  "screenshotMode": "session" | "application" | "fullscreen",
  "chainedCommands": [command objects] or null,
  "profileName": string or null,
  "explanation": short sentence for the user,
  "needsMoreInfo": boolean,
  "followUpQuestions": [strings] or null,
  "priority": integer
}

Rules:
- Connect needs host. Disconnect and Screenshot need sessionId. CreateProfile
  and LoadProfile need profileName. Set needsMoreInfo and ask a follow-up
  question when a required field is missing.
- sessionId may be a session id, a 1-based number from the session list,
  a host name, or "last" for the most recently opened session.
- Use ChainedCommands for several actions in one request; give each nested
  command a priority 1, 2, 3 ... in the order they must run.
- Use GeneralHelp for questions and put the answer in explanation.
- Never include passwords. Respond with JSON only, no prose."""


def build_user_prompt(text: str, ctx: ConversationContext | None, history_limit: int) -> str:
    """The user message plus recent history and known session context."""
    parts: list[str] = []
    if ctx is not None:
        recent = ctx.recent(history_limit)
        if recent:
            parts.append("Recent conversation:")
            parts.extend(f"{m.role}: {m.content}" for m in recent)
        known = {k: v for k, v in ctx.session_context.items() if isinstance(v, str | int)}
        if known:
            parts.append("Known context: " + ", ".join(f"{k}={v}" for k, v in sorted(known.items())))
    parts.append(f"User: {text}")
    parts.append("Respond with JSON only:")
    return "\n".join(parts)
