"""Deterministic intent rules used when no external model is available.

Rules are evaluated in a fixed order and the first match wins:

1. save/create + profile/connection  -> CreateProfile
2. load + profile                    -> LoadProfile
3. and/then + two action families    -> ChainedCommands (decomposed)
4. disconnect all / close all        -> DisconnectAll
5. disconnect / close / end session  -> Disconnect
6. list / sessions / status          -> ListSessions
7. screenshot / capture              -> Screenshot
8. connect / rdp / remote to         -> Connect
9. anything else                     -> GeneralHelp with a canned reply

Keywords match at the start of a word ("connection" counts as "connect",
"disconnect" does not) and are never looked for inside host names.
"""

from __future__ import annotations

import re

from .commands import ActionType, Command, ScreenshotMode
from .config import RDP_DEFAULTS

_TRAILING = ".,;:!?)]}\"'>"
_LEADING = "([{\"'<"

# Words that follow "connect to" but never name a host.
_HOST_STOPWORDS = frozenset(
    {
        "a", "an", "the", "my", "our", "this", "that", "it", "server", "host",
        "machine", "computer", "remote", "and", "then", "session", "sessions",
        "to", "into", "as", "with", "please", "now", "screen", "profile",
        "profiles", "for", "again", "me",
    }
)

# Words that follow "session" / "profile" / "as" but never name anything.
_REF_STOPWORDS = frozenset(
    {
        "a", "an", "the", "of", "for", "on", "with", "and", "then", "to", "from",
        "as", "is", "please", "now", "profile", "connection", "this", "that", "it",
        "my", "named", "called",
    }
)

_I = re.IGNORECASE

_LAST_SESSION_RE = re.compile(r"\b(?:last|latest|current|this|that)\s+(?:session|connection)\b", _I)
_SESSION_REF_RE = re.compile(r"\bsession(?:\s+|\s*#\s*)(?:number\s+|id\s+)?([a-z0-9][\w.:-]*)", _I)
_HASH_REF_RE = re.compile(r"#\s*(\d+)\b")
_HEX_ID_RE = re.compile(r"[0-9a-f]{8,}", _I)
_VERB_NUMBER_RE = re.compile(
    r"\b(?:disconnect|close|end|screenshot|capture)\s+(?:of\s+|from\s+)?(\d+)\b", _I
)
_CONNECT_TARGET_RE = re.compile(
    r"\b(?:connect(?:ion)?|rdp|remote)\s+(?:(?:to|into|with)\s+)?([^\s,;]+)", _I
)
_HOSTNAME_RE = re.compile(r"[\w][\w.-]*(?::\d+)?")
_USERNAME_RE = re.compile(r"\b(?:as|username|user)\s+([^\s,;]+)", _I)
_PORT_RE = re.compile(r"\bport\s+(\d{1,5})\b", _I)
_NAMED_RE = re.compile(r"\b(?:named|called)\s+[\"']?([\w.-]+)", _I)
_AS_PROFILE_RE = re.compile(r"\bas\s+(?:an?\s+|the\s+)?(.+?)\s+profile\b", _I)
_PROFILE_TOKEN_RE = re.compile(r"\bprofile\s+[\"']?([\w.-]+)", _I)


def _clean_token(token: str) -> str:
    return token.lstrip(_LEADING).rstrip(_TRAILING)


def _is_host_token(token: str) -> bool:
    cleaned = _clean_token(token)
    return "." in cleaned and "@" not in cleaned


def _looks_like_ref(token: str) -> bool:
    """A list position, an id-like token or a dotted host; plain words never are."""
    return any(c.isdigit() for c in token) or "." in token or bool(_HEX_ID_RE.fullmatch(token))


def _keywords(text: str) -> str:
    """Lowercased text with host-like tokens removed, for keyword tests."""
    return " ".join(w for w in text.lower().split() if not _is_host_token(w))


def _has(lower: str, *keywords: str) -> bool:
    return any(re.search(r"\b" + re.escape(k), lower) for k in keywords)


def _has_word(lower: str, *words: str) -> bool:
    return any(re.search(r"\b" + re.escape(w) + r"\b", lower) for w in words)


# =============================================================================
# Action families
# =============================================================================


def _is_create_profile(lower: str) -> bool:
    return _has(lower, "save", "create") and _has(lower, "profile", "connection")


def _is_load_profile(lower: str) -> bool:
    return _has(lower, "load") and _has(lower, "profile")


def _is_connect(lower: str) -> bool:
    return _has(lower, "connect", "rdp") or bool(re.search(r"\bremote\s+(?:to|into)\b", lower))


def _is_disconnect(lower: str) -> bool:
    return _has(lower, "disconnect", "close") or _has_word(lower, "end session")


def _is_disconnect_all(lower: str) -> bool:
    return "disconnect all" in lower or "close all" in lower


def _is_screenshot(lower: str) -> bool:
    return _has(lower, "screenshot", "capture")


def _is_list(lower: str) -> bool:
    return _has(lower, "list", "sessions", "status")


def _families(lower: str) -> set[str]:
    found: set[str] = set()
    if _is_connect(lower):
        found.add("connect")
    if _is_screenshot(lower):
        found.add("screenshot")
    if _is_disconnect(lower):
        found.add("disconnect")
    if _has_word(lower, "list"):
        found.add("list")
    return found


# =============================================================================
# Entity extraction
# =============================================================================


def extract_host(text: str) -> tuple[str | None, int | None]:
    """Return ``(host, port)`` found in ``text``.

    The host is the first token containing a dot and no ``@`` once trailing
    punctuation is stripped; failing that, the word right after a connect
    phrase when it looks like a hostname. A ``:port`` suffix is split off.
    """
    for raw in text.split():
        if not _is_host_token(raw):
            continue
        host, port = _split_port(_clean_token(raw))
        if host and "." in host:
            return host, port

    match = _CONNECT_TARGET_RE.search(text)
    if match:
        token = _clean_token(match.group(1))
        if token.lower() not in _HOST_STOPWORDS and _HOSTNAME_RE.fullmatch(token):
            host, port = _split_port(token)
            if host and host.lower() not in _HOST_STOPWORDS:
                return host, port
    return None, None


def _split_port(token: str) -> tuple[str, int | None]:
    if ":" not in token:
        return token, None
    host, _, port_text = token.rpartition(":")
    if port_text.isdigit() and RDP_DEFAULTS.MIN_PORT <= int(port_text) <= RDP_DEFAULTS.MAX_PORT:
        return _clean_token(host), int(port_text)
    return _clean_token(host), None


def extract_port(text: str) -> int | None:
    match = _PORT_RE.search(text)
    if match:
        port = int(match.group(1))
        if RDP_DEFAULTS.MIN_PORT <= port <= RDP_DEFAULTS.MAX_PORT:
            return port
    return None


def extract_username(text: str) -> str | None:
    """Token following the word "as" (or "user" / "username")."""
    for match in _USERNAME_RE.finditer(text):
        candidate = _clean_token(match.group(1))
        if candidate and candidate.lower() not in _REF_STOPWORDS:
            return candidate
    return None


def extract_session_ref(text: str) -> str | None:
    """Find a session reference: an id, a list position, a host or "last"."""
    if _LAST_SESSION_RE.search(text):
        return "last"

    for match in _SESSION_REF_RE.finditer(text):
        candidate = _clean_token(match.group(1))
        if candidate and _looks_like_ref(candidate):
            return candidate

    for pattern in (_HASH_REF_RE, _VERB_NUMBER_RE):
        match = pattern.search(text)
        if match:
            return match.group(1)

    for raw in text.split():
        if _is_host_token(raw):
            host, _port = _split_port(_clean_token(raw))
            if "." in host:
                return host
    return None


def extract_profile_name(text: str, *, host: str | None = None) -> str | None:
    match = _NAMED_RE.search(text)
    if match:
        return _clean_token(match.group(1)) or None

    if host:
        return host

    match = _AS_PROFILE_RE.search(text)
    if match:
        words = [w for w in match.group(1).split() if w.lower() not in _REF_STOPWORDS]
        if words:
            return " ".join(_clean_token(w) for w in words)

    match = _PROFILE_TOKEN_RE.search(text)
    if match:
        candidate = _clean_token(match.group(1))
        if candidate and candidate.lower() not in _REF_STOPWORDS:
            return candidate
    return None


def screenshot_mode(text: str) -> ScreenshotMode:
    lower = _keywords(text)
    if "fullscreen" in lower or "full screen" in lower or "full-screen" in lower:
        return ScreenshotMode.FULLSCREEN
    if _has_word(lower, "app") or _has(lower, "application"):
        return ScreenshotMode.APPLICATION
    return ScreenshotMode.SESSION


# =============================================================================
# Single-command rules
# =============================================================================


def _create_profile(text: str) -> Command:
    host, port = extract_host(text)
    name = extract_profile_name(text, host=host)
    # In "save this as prod profile" the word after "as" is the name.
    username = None if _AS_PROFILE_RE.search(text) else extract_username(text)
    cmd = Command(
        action=ActionType.CREATE_PROFILE,
        host=host,
        username=username,
        port=port or extract_port(text) or RDP_DEFAULTS.PORT,
        profile_name=name,
        explanation=f"Saving connection profile {name}" if name else "Saving a connection profile",
    )
    if not name:
        cmd.needs_more_info = True
        cmd.follow_up_questions = ["What should I name this profile?"]
    return cmd


def _load_profile(text: str) -> Command:
    name = extract_profile_name(text)
    cmd = Command(
        action=ActionType.LOAD_PROFILE,
        profile_name=name,
        explanation=f"Loading profile {name}" if name else "Loading a saved profile",
    )
    if not name:
        cmd.needs_more_info = True
        cmd.follow_up_questions = ["Which profile would you like to load?"]
    return cmd


def _disconnect(text: str) -> Command:
    ref = extract_session_ref(text)
    cmd = Command(
        action=ActionType.DISCONNECT,
        session_id=ref,
        explanation=f"Disconnecting session {ref}" if ref else "Disconnect request detected",
    )
    if not ref:
        cmd.needs_more_info = True
        cmd.follow_up_questions = ["Which session would you like to disconnect?"]
    return cmd


def _screenshot(text: str) -> Command:
    ref = extract_session_ref(text)
    mode = screenshot_mode(text)
    cmd = Command(
        action=ActionType.SCREENSHOT,
        session_id=ref,
        screenshot_mode=mode,
        explanation=(
            f"Capturing a {mode.value} screenshot of session {ref}"
            if ref
            else "Screenshot request detected"
        ),
    )
    if not ref:
        cmd.needs_more_info = True
        cmd.follow_up_questions = ["Which session would you like to capture?"]
    return cmd


def _connect(text: str) -> Command:
    host, port = extract_host(text)
    username = extract_username(text)
    cmd = Command(
        action=ActionType.CONNECT,
        host=host,
        username=username,
        port=port or extract_port(text) or RDP_DEFAULTS.PORT,
    )
    if host:
        cmd.explanation = f"Connecting to {host}" + (f" as {username}" if username else "")
    else:
        cmd.explanation = "I'll help you create a new RDP connection."
        cmd.needs_more_info = True
        cmd.follow_up_questions = ["What server would you like to connect to?"]
        if not username:
            cmd.follow_up_questions.append("What username should I use?")
    return cmd


def classify_single(text: str) -> Command | None:
    """Apply every rule except chaining to one command's worth of text.

    Returns None when no action keyword is present.
    """
    lower = _keywords(text)
    if _is_create_profile(lower):
        return _create_profile(text)
    if _is_load_profile(lower):
        return _load_profile(text)
    if _is_disconnect_all(lower):
        return Command(action=ActionType.DISCONNECT_ALL, explanation="Disconnecting all active sessions")
    if _is_disconnect(lower):
        return _disconnect(text)
    if _is_list(lower):
        return Command(action=ActionType.LIST_SESSIONS, explanation="Listing active sessions")
    if _is_screenshot(lower):
        return _screenshot(text)
    if _is_connect(lower):
        return _connect(text)
    return None


# =============================================================================
# Chains
# =============================================================================


def is_chained(text: str) -> bool:
    lower = _keywords(text)
    if not _has_word(lower, "and", "then"):
        return False
    # "disconnect all" always wins over chaining.
    if _is_disconnect_all(lower):
        return False
    families = _families(lower)
    if len(families) >= 2:
        return True
    # "connect to a.com and b.com"
    if families == {"connect"}:
        return sum(1 for w in text.split() if _is_host_token(w)) >= 2
    return False


def split_fragments(text: str) -> list[str]:
    """Split on the words "and" / "then" and on commas and semicolons."""
    fragments: list[str] = []
    current: list[str] = []

    def flush() -> None:
        if current:
            fragments.append(" ".join(current))
            current.clear()

    for raw in text.split():
        if raw.lower() in {"and", "then"}:
            flush()
            continue
        if raw.endswith((",", ";")):
            word = raw.rstrip(",;")
            if word:
                current.append(word)
            flush()
            continue
        current.append(raw)
    flush()
    return fragments


def decompose_chain(text: str) -> list[Command]:
    """Split chained text into ordered sub-commands, priorities 1..n.

    Best effort: fragments without an action keyword are dropped, except a
    bare host right after a connect, which becomes another connect.
    """
    steps: list[Command] = []
    opened_session = False
    for fragment in split_fragments(text):
        cmd = classify_single(fragment)
        if cmd is None:
            previous = steps[-1] if steps else None
            host, port = extract_host(fragment)
            if previous is None or previous.action is not ActionType.CONNECT or not host:
                continue
            username = extract_username(fragment) or previous.username
            cmd = Command(
                action=ActionType.CONNECT,
                host=host,
                username=username,
                port=port or RDP_DEFAULTS.PORT,
                explanation=f"Connecting to {host}",
            )

        targets_session = cmd.action in (ActionType.SCREENSHOT, ActionType.DISCONNECT)
        if targets_session and not cmd.session_id and opened_session:
            cmd.session_id = "last"
            cmd.needs_more_info = False
            cmd.follow_up_questions = []
        if cmd.action in (ActionType.CONNECT, ActionType.LOAD_PROFILE):
            opened_session = True

        steps.append(cmd)

    return [step.with_priority(i) for i, step in enumerate(steps, start=1)]


def _chain(text: str) -> Command | None:
    steps = decompose_chain(text)
    if not steps:
        return None
    return Command(
        action=ActionType.CHAINED_COMMANDS,
        chained_commands=steps,
        explanation="Running " + ", then ".join(step.describe() for step in steps),
        needs_more_info=any(step.needs_more_info for step in steps),
        follow_up_questions=[q for step in steps for q in step.follow_up_questions],
    )


# =============================================================================
# Entry point
# =============================================================================


def parse_fallback(text: str | None) -> Command:
    """Resolve ``text`` into a command without any external model. Never raises."""
    text = text or ""
    lower = _keywords(text)

    if _is_create_profile(lower):
        return _create_profile(text)
    if _is_load_profile(lower):
        return _load_profile(text)
    if is_chained(text):
        chained = _chain(text)
        if chained is not None:
            return chained

    cmd = classify_single(text)
    if cmd is not None:
        return cmd
    return Command(action=ActionType.GENERAL_HELP, explanation=canned_reply(text))


# =============================================================================
# Canned replies
# =============================================================================

_GREETING = "Hello! I can open, list, capture and close RDP sessions for you. What would you like to do?"

_HELP = (
    "Here is what I can do:\n"
    "- connect to <host> [as <user>]\n"
    "- list sessions\n"
    "- take a screenshot of session <n> (session, application or fullscreen)\n"
    "- disconnect session <n>, or disconnect all\n"
    "- save this connection as a profile named <name>, load profile <name>\n"
    "You can chain requests with 'and' / 'then'."
)

_TROUBLESHOOTING = (
    "Common RDP problems to check:\n"
    "- authentication failures: verify the username and password\n"
    "- network reachability: make sure the host answers on the network\n"
    "- firewalls: TCP port 3389 must be open\n"
    "- the Remote Desktop service must be enabled on the server\n"
    "What error are you seeing?"
)

_SECURITY = (
    "RDP security checklist:\n"
    "- use strong passwords and multi-factor authentication where possible\n"
    "- keep Network Level Authentication (NLA) enabled\n"
    "- restrict access by source address\n"
    "- keep client and server patched"
)

_PERFORMANCE = (
    "To speed up a slow RDP session:\n"
    "- lower the colour depth (16-bit instead of 32-bit)\n"
    "- disable audio redirection you don't need\n"
    "- turn off desktop effects on the remote machine\n"
    "- pick a connection speed that matches your network"
)

_CONNECTION = (
    "To open an RDP connection I need the server address and a username. "
    "Try: connect to server.example.com as admin"
)

_DEFAULT = (
    "I help with RDP connections, sessions, screenshots, profiles and troubleshooting. "
    "Try 'help' to see example requests."
)

_EMPTY = "I didn't catch that. Try 'help' to see what I can do."


def canned_reply(text: str | None) -> str:
    lower = (text or "").strip().lower()
    if not lower:
        return _EMPTY
    if _has_word(lower, "hello", "hi", "hey") or lower.startswith(("good morning", "good evening")):
        return _GREETING
    if _has(lower, "error", "problem", "issue", "fail", "can't", "cannot", "trouble", "broken"):
        return _TROUBLESHOOTING
    if _has(lower, "security", "secure", "safe", "protect", "encrypt"):
        return _SECURITY
    if _has(lower, "slow", "lag", "performance", "speed", "bandwidth"):
        return _PERFORMANCE
    if _has(lower, "remote", "server", "host"):
        return _CONNECTION
    if _has(lower, "help", "how", "what", "guide", "tutorial"):
        return _HELP
    return _DEFAULT
