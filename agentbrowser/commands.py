"""
Command parsing: free-form argument tokens to a canonical command descriptor.

The first token selects a verb (case-insensitive); the remaining tokens are
positional arguments for that verb. Several surface verbs map onto one
canonical action, e.g. ``open``/``goto``/``navigate`` all become ``navigate``.

Parsing is pure: no file, socket or process access happens here.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from agentbrowser.errors import MissingArguments, UnknownCommand, UnknownSubcommand

# Single request per CLI process, so a constant correlation id is enough.
REQUEST_ID = "1"

DEFAULT_WAIT_MS = 1000

U64_MAX = 2**64 - 1
U32_MAX = 2**32 - 1

# Actions handled by the CLI itself instead of being sent to the worker.
LOCAL_ACTIONS = frozenset({"daemon", "mcp", "listSessions", "cleanSessions"})

SESSION_SUBCOMMANDS = ("list", "clean")

_UNSIGNED_RE = re.compile(r"^\+?[0-9]+$")

# Wire names that differ from the attribute names.
_WIRE_NAMES = {"full_page": "fullPage"}


@dataclass(frozen=True)
class CommandDescriptor:
    """One fully-resolved command, ready to be sent to the daemon."""
    action: str
    id: str = REQUEST_ID
    url: Optional[str] = None
    selector: Optional[str] = None
    text: Optional[str] = None
    value: Optional[str] = None
    key: Optional[str] = None
    path: Optional[str] = None
    interactive: Optional[bool] = None
    full_page: Optional[bool] = None
    timeout: Optional[int] = None

    @property
    def is_local(self) -> bool:
        return self.action in LOCAL_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        """
        Wire form of the descriptor.

        Unset fields are left out entirely rather than sent as null, so the
        worker can apply its own defaults.
        """
        payload: Dict[str, Any] = {"id": self.id, "action": self.action}
        for name, value in asdict(self).items():
            if name in payload or value is None:
                continue
            payload[_WIRE_NAMES.get(name, name)] = value
        return payload


@dataclass
class CommandOptions:
    """Per-invocation settings that influence the descriptor."""
    timeout: Optional[int] = None
    full_page: bool = False


# ============================================================================
# Numeric-or-text arguments (wait, switchpage)
# ============================================================================

@dataclass(frozen=True)
class NumericArg:
    number: int


@dataclass(frozen=True)
class TextArg:
    text: str


Argument = Union[NumericArg, TextArg]


def classify_argument(token: str, limit: int = U64_MAX) -> Argument:
    """
    Resolve a token as a non-negative integer first, falling back to text.

    Args:
        token: Raw argument token
        limit: Largest value accepted as numeric

    Returns:
        NumericArg when the token is an unsigned integer within ``limit``,
        TextArg otherwise
    """
    if _UNSIGNED_RE.match(token):
        number = int(token)
        if number <= limit:
            return NumericArg(number)
    return TextArg(token)


# ============================================================================
# Verb handlers
# ============================================================================

Handler = Callable[[List[str], CommandOptions], CommandDescriptor]


def _require(rest: List[str], count: int, context: str, usage: str) -> None:
    if len(rest) < count:
        raise MissingArguments(context=context, usage=usage)


def _plain(action: str) -> Handler:
    def handler(rest: List[str], options: CommandOptions) -> CommandDescriptor:
        return CommandDescriptor(action=action)
    return handler


def _selector(action: str, context: str, usage: str, timed: bool = True) -> Handler:
    """Handler for verbs taking exactly one required selector."""
    def handler(rest: List[str], options: CommandOptions) -> CommandDescriptor:
        _require(rest, 1, context, usage)
        return CommandDescriptor(
            action=action,
            selector=rest[0],
            timeout=options.timeout if timed else None,
        )
    return handler


def _optional_field(action: str, field_name: str) -> Handler:
    """Handler for verbs whose single positional argument is optional."""
    def handler(rest: List[str], options: CommandOptions) -> CommandDescriptor:
        if not rest:
            return CommandDescriptor(action=action)
        return CommandDescriptor(action=action, **{field_name: rest[0]})
    return handler


def _navigate(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 1, "navigate", "navigate <url>")
    return CommandDescriptor(action="navigate", url=rest[0], timeout=options.timeout)


def _type(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 2, "type", "type <selector|ref> <text>")
    return CommandDescriptor(
        action="type",
        selector=rest[0],
        text=" ".join(rest[1:]),
        timeout=options.timeout,
    )


def _fill(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 2, "fill", "fill <selector|ref> <value>")
    return CommandDescriptor(
        action="fill",
        selector=rest[0],
        value=" ".join(rest[1:]),
        timeout=options.timeout,
    )


def _select(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 2, "select", "select <selector|ref> <value|label|index>")
    return CommandDescriptor(
        action="select",
        selector=rest[0],
        value=rest[1],
        timeout=options.timeout,
    )


def _press(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 1, "press", "press <key> [selector]")
    return CommandDescriptor(
        action="press",
        key=rest[0],
        selector=rest[1] if len(rest) > 1 else None,
        timeout=options.timeout,
    )


def _snapshot(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    return CommandDescriptor(
        action="snapshot",
        interactive=True,
        selector=rest[0] if rest else None,
    )


def _screenshot(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    return CommandDescriptor(
        action="screenshot",
        path=rest[0] if rest else None,
        full_page=True if options.full_page else None,
        timeout=options.timeout,
    )


def _wait(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    if not rest:
        return CommandDescriptor(action="wait", timeout=DEFAULT_WAIT_MS)

    arg = classify_argument(rest[0])
    if isinstance(arg, NumericArg):
        return CommandDescriptor(action="wait", timeout=arg.number)
    return CommandDescriptor(action="waitForSelector", selector=arg.text)


def _switch_page(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 1, "switchpage", "switchpage <index|url|title>")
    arg = classify_argument(rest[0], limit=U32_MAX)
    if isinstance(arg, NumericArg):
        return CommandDescriptor(action="switchPage", value=str(arg.number))
    return CommandDescriptor(action="switchPage", url=arg.text)


def _evaluate(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 1, "eval", "eval <script>")
    return CommandDescriptor(action="evaluate", text=" ".join(rest))


def _session(rest: List[str], options: CommandOptions) -> CommandDescriptor:
    _require(rest, 1, "session", "session <list|clean>")
    subcommand = rest[0].lower()
    if subcommand == "list":
        return CommandDescriptor(action="listSessions")
    if subcommand == "clean":
        return CommandDescriptor(action="cleanSessions")
    raise UnknownSubcommand(subcommand=rest[0], valid_options=SESSION_SUBCOMMANDS)


def _build_verb_table() -> Dict[str, Handler]:
    table: Dict[str, Handler] = {}

    def register(handler: Handler, *verbs: str) -> None:
        for verb in verbs:
            table[verb] = handler

    # Lifecycle
    register(_plain("daemon"), "daemon")
    register(_plain("mcp"), "mcp")
    register(_session, "session")
    register(_plain("launch"), "launch")
    register(_plain("close"), "close")

    # Navigation
    register(_navigate, "navigate", "open", "goto")
    register(_plain("back"), "back")
    register(_plain("forward"), "forward")
    register(_plain("reload"), "reload", "refresh")

    # Interaction
    register(_selector("click", "click", "click <selector|ref>"), "click")
    register(
        _selector("dblclick", "dblclick", "dblclick <selector|ref>", timed=False),
        "dblclick", "doubleclick",
    )
    register(_type, "type")
    register(_fill, "fill")
    for verb in ("clear", "check", "uncheck", "hover", "focus"):
        register(_selector(verb, verb, f"{verb} <selector|ref>"), verb)
    register(_select, "select")
    register(_press, "press")
    register(_optional_field("scroll", "selector"), "scroll")

    # Information
    register(_snapshot, "snapshot")
    register(_screenshot, "screenshot")
    register(_plain("getTitle"), "title", "gettitle")
    register(_plain("getUrl"), "url", "geturl")
    register(_selector("getText", "text", "text <selector|ref>"), "text", "gettext")
    register(_optional_field("getHtml", "selector"), "html", "gethtml")
    register(
        _selector("getValue", "value", "value <selector|ref>", timed=False),
        "value", "getvalue",
    )
    register(
        _selector("getCount", "count", "count <selector>", timed=False),
        "count", "getcount",
    )

    # State checks
    register(
        _selector("isVisible", "visible", "visible <selector|ref>", timed=False),
        "visible", "isvisible",
    )
    register(
        _selector("isEnabled", "enabled", "enabled <selector|ref>", timed=False),
        "enabled", "isenabled",
    )
    register(
        _selector("isChecked", "checked", "checked <selector|ref>", timed=False),
        "checked", "ischecked",
    )

    # Wait
    register(_wait, "wait")

    # Frames
    register(_plain("getFrames"), "frames", "getframes")
    register(
        _selector("switchToFrame", "frame", "frame <selector|name|url>", timed=False),
        "frame", "switchtoframe",
    )
    register(_plain("switchToMainFrame"), "mainframe")

    # Pages
    register(_plain("getPages"), "pages", "getpages")
    register(_optional_field("newPage", "url"), "newpage")
    register(_switch_page, "switchpage")
    register(_plain("closePage"), "closepage")

    # JavaScript
    register(_evaluate, "eval", "evaluate")

    # Cookies and storage
    register(_plain("getCookies"), "cookies", "getcookies")
    register(_plain("clearCookies"), "clearcookies")
    register(_optional_field("getLocalStorage", "key"), "localstorage", "getlocalstorage")
    register(_plain("clearLocalStorage"), "clearlocalstorage")

    # Other
    register(_optional_field("pdf", "path"), "pdf")
    register(_plain("startStream"), "stream", "startstream")
    register(_plain("stopStream"), "stopstream")

    return table


VERBS: Dict[str, Handler] = _build_verb_table()


def parse_command(
    tokens: Sequence[str],
    options: Optional[CommandOptions] = None,
) -> CommandDescriptor:
    """
    Translate argument tokens into a command descriptor.

    Args:
        tokens: Verb followed by its positional arguments (flags removed)
        options: Caller settings such as the configured timeout

    Returns:
        CommandDescriptor with a canonical action

    Raises:
        MissingArguments: Empty input or too few arguments for the verb
        UnknownCommand: Verb has no mapping
        UnknownSubcommand: Verb takes a subcommand that is not recognised
    """
    if not tokens:
        raise MissingArguments(context="command", usage="<command> [arguments]")

    options = options or CommandOptions()
    verb = tokens[0].lower()
    rest = list(tokens[1:])

    handler = VERBS.get(verb)
    if handler is None:
        raise UnknownCommand(command=verb)
    return handler(rest, options)
