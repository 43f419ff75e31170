#!/usr/bin/env python3
# ─────────────────────────────────────────────────────────────────────────────
# tempmail - A Disposable Email Client for the Terminal
# Copyright © 2024‑2025  zebbern  <https://github.com/zebbern>
# ─────────────────────────────────────────────────────────────────────────────
# Generates a throw‑away 1secmail address, lists the messages delivered to it
# and renders a selected message either in a terminal browser (w3m by
# default) or as plain text on stdout, including attachment links.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import argparse
import html
import json
import logging
import os
import random
import re
import shlex
import shutil
import string
import subprocess
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests
from bs4 import BeautifulSoup
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

VERSION = "1.2"

# Set up rich console with custom theme
custom_theme = Theme({
    "info": "cyan",
    "warning": "yellow",
    "error": "bold red",
    "success": "bold green",
    "email_from": "bold blue",
    "email_subject": "bold yellow",
    "email_date": "magenta",
    "header": "bold cyan",
})

console = Console(theme=custom_theme)
err_console = Console(theme=custom_theme, stderr=True)

# Logs go to stderr so that `--text` output stays pipeable
logging.basicConfig(
    level=logging.DEBUG if os.environ.get("DEBUG") else logging.WARNING,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, console=err_console)]
)

LOGGER = logging.getLogger("tempmail")

##############################################################################
# Errors
##############################################################################

class TempMailError(Exception):
    """Base exception for every fatal, user-facing condition."""
    pass

class DependencyMissingError(TempMailError):
    """A required external program is not installed."""
    pass

class InvalidAddressError(TempMailError):
    """A user-supplied address failed the domain, blacklist or shape checks."""
    pass

class MessageNotFoundError(TempMailError):
    """The service reported that the requested message does not exist."""

    def __init__(self, message_id: Optional[int] = None) -> None:
        super().__init__("No recent email found")
        self.message_id = message_id

class UnknownOptionError(TempMailError):
    pass

class NetworkError(TempMailError):
    """Network-related errors."""
    pass

class APIError(TempMailError):
    """API response errors."""
    pass

##############################################################################
# Configuration and state management
##############################################################################

CONFIG_DIR = Path.home() / ".tempmail"
CONFIG_FILENAME = "config.json"
DEFAULT_STORAGE_DIR = Path.home() / "tempmail"
ADDRESS_FILENAME = "email_address"
# Ends in .html even in text mode so browsers can open it
RENDER_FILENAME = "tempmail.html"

API_URL = "https://www.1secmail.com/api/v1/"
SHORTENER_URL = "https://is.gd/create.php?format=simple"

DEFAULT_DOMAINS = ("1secmail.com",)

DEFAULT_CONFIG: Dict[str, Any] = {
    "storage_dir": None,
    "browser": "w3m",
    "api_url": API_URL,
    "shortener_url": SHORTENER_URL,
    "domains": list(DEFAULT_DOMAINS),
    "timeout": None,
}

def default_config_dir() -> Path:
    """Return the configuration root, honoring ``TEMPMAIL_CONFIG_DIR``."""
    override = os.environ.get("TEMPMAIL_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return CONFIG_DIR

@dataclass(frozen=True)
class Address:
    username: str
    domain: str

    def __str__(self) -> str:
        return f"{self.username}@{self.domain}"

    @classmethod
    def parse(cls, text: str) -> "Address":
        username, _, domain = text.strip().rpartition("@")
        return cls(username=username, domain=domain)

class IdentityStore:
    """Persists the active address and the storage root between runs.

    The configuration root always exists and holds ``config.json``. The
    storage root (``~/tempmail`` unless overridden with :meth:`set_root`)
    holds the address file and the rendering slot.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        default_root: Path = DEFAULT_STORAGE_DIR,
    ) -> None:
        self.config_dir = Path(config_dir) if config_dir else default_config_dir()
        self.default_root = Path(default_root)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    def _stored_config(self) -> Dict[str, Any]:
        """Return only the keys present in the config file."""
        if not self.config_file.exists():
            return {}

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, ValueError) as e:
            LOGGER.warning(f"Failed to load config: {e}. Using defaults.")
            return {}

        if not isinstance(stored, dict):
            LOGGER.warning(f"Ignoring malformed config in {self.config_file}. Using defaults.")
            return {}

        return stored

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file or return defaults."""
        config = dict(DEFAULT_CONFIG)
        config.update(self._stored_config())
        return config

    def save_config(self, config: Dict[str, Any]) -> None:
        """Save configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)

    @property
    def root(self) -> Path:
        storage_dir = self.load_config().get("storage_dir")
        return Path(storage_dir) if storage_dir else self.default_root

    @property
    def address_file(self) -> Path:
        return self.root / ADDRESS_FILENAME

    @property
    def render_file(self) -> Path:
        return self.root / RENDER_FILENAME

    def load(self) -> Optional[Address]:
        """Return the saved address, or None when there is none yet."""
        try:
            with open(self.address_file, "r", encoding="utf-8") as f:
                line = f.readline().strip()
        except FileNotFoundError:
            return None
        return Address.parse(line) if line else None

    def save(self, address: Address) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.address_file.write_text(f"{address}\n", encoding="utf-8")
        LOGGER.debug(f"Saved address {address} to {self.address_file}")

    def set_root(self, path: str) -> Path:
        """Point all later runs at ``path``; relative paths live under $HOME."""
        root = Path(path).expanduser()
        if not root.is_absolute():
            root = Path.home() / root
        root.mkdir(parents=True, exist_ok=True)

        # Defaults stay out of the file
        config = self._stored_config()
        config["storage_dir"] = str(root)
        self.save_config(config)
        return root

##############################################################################
# Address generation
##############################################################################

USERNAME_LENGTH = 11
USERNAME_BLACKLIST = ("abuse", "webmaster", "contact", "postmaster", "hostmaster", "admin")

def _rand_string(n: int = 10) -> str:
    """Generate a random alphanumeric string of length n."""
    return "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(n))

def _address_pattern(domains: Sequence[str]) -> "re.Pattern[str]":
    alternatives = "|".join(re.escape(d) for d in domains)
    return re.compile(rf"[a-z0-9]+@({alternatives})")

def _blacklisted_word(username: str) -> Optional[str]:
    lowered = username.lower()
    for word in USERNAME_BLACKLIST:
        if word in lowered:
            return word
    return None

def generate_address(
    store: IdentityStore,
    custom: Optional[str] = None,
    domains: Sequence[str] = DEFAULT_DOMAINS,
    announce: bool = False,
) -> Address:
    """Create, save and optionally print a new address.

    Without ``custom`` a random username is used. A custom address keeps its
    local part; an unknown or missing domain is replaced by a random allowed
    one with a warning, never rejected. Blacklisted usernames and addresses
    that fail the shape check raise :class:`InvalidAddressError`.
    """
    if not domains:
        raise InvalidAddressError("No domains are configured for address generation")

    domain = random.choice(list(domains))

    if not custom:
        address = Address(_rand_string(USERNAME_LENGTH), domain)
    else:
        username, _, requested = custom.strip().lower().partition("@")
        if requested in domains:
            domain = requested
        else:
            LOGGER.warning(
                f"No valid domain added. Picking one randomly from [ {' '.join(domains)} ]"
            )
        address = Address(username, domain)

        if _blacklisted_word(username):
            blacklist = "\n".join(f"- {word}" for word in USERNAME_BLACKLIST)
            raise InvalidAddressError(
                "For security reasons, that username cannot be used. "
                f"Here are the blacklisted usernames:\n{blacklist}"
            )

        pattern = _address_pattern(domains)
        if not pattern.fullmatch(str(address)):
            raise InvalidAddressError(f"Provided email is invalid. Must match {pattern.pattern}")

    store.save(address)

    if announce:
        console.print(str(address), markup=False, highlight=False)

    return address

##############################################################################
# Inbox client
##############################################################################

NOT_FOUND_SENTINEL = "Message not found"

@dataclass
class MessageSummary:
    id: int
    sender: str
    subject: str
    date: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "MessageSummary":
        return cls(
            id=int(data["id"]),
            sender=data.get("from") or "",
            subject=data.get("subject") or "",
            date=data.get("date") or "",
        )

@dataclass
class Attachment:
    filename: str
    content_type: str = ""
    size: int = 0

@dataclass
class MessageDetail:
    id: int
    sender: str
    subject: str
    date: str
    html_body: str = ""
    text_body: str = ""
    attachments: List[Attachment] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: Dict[str, Any], message_id: int) -> "MessageDetail":
        attachments = [
            Attachment(
                filename=a.get("filename", ""),
                content_type=a.get("contentType", ""),
                size=a.get("size", 0),
            )
            for a in data.get("attachments") or []
        ]
        return cls(
            id=int(data.get("id", message_id)),
            sender=data.get("from") or "",
            subject=data.get("subject") or "",
            date=data.get("date") or "",
            html_body=data.get("htmlBody") or "",
            text_body=data.get("textBody") or "",
            attachments=attachments,
        )

    @property
    def body_html(self) -> str:
        """The HTML body, or the text body as preformatted content."""
        if self.html_body:
            return self.html_body
        return f"<pre>{html.escape(self.text_body)}</pre>"

def make_requests_session() -> requests.Session:
    """Create a requests session with proper headers."""
    session = requests.Session()
    session.headers.update({
        "User-Agent": f"tempmail/{VERSION} (https://github.com/zebbern)"
    })
    return session

class InboxClient:
    """Thin wrapper over the three 1secmail actions this tool needs."""

    def __init__(
        self,
        api_url: str = API_URL,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_url = api_url
        self.session = session or make_requests_session()
        self.timeout = timeout

    def _params(self, address: Address, action: str, **extra: Any) -> Dict[str, Any]:
        params = {"action": action, "login": address.username, "domain": address.domain}
        params.update(extra)
        return params

    def _get(self, params: Dict[str, Any]) -> requests.Response:
        try:
            res = self.session.get(self.api_url, params=params, timeout=self.timeout)
            res.raise_for_status()
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e
        return res

    @staticmethod
    def _json(res: requests.Response) -> Any:
        try:
            return res.json()
        except ValueError as e:
            raise APIError(f"API error: unexpected response {res.text[:80]!r}") from e

    def list_messages(self, address: Address) -> List[MessageSummary]:
        res = self._get(self._params(address, "getMessages"))
        data = self._json(res)
        if not isinstance(data, list):
            raise APIError(f"API error: expected a list of messages, got {type(data).__name__}")
        return [MessageSummary.from_json(m) for m in data]

    def read_message(self, address: Address, message_id: int) -> MessageDetail:
        res = self._get(self._params(address, "readMessage", id=message_id))
        # The service answers with plain text, not JSON, for unknown ids
        if res.text.strip() == NOT_FOUND_SENTINEL:
            raise MessageNotFoundError(message_id)
        data = self._json(res)
        if not isinstance(data, dict):
            raise APIError(f"API error: expected a message object, got {type(data).__name__}")
        return MessageDetail.from_json(data, message_id)

    def attachment_link(self, address: Address, message_id: int, filename: str) -> str:
        params = self._params(address, "download", id=message_id, file=filename)
        return requests.Request("GET", self.api_url, params=params).prepare().url

def shorten_url(
    link: str,
    session: Optional[requests.Session] = None,
    shortener_url: str = SHORTENER_URL,
    timeout: Optional[float] = None,
) -> str:
    """Return a short form of ``link``, or ``link`` itself if that fails."""
    session = session or make_requests_session()
    try:
        res = session.post(shortener_url, data={"url": link}, timeout=timeout)
        res.raise_for_status()
    except requests.RequestException as e:
        LOGGER.debug(f"Could not shorten {link}: {e}")
        return link

    short = res.text.strip()
    if not short.startswith(("http://", "https://")):
        LOGGER.debug(f"Shortener returned {short[:80]!r} for {link}")
        return link
    return short

##############################################################################
# Rendering
##############################################################################

class RenderMode(Enum):
    RICH = "rich"
    PLAIN = "plain"

W3M_HINT = "[ Press q to exit w3m ]"

@dataclass
class EmailDocument:
    to: str
    sender: str
    subject: str
    date: str
    body_html: str
    attachment_lines: List[str] = field(default_factory=list)
    hint: Optional[str] = None

    def to_html(self) -> str:
        parts = [
            '<meta charset="utf-8">\n',
            f"<pre><b>To: </b>{html.escape(self.to)}\n"
            f"<b>From: </b>{html.escape(self.sender)}\n"
            f"<b>Subject: </b>{html.escape(self.subject)}\n"
            f"<b>Date: </b>{html.escape(self.date)}</pre>\n",
            f"{self.body_html}\n",
        ]
        if self.attachment_lines:
            parts.append("<br><b>[Attachments]</b><br>")
            parts.extend(self.attachment_lines)
        if self.hint:
            parts.append(f" <br>{html.escape(self.hint)}")
        return "".join(parts) + "\n"

class Viewer:
    """Shows a rendered document and returns an exit status."""

    def show(self, path: Path) -> int:
        raise NotImplementedError

class ExternalProgram(Viewer):
    """Opens the document with a browser such as ``w3m`` or ``lynx -force_html``."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.command = shlex.split(name)

    def check(self) -> None:
        if not self.command or shutil.which(self.command[0]) is None:
            raise DependencyMissingError(f"Could not find '{self.name}', is it installed?")

    def show(self, path: Path) -> int:
        LOGGER.debug(f"Opening {path} with {self.name}")
        result = subprocess.run([*self.command, str(path)], check=False)
        if result.returncode != 0:
            LOGGER.warning(f"{self.name} exited with status {result.returncode}")
        return result.returncode

BLOCK_TAGS = ["p", "pre", "div", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6", "table"]

def html_to_text(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(BLOCK_TAGS):
        block.append("\n")
    lines = [line.rstrip() for line in soup.get_text().splitlines()]
    text = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", text).strip()

class NativeTextConverter(Viewer):
    """Prints the document as plain text with all HTML tags removed."""

    def show(self, path: Path) -> int:
        text = html_to_text(path.read_text(encoding="utf-8"))
        # A non-UTF-8 terminal gets replacement characters
        encoding = getattr(sys.stdout, "encoding", None) or "utf-8"
        print(text.encode(encoding, "replace").decode(encoding))
        return 0

class NullViewer(Viewer):
    def show(self, path: Path) -> int:
        return 0

def make_viewer(browser: str, text: bool) -> Viewer:
    if text:
        return NativeTextConverter()
    return ExternalProgram(browser)

def render_message(
    detail: MessageDetail,
    address: Address,
    client: InboxClient,
    mode: RenderMode,
    browser: Optional[str] = None,
    shorten: Callable[[str], str] = shorten_url,
) -> EmailDocument:
    """Build the document for ``detail`` as seen by ``address``."""
    lines = []
    for attachment in detail.attachments:
        link = client.attachment_link(address, detail.id, attachment.filename)
        name = html.escape(attachment.filename)
        if mode is RenderMode.PLAIN:
            # Download links are too long to read comfortably on stdout
            lines.append(f"{html.escape(shorten(link))}  [{name}]<br>")
        else:
            lines.append(f'<a href="{html.escape(link)}" download="{name}">{name}</a><br>')

    hint = W3M_HINT if mode is RenderMode.RICH and browser == "w3m" else None

    return EmailDocument(
        to=str(address),
        sender=detail.sender,
        subject=detail.subject,
        date=detail.date,
        body_html=detail.body_html,
        attachment_lines=lines,
        hint=hint,
    )

def write_document(document: EmailDocument, path: Path) -> Path:
    """Overwrite the rendering slot with ``document``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document.to_html(), encoding="utf-8")
    return path

##############################################################################
# Session orchestration
##############################################################################

@dataclass
class Session:
    store: IdentityStore
    client: InboxClient
    viewer: Viewer
    address: Address
    browser: str = "w3m"
    text_mode: bool = False
    shorten: Callable[[str], str] = shorten_url

    @property
    def mode(self) -> RenderMode:
        return RenderMode.PLAIN if self.text_mode else RenderMode.RICH

def resolve_identity(
    store: IdentityStore,
    domains: Sequence[str] = DEFAULT_DOMAINS,
) -> Address:
    """Return the saved address, silently generating one on first use."""
    address = store.load()
    if address is None:
        address = generate_address(store, domains=domains)
    return address

def list_inbox(session: Session) -> List[MessageSummary]:
    messages = session.client.list_messages(session.address)

    console.print(f"[header][ Inbox for {escape(str(session.address))} ][/]")

    if not messages:
        console.print("No new mail")
        return messages

    console.print("\nUse 'tempmail ID' to view email in detail.")

    table = Table(box=None, padding=(0, 2))
    table.add_column("#", style="cyan bold")
    table.add_column("ID", style="cyan")
    table.add_column("From", style="email_from")
    table.add_column("Subject", style="email_subject")
    table.add_column("Date", style="email_date")

    for idx, m in enumerate(messages, 1):
        table.add_row(str(idx), str(m.id), escape(m.sender), escape(m.subject), escape(m.date))

    console.print(table)
    return messages

def view_message(session: Session, message_id: int) -> int:
    detail = session.client.read_message(session.address, message_id)
    document = render_message(
        detail,
        session.address,
        session.client,
        session.mode,
        browser=session.browser,
        shorten=session.shorten,
    )
    path = write_document(document, session.store.render_file)
    return session.viewer.show(path)

def view_recent(session: Session) -> int:
    """Open the first message in the order the service lists them."""
    messages = session.client.list_messages(session.address)
    if not messages:
        raise MessageNotFoundError()
    return view_message(session, messages[0].id)

##############################################################################
# CLI - argument parsing, dispatcher
##############################################################################

def print_banner() -> None:
    """Print the ASCII art banner."""
    banner = r"""
  _____                     __  __       _ _
 |_   _|__ _ __ ___  _ __  |  \/  | __ _(_) |
   | |/ _ \ '_ ` _ \| '_ \ | |\/| |/ _` | | |
   | |  __/ | | | | | |_) || |  | | (_| | | |
   |_|\___|_| |_| |_| .__/ |_|  |_|\__,_|_|_|
                    |_|
    """
    console.print(banner, style="bold green", highlight=False)
    console.print("Say no to spam and keep your real address out of sign-up forms.\n")

class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UnknownOptionError(message)

def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="tempmail",
        allow_abbrev=False,
        usage="tempmail [-h | -v | -l | -d PATH]\n"
              "       tempmail -g [ADDRESS]\n"
              "       tempmail [-t | -b BROWSER] -r | ID",
        description="When called with one argument, tempmail shows the email "
                    "message with the specified ID.",
    )
    parser.add_argument(
        "message_id",
        nargs="?",
        type=int,
        metavar="ID",
        help="ID of the email message to view.",
    )
    parser.add_argument(
        "--browser", "-b",
        metavar="BROWSER",
        help="Browser used to render the HTML of the email (default: w3m).",
    )
    parser.add_argument(
        "--list", "-l",
        action="store_true",
        help="List all the received emails.",
    )
    parser.add_argument(
        "--directory", "-d",
        metavar="PATH",
        help="Set a custom directory to store everything related to tempmail.",
    )
    parser.add_argument(
        "--generate", "-g",
        nargs="?",
        const="",
        default=None,
        metavar="ADDRESS",
        help="Generate a new email address, either the specified ADDRESS or a random one.",
    )
    parser.add_argument(
        "--recent", "-r",
        action="store_true",
        help="View the most recent email message.",
    )
    parser.add_argument(
        "--text", "-t",
        action="store_true",
        help="View the email as raw text with all HTML tags removed.",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=VERSION,
    )
    return parser

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)

def _open_session(
    store: IdentityStore,
    config: Dict[str, Any],
    args: argparse.Namespace,
    viewing: bool = True,
) -> Session:
    browser = args.browser or config["browser"]
    viewer = make_viewer(browser, args.text) if viewing else NullViewer()
    if isinstance(viewer, ExternalProgram):
        viewer.check()

    timeout = config.get("timeout")
    client = InboxClient(api_url=config["api_url"], timeout=timeout)

    def shorten(link: str) -> str:
        return shorten_url(link, client.session, config["shortener_url"], timeout)

    return Session(
        store=store,
        client=client,
        viewer=viewer,
        address=resolve_identity(store, config["domains"]),
        browser=browser,
        text_mode=args.text,
        shorten=shorten,
    )

def run(argv: Optional[List[str]] = None) -> int:
    """Execute one invocation and return its exit status."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv:
        print_banner()
        build_parser().print_help()
        return 0

    args = parse_args(argv)
    store = IdentityStore()
    config = store.load_config()

    if args.directory:
        root = store.set_root(args.directory)
        console.print(
            f"From now on all data related to tempmail will be stored in [bold]{escape(str(root))}[/]",
            soft_wrap=True,
        )
        return 0

    if args.generate is not None:
        generate_address(store, args.generate or None, config["domains"], announce=True)
        return 0

    if args.list:
        list_inbox(_open_session(store, config, args, viewing=False))
        return 0

    if args.recent:
        return view_recent(_open_session(store, config, args))

    if args.message_id is not None:
        return view_message(_open_session(store, config, args), args.message_id)

    build_parser().print_help()
    return 0

def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the application."""
    try:
        status = run(argv)
    except TempMailError as e:
        LOGGER.debug(f"{type(e).__name__}: {e}")
        err_console.print(f"[error]Error:[/] {escape(str(e))}", highlight=False, soft_wrap=True)
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("\n[info]Stopped by user. Goodbye![/]")
        sys.exit(130)
    except Exception as e:
        LOGGER.error(f"Unexpected error: {e}")
        err_console.print(f"[error]An unexpected error occurred: {escape(str(e))}[/]")
        if os.environ.get("DEBUG"):
            err_console.print_exception()
        sys.exit(1)
    sys.exit(status)

##############################################################################
# Entry point
##############################################################################

if __name__ == "__main__":
    main()
