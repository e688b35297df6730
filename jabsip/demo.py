"""Command-line demo showcasing a signaling session.

This script signs an account in to its XMPP server, reports which contacts
run the application and, optionally, announces a SipInfo to every peer that
comes online. It is intended for manual experimentation rather than
automated testing.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import (
	ApprovalPolicy,
	AutoApprove,
	AutoDecline,
	ConnectionState,
	ConsoleApproval,
	EventName,
	Events,
	JsonFileSettings,
	ManualApproval,
	MemorySettings,
	Session,
	SessionConfig,
	SipInfo,
	event_handler,
)
from ._config import AccountConfig


CONSOLE = Console()

_APPROVAL_POLICIES = {
	"ask": ConsoleApproval,
	"accept": AutoApprove,
	"decline": AutoDecline,
	"manual": ManualApproval,
}


class DemoEvents(Events):
	"""Logs every notification and announces our SipInfo to new peers."""

	def __init__(self, announce: Optional[SipInfo] = None, contacts: Optional[list] = None) -> None:
		self.session: Optional[Session] = None
		self.announce = announce
		self.contacts = list(contacts or [])
		self.versions: dict = {}
		self.seen: dict = {}
		self.disconnected = asyncio.Event()
		super().__init__()

	@event_handler(EventName.CONNECTION_STATE_CHANGED)
	def on_state(self, event) -> None:
		logging.info(f"Connection {event.previous.name} -> {event.state.name}")
		if event.state is ConnectionState.CONNECTED and self.session is not None:
			for contact in self.contacts:
				self.session.add_contact(contact)
		if event.state is ConnectionState.DISCONNECTED:
			self.disconnected.set()

	@event_handler(EventName.PEER_ONLINE)
	def on_peer_online(self, event) -> None:
		self.seen[str(event.jid)] = True
		logging.info(f"[green]Peer online[/]: {event.jid}", extra={"markup": True})
		if self.announce is not None and self.session is not None:
			self.session.send_msg(event.jid, self.announce)

	@event_handler(EventName.PEER_OFFLINE)
	def on_peer_offline(self, event) -> None:
		self.seen[str(event.jid)] = False
		logging.info(f"[red]Peer offline[/]: {event.jid}", extra={"markup": True})

	@event_handler(EventName.SOFTWARE_VERSION_RECEIVED)
	def on_version(self, event) -> None:
		self.versions[str(event.jid)] = event.version
		logging.info(f"{event.jid} runs {event.version}")

	@event_handler(EventName.SIP_INFO_RECEIVED)
	def on_sip_info(self, event) -> None:
		logging.info(f"SipInfo from {event.sender}: {event.info}")

	@event_handler(EventName.MESSAGE_RECEIVED)
	def on_message(self, event) -> None:
		logging.info(f"Chat from {event.sender}: {event.body}")

	@event_handler(EventName.APPROVAL_REQUESTED)
	def on_approval(self, event) -> None:
		logging.info(f"Subscription request from {event.jid}")

	@event_handler(EventName.JID_CHANGED)
	def on_jid_changed(self, event) -> None:
		logging.info(f"Server bound us as {event.jid}")

	@event_handler(EventName.ERROR)
	def on_error(self, event) -> None:
		logging.error(f"{event.kind.name}: {event.message}")


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="Run a jabsip signaling session")
	parser.add_argument("jid", nargs="?", help="Account JID (a missing domain gets @jabber.org)")
	parser.add_argument("--password", default="", help="Account password")
	parser.add_argument("--server", default="", help="Server host (default: DNS lookup)")
	parser.add_argument("--port", type=int, default=5222, help="Server port")
	parser.add_argument(
		"--settings",
		help="JSON settings file to read the account from (and store it in)",
	)
	parser.add_argument("--plugin-id", default="jabber-demo", help="Account namespace in the settings")
	parser.add_argument(
		"--approval",
		choices=sorted(_APPROVAL_POLICIES),
		default="ask",
		help="How to answer subscription requests from strangers",
	)
	parser.add_argument("--add", action="append", default=[], help="Add a contact (repeatable)")
	parser.add_argument(
		"--announce",
		metavar="HOST:PORT",
		help="Send a visible SipInfo for HOST:PORT to every peer that comes online",
	)
	parser.add_argument("--uniqname", default="jabsip-demo", help="Unique name announced with --announce")
	parser.add_argument("--key", default="demo-key", help="Key announced with --announce")
	parser.add_argument("--duration", type=float, default=0, help="Stop after N seconds (0: run until Ctrl+C)")
	parser.add_argument("--xml-console", action="store_true", help="Print every stanza")
	parser.add_argument(
		"--log-level",
		default="INFO",
		choices=["DEBUG", "INFO", "WARNING", "ERROR"],
		help="Logging level",
	)
	parser.add_argument(
		"--debug",
		action="store_true",
		help="Shortcut for --log-level=DEBUG",
	)
	return parser


def _configure_logging(level: str, debug: bool) -> None:
	effective_level = "DEBUG" if debug else level
	logging.basicConfig(
		level=getattr(logging, effective_level.upper(), logging.INFO),
		format="%(message)s",
		handlers=[
			RichHandler(
				console=CONSOLE,
				rich_tracebacks=True,
				show_path=False,
				show_time=False,
			)
		],
		force=True,
	)


def _parse_announce(args: argparse.Namespace) -> Optional[SipInfo]:
	if not args.announce:
		return None
	host, _, port = args.announce.rpartition(":")
	if not host or not port.isdigit():
		raise ValueError(f"--announce expects HOST:PORT, got {args.announce!r}")
	return SipInfo(visible=True, host=host, port=int(port), uniqname=args.uniqname, key=args.key)


def _approval_policy(name: str) -> ApprovalPolicy:
	return _APPROVAL_POLICIES[name]()


async def _run_demo(args: argparse.Namespace) -> int:
	from ._transports._xmpp import XmppTransport

	_configure_logging(args.log_level, args.debug)

	try:
		announce = _parse_announce(args)
	except ValueError as e:
		logging.error(str(e))
		return 2

	settings = JsonFileSettings(args.settings) if args.settings else MemorySettings()
	if args.jid:
		settings.save_account(
			args.plugin_id,
			AccountConfig(
				username=args.jid,
				password=args.password,
				server=args.server,
				port=args.port,
				xml_console=args.xml_console,
			),
		)

	config = SessionConfig()
	events = DemoEvents(announce, args.add)
	session = Session(
		args.plugin_id,
		XmppTransport(session_config=config),
		settings,
		approval=_approval_policy(args.approval),
		config=config,
		events=events,
	)
	events.session = session

	if not session.account.username:
		logging.error("No account given (pass a JID or a settings file holding one)")
		return 2

	if not session.connect():
		return 1

	try:
		if args.duration:
			await asyncio.wait_for(events.disconnected.wait(), timeout=args.duration)
		else:
			await events.disconnected.wait()
	except asyncio.TimeoutError:
		logging.info("Time is up, disconnecting")
		session.disconnect()
		try:
			await asyncio.wait_for(events.disconnected.wait(), timeout=5)
		except asyncio.TimeoutError:
			logging.warning("Server did not confirm the disconnect")

	table = Table(title="Peers seen")
	table.add_column("JID")
	table.add_column("Online")
	table.add_column("Version")
	for jid, online in sorted(events.seen.items()):
		table.add_row(jid, "yes" if online else "no", events.versions.get(jid, ""))
	CONSOLE.print(table)
	CONSOLE.print(Panel(f"[bold]Account[/]: {session.account.username}", title="Demo Summary", border_style="green"))
	logging.info("Demo finished")
	return 0


def main() -> int:
	parser = _build_parser()
	args = parser.parse_args()
	return asyncio.run(_run_demo(args))


if __name__ == "__main__":
	raise SystemExit(main())
