"""OSC control surface for the controller.

The server listens on a UDP port (default 9000) for control messages and
sends status updates to a target host/port (default 127.0.0.1:9001).

Receive Handlers
────────────────
- ``/send``: Send the current part to every peer
- ``/power <int>``: Power on (non-zero) or off
- ``/strategy <str>``: Set the distribution strategy
- ``/chord <float> ...``: Replace the chord with the given frequencies
- ``/bank/save <int>``: Save the last sent program to a bank
- ``/bank/load <int>``: Load a bank
- ``/transition/<field> <float>``: Set ``duration``, ``stagger``, ``durationSpread`` or ``glissando``
- ``/param/<name> <float>``: Set a base synthesis parameter

Send Events
───────────
- ``/peers <int>``: On assignment change, the number of connected peers
- ``/sent <int> <int>``: After a send, successes and total peers
- ``/bank/loaded <int>``: After a bank load
"""

import asyncio
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

import ensemble.coordinator
import ensemble.events


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client for controlling the ensemble."""

	def __init__ (
		self,
		coordinator: ensemble.coordinator.PeerLifecycleCoordinator,
		events: ensemble.events.EventBus,
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._coordinator = coordinator
		self._events = events
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/send", self._handle_send)
		self._dispatcher.map("/power", self._handle_power)
		self._dispatcher.map("/strategy", self._handle_strategy)
		self._dispatcher.map("/chord", self._handle_chord)
		self._dispatcher.map("/bank/save", self._handle_bank_save)
		self._dispatcher.map("/bank/load", self._handle_bank_load)
		self._dispatcher.map("/transition/*", self._handle_transition)
		self._dispatcher.map("/param/*", self._handle_param)

	async def start (self) -> None:

		"""Start the OSC server and client, and begin reporting status."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		self._events.on(ensemble.events.ASSIGNMENT_CHANGED, self._on_assignment_changed)
		self._events.on(ensemble.events.PART_SENT, self._on_part_sent)
		self._events.on(ensemble.events.BANK_LOADED, self._on_bank_loaded)

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")

	async def stop (self) -> None:

		"""Stop the OSC server."""

		if self._transport:
			self._transport.close()
			self._transport = None

			self._events.off(ensemble.events.ASSIGNMENT_CHANGED, self._on_assignment_changed)
			self._events.off(ensemble.events.PART_SENT, self._on_part_sent)
			self._events.off(ensemble.events.BANK_LOADED, self._on_bank_loaded)

			logger.info("OSC server stopped")

	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, args)
			except Exception as e:
				logger.warning(f"OSC send error: {e}")

	# Status

	def _on_assignment_changed (self, assignment: typing.Any, version: int) -> None:
		self.send("/peers", len(self._coordinator.state.peers))

	def _on_part_sent (self, report: ensemble.coordinator.SendReport) -> None:
		self.send("/sent", report.success_count, report.total_peers)

	def _on_bank_loaded (self, bank_id: int, bank: typing.Any) -> None:
		self.send("/bank/loaded", bank_id)

	# Handlers

	def _handle_send (self, address: str, *args: typing.Any) -> None:
		try:
			self._coordinator.send_current_part()
		except ensemble.coordinator.BroadcastError as e:
			logger.error(f"OSC send failed: {e}")

	def _handle_power (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			self._coordinator.set_power(bool(int(args[0])))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC power argument: {args[0]}")

	def _handle_strategy (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		self._coordinator.state.set_strategy(str(args[0]))

	def _handle_chord (self, address: str, *args: typing.Any) -> None:
		try:
			self._coordinator.state.set_chord([float(arg) for arg in args])
		except (ValueError, TypeError) as e:
			logger.warning(f"Invalid OSC chord {args}: {e}")

	def _handle_bank_save (self, address: str, *args: typing.Any) -> None:
		bank_id = self._bank_id(args)
		if bank_id is not None:
			self._coordinator.save_bank(bank_id)

	def _handle_bank_load (self, address: str, *args: typing.Any) -> None:
		bank_id = self._bank_id(args)
		if bank_id is not None:
			self._coordinator.load_bank(bank_id)

	def _handle_transition (self, address: str, *args: typing.Any) -> None:
		# address is like /transition/stagger
		if not args:
			return
		parts = address.split("/")
		if len(parts) >= 3:
			field = "durationSpread" if parts[2] == "duration_spread" else parts[2]
			data = self._coordinator.transition.to_dict()
			data[field] = args[0]
			self._coordinator.set_transition(data)

	def _handle_param (self, address: str, *args: typing.Any) -> None:
		# address is like /param/bowForce
		if not args:
			return
		parts = address.split("/")
		if len(parts) >= 3:
			self._coordinator.set_parameters(**{parts[2]: args[0]})

	@staticmethod
	def _bank_id (args: typing.Sequence[typing.Any]) -> typing.Optional[int]:
		if not args:
			return None
		try:
			return int(args[0])
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC bank argument: {args[0]}")
			return None
