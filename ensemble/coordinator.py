"""Peer lifecycle and program delivery.

``PeerLifecycleCoordinator`` reacts to transport events and controller
actions. It never builds a program itself: every program goes through
``ParameterResolver`` and is then wrapped by ``ensemble.protocol``.

Per-peer status
───────────────
- ``AWAITING_FIRST_PROGRAM``: briefly, between connect and redistribution.
- ``ASSIGNED``: the peer holds a note slot.
- ``UNASSIGNED``: no chord, or the strategy left the peer without a slot.

Connecting never pushes a program. A peer hears something only after it asks
(``program-request``) or the controller sends the current part to everyone.
A request before anything has been sent gets no reply, so a freshly joined
ensemble stays silent until the performer commits a program.
"""

import dataclasses
import enum
import logging
import typing

import ensemble.banks
import ensemble.context
import ensemble.events
import ensemble.expressions
import ensemble.protocol
import ensemble.resolver
import ensemble.state
import ensemble.timing
import ensemble.transport


logger = logging.getLogger(__name__)


class PeerStatus (enum.Enum):

	UNASSIGNED = "unassigned"
	ASSIGNED = "assigned"
	AWAITING_FIRST_PROGRAM = "awaiting-first-program"


class BroadcastError (RuntimeError):

	"""Raised when a send to connected peers reached none of them."""


@dataclasses.dataclass(frozen=True)
class SendReport:

	success_count: int
	total_peers: int

	@property
	def all_succeeded (self) -> bool:
		return self.success_count == self.total_peers


@dataclasses.dataclass(frozen=True)
class LastSentProgram:

	"""What the most recent ``send_current_part`` committed."""

	base_params: typing.Dict[str, typing.Any]
	transition: ensemble.timing.TransitionConfig
	power: bool
	timestamp: float


class PeerLifecycleCoordinator:

	"""Keeps peers in step with the performance state.

	Example:
		```python
		context = ensemble.context.CoordinationContext()
		state = ensemble.state.PerformanceState(context)
		coordinator = PeerLifecycleCoordinator(context, state, transport)

		state.set_chord([261.63, 329.63, 392.0])
		report = coordinator.send_current_part()
		```
	"""

	def __init__ (
		self,
		context: ensemble.context.CoordinationContext,
		state: ensemble.state.PerformanceState,
		transport: ensemble.transport.Transport,
		banks: typing.Optional[ensemble.banks.BankStore] = None,
		base_params: typing.Optional[typing.Mapping[str, typing.Any]] = None
	) -> None:

		self._context = context
		self.state = state
		self.transport = transport
		self.banks = banks if banks is not None else ensemble.banks.BankStore(context.clock)

		self.resolver = ensemble.resolver.ParameterResolver(state, context.rng, context.clock)
		self.timing = ensemble.timing.TransitionTimingCalculator(context.rng)

		self.base_params: typing.Dict[str, typing.Any] = dict(base_params if base_params is not None else context.config.base_params)
		self.transition: ensemble.timing.TransitionConfig = context.config.transition
		self.power: bool = True
		self.last_sent: typing.Optional[LastSentProgram] = None

		self._status: typing.Dict[str, PeerStatus] = {}

		events = context.events
		events.on(ensemble.events.PEER_CONNECTED, self.on_peer_connected)
		events.on(ensemble.events.PEER_DISCONNECTED, self.on_peer_disconnected)
		events.on(ensemble.events.MESSAGE_RECEIVED, self.on_message)
		events.on(ensemble.events.ASSIGNMENT_CHANGED, self._on_assignment_changed)

	def close (self) -> None:

		"""Unsubscribe from the event bus."""

		events = self._context.events
		events.off(ensemble.events.PEER_CONNECTED, self.on_peer_connected)
		events.off(ensemble.events.PEER_DISCONNECTED, self.on_peer_disconnected)
		events.off(ensemble.events.MESSAGE_RECEIVED, self.on_message)
		events.off(ensemble.events.ASSIGNMENT_CHANGED, self._on_assignment_changed)

	def status (self, peer_id: str) -> typing.Optional[PeerStatus]:
		return self._status.get(peer_id)

	@property
	def statuses (self) -> typing.Dict[str, PeerStatus]:
		return dict(self._status)

	# Transport events

	def on_peer_connected (self, peer_id: str) -> None:

		self._status[peer_id] = PeerStatus.AWAITING_FIRST_PROGRAM
		self.state.add_peer(peer_id)

		logger.info(f"Peer connected: {peer_id} ({self._status[peer_id].value}, {len(self.state.peers)} peers)")

	def on_peer_disconnected (self, peer_id: str) -> None:

		self._status.pop(peer_id, None)
		self.state.remove_peer(peer_id)

		logger.info(f"Peer disconnected: {peer_id} ({len(self.state.peers)} peers)")

	def on_message (self, peer_id: str, message: typing.Mapping[str, typing.Any]) -> None:

		"""Dispatch a decoded peer message; malformed messages are logged and dropped."""

		try:
			request = ensemble.protocol.parse_request(message)
		except ensemble.protocol.ProtocolError as e:
			logger.warning(f"Ignoring message from {peer_id}: {e}")
			return

		if request.type == ensemble.protocol.PROGRAM_REQUEST:
			self.handle_program_request(peer_id)

		elif request.type == ensemble.protocol.BANK_PROGRAM_REQUEST:
			assert request.bank_id is not None
			self.handle_bank_program_request(peer_id, request.bank_id, request.transition)

	def _on_assignment_changed (self, assignment: ensemble.state.Assignment, version: int) -> None:

		for peer_id in self.state.peers:
			self._status[peer_id] = PeerStatus.ASSIGNED if peer_id in assignment else PeerStatus.UNASSIGNED

	# Requests

	def handle_program_request (self, peer_id: str) -> bool:

		"""Catch a late joiner up with the last committed program, instantly.

		Returns True if a program was sent.
		"""

		if self.last_sent is None:
			logger.info(f"Program request from {peer_id}: nothing sent yet, staying silent")
			return False

		if not self.state.chord:
			logger.info(f"Program request from {peer_id}: no chord, staying silent")
			return False

		transition = ensemble.timing.TransitionConfig.zero()

		program = self.resolver.resolve_for_peer(
			peer_id,
			self.state.assignment_for(peer_id),
			self.last_sent.base_params,
			transition,
			power = self.last_sent.power
		)

		program["timing"] = self.timing.timing_for(transition, self._peer_index(peer_id)).to_dict()

		return self._send_program(peer_id, program)

	def handle_bank_program_request (
		self,
		peer_id: str,
		bank_id: int,
		transition: typing.Optional[ensemble.timing.TransitionConfig] = None
	) -> bool:

		"""Resolve a program from a saved bank for one peer.

		The peer keeps its current note if that note is in the bank's chord;
		otherwise it gets a round-robin slot by its position among the peers.
		Only this peer appears in the program's ``parts``.
		"""

		bank = self.banks.get(bank_id)

		if bank is None:
			logger.warning(f"Bank program request from {peer_id}: bank {bank_id} is empty")
			return False

		transition = transition or self.transition
		assignment = self._bank_assignment(peer_id, bank)

		snapshot = dataclasses.replace(
			bank.snapshot(),
			assignment = {peer_id: assignment} if assignment is not None else {}
		)

		program = self.resolver.resolve_for_peer(
			peer_id,
			assignment,
			bank.base_params,
			transition,
			power = bank.power,
			snapshot = snapshot
		)

		program["timing"] = self.timing.timing_for(transition, self._peer_index(peer_id)).to_dict()

		logger.info(f"Sending bank {bank_id} program to {peer_id}")

		return self._send_program(peer_id, program)

	def _bank_assignment (self, peer_id: str, bank: ensemble.banks.Bank) -> typing.Optional[ensemble.state.PartAssignment]:

		if not bank.chord:
			return None

		current = self.state.assignment_for(peer_id)

		if current is not None and current.note in bank.chord:
			note = current.note
			index = bank.chord.index(note)
		else:
			index = self._peer_index(peer_id) % len(bank.chord)
			note = bank.chord[index]

		expression = bank.expressions.get(note, ensemble.expressions.NO_EXPRESSION)

		return ensemble.state.PartAssignment(note, index, expression)

	# Controller actions

	def send_current_part (
		self,
		base_params: typing.Optional[typing.Mapping[str, typing.Any]] = None,
		transition: typing.Union[ensemble.timing.TransitionConfig, typing.Mapping[str, typing.Any], None] = None,
		power: typing.Optional[bool] = None
	) -> SendReport:

		"""Resolve and send a program to every connected peer.

		Peers without a slot receive a silent program. Each program carries a
		humanized ``timing`` drawn for that peer.

		Parameters:
			base_params: Parameters to send; defaults to the coordinator's.
			transition: Transition to attach; defaults to the configured one.
			power: Power flag; defaults to the last value set.

		Raises:
			BroadcastError: If peers are connected and no send succeeded.
		"""

		if base_params is not None:
			self.base_params = dict(base_params)

		if transition is not None:
			self.transition = ensemble.timing.coerce_transition(transition)

		if power is not None:
			self.power = bool(power)

		peers = self.state.peers

		if not peers:
			logger.warning("No peers connected, nothing sent")
			return SendReport(0, 0)

		snapshot = self.state.snapshot()
		success_count = 0

		for index, peer_id in enumerate(peers):

			program = self.resolver.resolve_for_peer(
				peer_id,
				snapshot.assignment.get(peer_id),
				self.base_params,
				self.transition,
				power = self.power,
				snapshot = snapshot
			)

			program["timing"] = self.timing.timing_for(self.transition, index).to_dict()

			if self._send_program(peer_id, program):
				success_count += 1

		self.last_sent = LastSentProgram(
			base_params = dict(self.base_params),
			transition = self.transition,
			power = self.power,
			timestamp = self._context.clock()
		)

		report = SendReport(success_count, len(peers))

		logger.info(f"Sent current part to {report.success_count}/{report.total_peers} peers")

		self._context.events.emit(ensemble.events.PART_SENT, report)

		if success_count == 0:
			raise BroadcastError(f"Program reached none of {len(peers)} connected peers")

		return report

	def set_power (self, on: bool) -> int:

		"""Store the power flag and broadcast a power command. Returns peers reached.

		The flag also applies to the last committed program, so a peer that
		joins afterwards and asks for a program matches the rest of the ensemble.
		"""

		self.power = bool(on)

		if self.last_sent is not None:
			self.last_sent = dataclasses.replace(self.last_sent, power=self.power)

		logger.info(f"Power {'on' if self.power else 'off'}")

		return self._broadcast(ensemble.protocol.command_message(ensemble.protocol.POWER, value=self.power))

	def set_parameters (self, **params: typing.Any) -> None:

		"""Update base parameters used by the next send."""

		self.base_params.update(params)

	def set_transition (self, transition: typing.Union[ensemble.timing.TransitionConfig, typing.Mapping[str, typing.Any]]) -> None:
		self.transition = ensemble.timing.coerce_transition(transition)

	def save_bank (self, bank_id: int) -> bool:

		"""Save the last sent program and current state, and tell peers to do the same.

		Returns False if nothing has been sent yet.
		"""

		if self.last_sent is None:
			logger.warning(f"Cannot save bank {bank_id}: no program has been sent")
			return False

		bank = self.banks.save(bank_id, self.last_sent.base_params, self.last_sent.power, self.state.snapshot())

		self._broadcast(ensemble.protocol.command_message(ensemble.protocol.SAVE, bank=bank_id))
		self._context.events.emit(ensemble.events.BANK_SAVED, bank_id, bank)

		return True

	def load_bank (
		self,
		bank_id: int,
		transition: typing.Union[ensemble.timing.TransitionConfig, typing.Mapping[str, typing.Any], None] = None
	) -> bool:

		"""Restore a bank into the performance state and tell peers to load it.

		No programs are sent: peers that hold the bank locally apply it, others
		ask with a bank program request. Returns False for an empty bank.
		"""

		bank = self.banks.get(bank_id)

		if bank is None:
			logger.warning(f"Bank {bank_id} is empty")
			return False

		transition = ensemble.timing.coerce_transition(transition) if transition is not None else self.transition

		self.state.restore(bank.chord, bank.expressions, bank.harmonic)

		self.base_params = dict(bank.base_params)
		self.power = bank.power
		self.last_sent = LastSentProgram(
			base_params = dict(bank.base_params),
			transition = transition,
			power = bank.power,
			timestamp = self._context.clock()
		)

		self._broadcast(ensemble.protocol.command_message(ensemble.protocol.LOAD, bank=bank_id, transition=transition))
		self._context.events.emit(ensemble.events.BANK_LOADED, bank_id, bank)

		logger.info(f"Loaded bank {bank_id}")

		return True

	# Sending

	def _peer_index (self, peer_id: str) -> int:

		peers = self.state.peers

		return peers.index(peer_id) if peer_id in peers else 0

	def _send_program (self, peer_id: str, program: ensemble.resolver.Program) -> bool:

		try:
			message = ensemble.protocol.program_message(program)
		except ensemble.protocol.ProtocolError as e:
			logger.error(f"Refusing to send invalid program to {peer_id}: {e}")
			return False

		return self._send(peer_id, message)

	def _send (self, peer_id: str, message: ensemble.protocol.Message) -> bool:

		try:
			delivered = self.transport.send(peer_id, message)
		except Exception as e:
			logger.warning(f"Send to {peer_id} failed: {e}")
			return False

		if not delivered:
			logger.warning(f"Send to {peer_id} was not delivered")

		return bool(delivered)

	def _broadcast (self, message: ensemble.protocol.Message) -> int:

		return sum(1 for peer_id in self.state.peers if self._send(peer_id, message))
