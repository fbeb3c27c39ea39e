import random
import typing

import mido
import pytest

import ensemble.coordinator
import ensemble.context
import ensemble.events
import ensemble.state
import ensemble.transport


FIXED_TIME_MS = 1_700_000_000_000.0

C_MAJOR = [261.63, 329.63, 392.0]


def fixed_clock () -> float:

	"""Clock that always reports the same timestamp."""

	return FIXED_TIME_MS


class RecordingTransport (ensemble.transport.Transport):

	"""Transport that records every message instead of sending it.

	Peers listed in ``fail_for`` report a failed send; peers in ``raise_for``
	raise ``ConnectionError``.
	"""

	def __init__ (self) -> None:

		self.sent: typing.List[typing.Tuple[str, typing.Dict[str, typing.Any]]] = []
		self.fail_for: typing.Set[str] = set()
		self.raise_for: typing.Set[str] = set()

	@property
	def peer_ids (self) -> typing.List[str]:
		return sorted({peer_id for peer_id, _ in self.sent})

	def send (self, peer_id: str, message: typing.Mapping[str, typing.Any]) -> bool:

		if peer_id in self.raise_for:
			raise ConnectionError(f"{peer_id} is gone")

		if peer_id in self.fail_for:
			return False

		self.sent.append((peer_id, dict(message)))
		return True

	def messages_for (self, peer_id: str) -> typing.List[typing.Dict[str, typing.Any]]:
		return [message for target, message in self.sent if target == peer_id]

	def programs (self) -> typing.List[typing.Dict[str, typing.Any]]:
		return [message["program"] for _, message in self.sent if message["type"] == "program"]

	def programs_for (self, peer_id: str) -> typing.List[typing.Dict[str, typing.Any]]:
		return [message["program"] for message in self.messages_for(peer_id) if message["type"] == "program"]

	def commands (self) -> typing.List[typing.Dict[str, typing.Any]]:
		return [message for _, message in self.sent if message["type"] == "command"]

	def clear (self) -> None:
		self.sent.clear()


def connect (context: ensemble.context.CoordinationContext, *peer_ids: str) -> None:

	"""Announce peers on the event bus the way a transport would."""

	for peer_id in peer_ids:
		context.events.emit(ensemble.events.PEER_CONNECTED, peer_id)


def disconnect (context: ensemble.context.CoordinationContext, *peer_ids: str) -> None:

	for peer_id in peer_ids:
		context.events.emit(ensemble.events.PEER_DISCONNECTED, peer_id)


def request (context: ensemble.context.CoordinationContext, peer_id: str, message: typing.Dict[str, typing.Any]) -> None:

	context.events.emit(ensemble.events.MESSAGE_RECEIVED, peer_id, message)


@pytest.fixture
def rng () -> random.Random:

	"""A seeded random source."""

	return random.Random(42)


@pytest.fixture
def context (rng: random.Random) -> ensemble.context.CoordinationContext:

	"""A coordination context with a seeded rng and a fixed clock."""

	return ensemble.context.CoordinationContext(rng=rng, clock=fixed_clock)


@pytest.fixture
def state (context: ensemble.context.CoordinationContext) -> ensemble.state.PerformanceState:

	return ensemble.state.PerformanceState(context)


@pytest.fixture
def transport () -> RecordingTransport:

	return RecordingTransport()


@pytest.fixture
def coordinator (
	context: ensemble.context.CoordinationContext,
	state: ensemble.state.PerformanceState,
	transport: RecordingTransport
) -> ensemble.coordinator.PeerLifecycleCoordinator:

	return ensemble.coordinator.PeerLifecycleCoordinator(context, state, transport)


class FakeMidiIn:

	"""Minimal MIDI input stub for tests."""

	def __init__ (self, callback: typing.Optional[typing.Callable] = None) -> None:

		"""Store the callback for injecting test messages."""

		self.callback = callback
		self.closed = False

	def close (self) -> None:

		self.closed = True

	def inject (self, message: mido.Message) -> None:

		"""Simulate receiving a MIDI message by calling the stored callback."""

		if self.callback is not None:
			self.callback(message)


def _fake_get_input_names () -> list[str]:

	"""Return a fixed list of MIDI input names for tests."""

	return ["Dummy MIDI"]


# Module-level reference so tests can access the most recently created FakeMidiIn.
_current_fake_input: typing.Optional[FakeMidiIn] = None


def _fake_open_input (name: str, callback: typing.Optional[typing.Callable] = None) -> FakeMidiIn:

	"""Return a fake MIDI input regardless of the name."""

	global _current_fake_input
	fake = FakeMidiIn(callback=callback)
	_current_fake_input = fake
	return fake


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use a fake MIDI input."""

	monkeypatch.setattr(mido, "get_input_names", _fake_get_input_names)
	monkeypatch.setattr(mido, "open_input", _fake_open_input)
