"""JSON message protocol between the controller and peers.

Controller to peer
──────────────────
- ``{"type": "program", "program": {...}}``: a complete resolved program.
- ``{"type": "command", "name": "save" | "load" | "power", "bank"?, "transition"?, "value"?}``

Peer to controller
──────────────────
- ``{"type": "register", "synthId": "..."}``: first message on a new connection.
- ``{"type": "program-request", "synthId": "..."}``
- ``{"type": "bank-program-request", "synthId": "...", "bankId": 3, "transition": {...}}``

Older peers send ``request_bank_program`` with a ``bank`` key; it is accepted
as a bank program request.
"""

import dataclasses
import json
import typing

import ensemble.timing


PROGRAM = "program"
COMMAND = "command"
REGISTER = "register"
PROGRAM_REQUEST = "program-request"
BANK_PROGRAM_REQUEST = "bank-program-request"

SAVE = "save"
LOAD = "load"
POWER = "power"

COMMAND_NAMES: typing.Tuple[str, ...] = (SAVE, LOAD, POWER)

_LEGACY_REQUEST_TYPES: typing.Dict[str, str] = {
	"request_program": PROGRAM_REQUEST,
	"request_bank_program": BANK_PROGRAM_REQUEST,
}

_REQUIRED_PROGRAM_FIELDS: typing.Tuple[str, ...] = (
	"vibratoEnabled",
	"tremoloEnabled",
	"trillEnabled",
	"chord",
	"parts",
	"transition",
	"power",
	"synthId",
	"timestamp",
)

Message = typing.Dict[str, typing.Any]


class ProtocolError (ValueError):

	"""Raised for messages that do not match the protocol."""


@dataclasses.dataclass(frozen=True)
class PeerRequest:

	"""A parsed request from a peer."""

	type: str
	synth_id: typing.Optional[str] = None
	bank_id: typing.Optional[int] = None
	transition: typing.Optional[ensemble.timing.TransitionConfig] = None


def validate_program (program: typing.Mapping[str, typing.Any]) -> None:

	"""Check that a resolved program carries every field peers rely on.

	Raises:
		ProtocolError: If a field is missing or the frequency is unusable.
	"""

	missing = [field for field in _REQUIRED_PROGRAM_FIELDS if field not in program]

	if missing:
		raise ProtocolError(f"Program is missing fields: {missing}")

	frequency = program.get("fundamentalFrequency")

	if program["power"] and (not isinstance(frequency, (int, float)) or frequency <= 0):
		raise ProtocolError(f"Powered program needs a positive fundamentalFrequency, got {frequency!r}")

	chord = program["chord"]

	if not isinstance(chord, dict) or "frequencies" not in chord or "expressions" not in chord:
		raise ProtocolError("Program chord must have frequencies and expressions")


def program_message (program: typing.Mapping[str, typing.Any]) -> Message:

	"""Wrap a resolved program for sending, after validating it."""

	validate_program(program)

	return {"type": PROGRAM, "program": dict(program)}


def command_message (
	name: str,
	bank: typing.Optional[int] = None,
	transition: typing.Optional[ensemble.timing.TransitionConfig] = None,
	value: typing.Optional[bool] = None
) -> Message:

	"""Build a command message.

	Raises:
		ProtocolError: For an unknown command name.
	"""

	if name not in COMMAND_NAMES:
		raise ProtocolError(f"Unknown command: {name!r}")

	message: Message = {"type": COMMAND, "name": name}

	if bank is not None:
		message["bank"] = int(bank)

	if transition is not None:
		message["transition"] = transition.to_dict()

	if value is not None:
		message["value"] = bool(value)

	return message


def decode (raw: typing.Union[str, bytes]) -> Message:

	"""Parse a JSON text frame into a message dict."""

	try:
		message = json.loads(raw)
	except (TypeError, ValueError) as exc:
		raise ProtocolError(f"Invalid JSON message: {exc}") from exc

	if not isinstance(message, dict):
		raise ProtocolError("Message must be a JSON object")

	if "type" not in message:
		raise ProtocolError("Message must have a type")

	return message


def encode (message: typing.Mapping[str, typing.Any]) -> str:

	return json.dumps(message)


def parse_request (message: typing.Mapping[str, typing.Any]) -> PeerRequest:

	"""Parse an inbound peer message.

	Raises:
		ProtocolError: For unknown types or a bank request without a bank.
	"""

	kind = message.get("type")
	kind = _LEGACY_REQUEST_TYPES.get(kind, kind)  # type: ignore[arg-type]

	synth_id = message.get("synthId")
	synth_id = str(synth_id) if synth_id is not None else None

	if kind in (REGISTER, PROGRAM_REQUEST):
		return PeerRequest(type=kind, synth_id=synth_id)

	if kind == BANK_PROGRAM_REQUEST:

		raw_bank = message.get("bankId", message.get("bank"))

		try:
			bank_id = int(raw_bank)  # type: ignore[arg-type]
		except (TypeError, ValueError) as exc:
			raise ProtocolError(f"Bank program request needs a bank id, got {raw_bank!r}") from exc

		transition = message.get("transition")

		return PeerRequest(
			type = kind,
			synth_id = synth_id,
			bank_id = bank_id,
			transition = ensemble.timing.TransitionConfig.from_dict(transition) if transition is not None else None
		)

	raise ProtocolError(f"Unknown message type: {message.get('type')!r}")
