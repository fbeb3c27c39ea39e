import json

import pytest

import ensemble.protocol
import ensemble.timing


def _program (**overrides: object) -> dict:

	program = {
		"vibratoEnabled": False,
		"tremoloEnabled": False,
		"trillEnabled": False,
		"fundamentalFrequency": 440.0,
		"chord": {"frequencies": [440.0], "expressions": {}},
		"parts": {},
		"transition": ensemble.timing.TransitionConfig().to_dict(),
		"power": True,
		"synthId": "a",
		"timestamp": 1.0,
	}
	program.update(overrides)
	return program


def test_program_message_wraps_program () -> None:

	message = ensemble.protocol.program_message(_program())

	assert message["type"] == "program"
	assert message["program"]["synthId"] == "a"


def test_missing_field_is_rejected () -> None:

	program = _program()
	del program["timestamp"]

	with pytest.raises(ensemble.protocol.ProtocolError, match="timestamp"):
		ensemble.protocol.validate_program(program)


def test_powered_program_needs_frequency () -> None:

	"""A program that would sound must carry a positive frequency."""

	program = _program()
	del program["fundamentalFrequency"]

	with pytest.raises(ensemble.protocol.ProtocolError):
		ensemble.protocol.validate_program(program)

	ensemble.protocol.validate_program(_program(power=False, fundamentalFrequency=None))


def test_protocol_error_is_value_error () -> None:

	assert issubclass(ensemble.protocol.ProtocolError, ValueError)


def test_command_messages () -> None:

	transition = ensemble.timing.TransitionConfig(duration=5.0)

	assert ensemble.protocol.command_message("save", bank=2) == {"type": "command", "name": "save", "bank": 2}
	assert ensemble.protocol.command_message("power", value=False) == {"type": "command", "name": "power", "value": False}
	assert ensemble.protocol.command_message("load", bank=1, transition=transition)["transition"]["duration"] == 5.0

	with pytest.raises(ensemble.protocol.ProtocolError):
		ensemble.protocol.command_message("explode")


def test_parse_program_request () -> None:

	request = ensemble.protocol.parse_request({"type": "program-request", "synthId": "viola-2"})

	assert request == ensemble.protocol.PeerRequest(type="program-request", synth_id="viola-2")


def test_parse_bank_program_request () -> None:

	request = ensemble.protocol.parse_request({
		"type": "bank-program-request",
		"synthId": "cello",
		"bankId": "3",
		"transition": {"duration": 1, "stagger": 0.2},
	})

	assert request.type == "bank-program-request"
	assert request.bank_id == 3
	assert request.transition == ensemble.timing.TransitionConfig(duration=1.0, stagger=0.2)


def test_parse_legacy_bank_request () -> None:

	"""Older peers send request_bank_program with a bank key."""

	request = ensemble.protocol.parse_request({"type": "request_bank_program", "bank": 5})

	assert request.type == ensemble.protocol.BANK_PROGRAM_REQUEST
	assert request.bank_id == 5
	assert request.transition is None


def test_bank_request_without_bank_is_rejected () -> None:

	with pytest.raises(ensemble.protocol.ProtocolError):
		ensemble.protocol.parse_request({"type": "bank-program-request"})


def test_unknown_request_type () -> None:

	with pytest.raises(ensemble.protocol.ProtocolError):
		ensemble.protocol.parse_request({"type": "dance"})


def test_decode () -> None:

	assert ensemble.protocol.decode('{"type": "register", "synthId": "x"}') == {"type": "register", "synthId": "x"}

	for raw in ("not json", "[1, 2]", '{"synthId": "x"}'):
		with pytest.raises(ensemble.protocol.ProtocolError):
			ensemble.protocol.decode(raw)


def test_encode_is_json () -> None:

	message = ensemble.protocol.command_message("save", bank=1)

	assert json.loads(ensemble.protocol.encode(message)) == message
