import asyncio
import json
import pathlib

import pytest
import websockets.asyncio.client

import ensemble
import ensemble.banks
import ensemble.config
import ensemble.controller
import ensemble.osc
import ensemble.transport

import conftest


def test_controller_wires_components (tmp_path: pathlib.Path) -> None:

	config = ensemble.config.ControllerConfig(
		strategy = "weighted",
		osc_enabled = True,
		bank_file = str(tmp_path / "banks.yaml")
	)

	controller = ensemble.controller.Controller(config)

	assert controller.state.strategy == "weighted"
	assert isinstance(controller.banks, ensemble.banks.YamlBankStore)
	assert isinstance(controller.transport, ensemble.transport.WebSocketTransport)
	assert isinstance(controller.osc, ensemble.osc.OscServer)
	assert controller.midi is None
	assert controller.coordinator.banks is controller.banks


def test_controller_accepts_a_transport () -> None:

	transport = conftest.RecordingTransport()
	controller = ensemble.Controller(transport=transport)

	controller.context.events.emit("peer_connected", "a")
	controller.state.set_chord(conftest.C_MAJOR)
	controller.coordinator.send_current_part()

	assert transport.programs_for("a")[0]["fundamentalFrequency"] == 261.63
	assert isinstance(controller.banks, ensemble.banks.BankStore)


@pytest.mark.asyncio
async def test_peer_receives_program_end_to_end () -> None:

	"""A peer connecting over WebSockets receives its part after a send."""

	config = ensemble.config.ControllerConfig(ws_host="127.0.0.1", ws_port=0, seed=1)
	controller = ensemble.controller.Controller(config)

	await controller.start()

	try:
		port = controller.transport.bound_port  # type: ignore[attr-defined]

		async with websockets.asyncio.client.connect(f"ws://127.0.0.1:{port}") as ws:

			await ws.send(json.dumps({"type": "register", "synthId": "violin-1"}))

			for _ in range(200):
				if controller.state.peers:
					break
				await asyncio.sleep(0.01)

			controller.state.set_chord(["A4"])
			report = controller.coordinator.send_current_part()

			assert report.success_count == 1

			message = json.loads(await asyncio.wait_for(ws.recv(), timeout=2.0))

			assert message["type"] == "program"
			assert message["program"]["synthId"] == "violin-1"
			assert message["program"]["fundamentalFrequency"] == pytest.approx(440.0)
			assert message["program"]["power"] is True

	finally:
		await controller.stop()
