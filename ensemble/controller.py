"""Controller process wiring.

``Controller`` builds one coordination context and hangs every component off
it: performance state, bank store, peer transport, coordinator, and the
optional OSC and MIDI surfaces.

Example:
	```python
	import ensemble

	controller = ensemble.Controller(ensemble.load_config("config.yaml"))
	controller.run()
	```
"""

import asyncio
import logging
import signal
import typing

import ensemble.banks
import ensemble.config
import ensemble.context
import ensemble.coordinator
import ensemble.midi_input
import ensemble.osc
import ensemble.state
import ensemble.transport


logger = logging.getLogger(__name__)


class Controller:

	"""The ensemble controller: owns the state and serves peers."""

	def __init__ (
		self,
		config: typing.Optional[ensemble.config.ControllerConfig] = None,
		transport: typing.Optional[ensemble.transport.Transport] = None
	) -> None:

		self.config = config or ensemble.config.ControllerConfig()
		self.context = ensemble.context.CoordinationContext.from_config(self.config)
		self.state = ensemble.state.PerformanceState(self.context)

		if self.config.bank_file:
			self.banks: ensemble.banks.BankStore = ensemble.banks.YamlBankStore(self.config.bank_file, self.context.clock)
		else:
			self.banks = ensemble.banks.BankStore(self.context.clock)

		self.transport = transport or ensemble.transport.WebSocketTransport(
			self.context.events,
			host = self.config.ws_host,
			port = self.config.ws_port
		)

		self.coordinator = ensemble.coordinator.PeerLifecycleCoordinator(
			self.context,
			self.state,
			self.transport,
			banks = self.banks,
			base_params = self.config.base_params
		)

		self.osc: typing.Optional[ensemble.osc.OscServer] = None
		self.midi: typing.Optional[ensemble.midi_input.MidiChordInput] = None

		if self.config.osc_enabled:
			self.osc = ensemble.osc.OscServer(
				self.coordinator,
				self.context.events,
				receive_port = self.config.osc_receive_port,
				send_port = self.config.osc_send_port,
				send_host = self.config.osc_send_host
			)

		if self.config.midi_input:
			self.midi = ensemble.midi_input.MidiChordInput(self.state, self.config.midi_input)

	async def start (self) -> None:

		"""Start serving peers and open the control surfaces."""

		if isinstance(self.transport, ensemble.transport.WebSocketTransport):
			await self.transport.start()

		if self.osc is not None:
			await self.osc.start()

		if self.midi is not None and not self.midi.start():
			logger.warning("Continuing without MIDI chord input")

		logger.info(f"Controller started (strategy: {self.state.strategy})")

	async def stop (self) -> None:

		if self.midi is not None:
			self.midi.stop()

		if self.osc is not None:
			await self.osc.stop()

		if isinstance(self.transport, ensemble.transport.WebSocketTransport):
			await self.transport.stop()

		logger.info("Controller stopped")

	async def run_until_stopped (self) -> None:

		"""Run until SIGINT or SIGTERM."""

		await self.start()

		stop_event = asyncio.Event()
		loop = asyncio.get_running_loop()

		for sig in (signal.SIGINT, signal.SIGTERM):
			loop.add_signal_handler(sig, stop_event.set)

		logger.info("Controller running. Press Ctrl+C to stop.")

		try:
			await stop_event.wait()
		finally:
			await self.stop()

	def run (self) -> None:

		"""Run the controller, blocking until interrupted."""

		try:
			asyncio.run(self.run_until_stopped())

		except KeyboardInterrupt:
			pass
