"""Controller configuration.

Configuration is read from a YAML file. Every key is optional; a missing file
logs a warning and yields the defaults. Example::

    strategy: randomized-balanced
    seed: 42
    websocket:
      host: 0.0.0.0
      port: 8765
    osc:
      enabled: true
      receive_port: 9000
      send_port: 9001
      send_host: 127.0.0.1
    midi:
      input: "Keystation 49"
    banks:
      file: banks.yaml
    transition:
      duration: 4
      stagger: 0.3
      durationSpread: 0.2
      glissando: true
    parameters:
      bowForce: 0.7
"""

import dataclasses
import logging
import os
import typing

import yaml

import ensemble.distribution
import ensemble.timing


logger = logging.getLogger(__name__)


DEFAULT_BASE_PARAMS: typing.Dict[str, typing.Any] = {
	"stringMaterial": 0.5,
	"stringDamping": 0.3,
	"bowPosition": 0.5,
	"bowSpeed": 0.4,
	"bowForce": 0.6,
	"brightness": 0.5,
	"vibratoRate": 5.0,
	"trillSpeed": 8.0,
	"trillArticulation": 0.7,
	"tremoloSpeed": 10.0,
	"tremoloArticulation": 0.8,
	"masterGain": 0.8,
}


@dataclasses.dataclass
class ControllerConfig:

	"""Settings for one controller process.

	Attributes:
		strategy: Distribution strategy name (see ``ensemble.distribution.STRATEGIES``).
		seed: Seed for the shared random source; None for nondeterministic runs.
		ws_host: Interface the peer WebSocket server binds to.
		ws_port: Peer WebSocket port.
		osc_enabled: Start the OSC control surface.
		osc_receive_port: UDP port for incoming OSC control messages.
		osc_send_port: UDP port OSC status messages are sent to.
		osc_send_host: Host OSC status messages are sent to.
		midi_input: MIDI input device for chord entry, or None.
		bank_file: YAML file backing the bank store, or None for memory only.
		transition: Default transition for ``send_current_part``.
		base_params: Initial synthesis parameters.
	"""

	strategy: str = ensemble.distribution.DEFAULT_STRATEGY
	seed: typing.Optional[int] = None
	ws_host: str = "0.0.0.0"
	ws_port: int = 8765
	osc_enabled: bool = False
	osc_receive_port: int = 9000
	osc_send_port: int = 9001
	osc_send_host: str = "127.0.0.1"
	midi_input: typing.Optional[str] = None
	bank_file: typing.Optional[str] = None
	transition: ensemble.timing.TransitionConfig = dataclasses.field(default_factory=ensemble.timing.TransitionConfig)
	base_params: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=lambda: dict(DEFAULT_BASE_PARAMS))

	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Any]]) -> "ControllerConfig":

		"""Build a config from the parsed YAML structure."""

		data = data or {}

		websocket = data.get("websocket") or {}
		osc = data.get("osc") or {}
		midi = data.get("midi") or {}
		banks = data.get("banks") or {}

		base_params = dict(DEFAULT_BASE_PARAMS)
		base_params.update(data.get("parameters") or {})

		seed = data.get("seed")

		return cls(
			strategy = ensemble.distribution.resolve_strategy(data.get("strategy")),
			seed = int(seed) if seed is not None else None,
			ws_host = str(websocket.get("host", cls.ws_host)),
			ws_port = int(websocket.get("port", cls.ws_port)),
			osc_enabled = bool(osc.get("enabled", bool(osc))),
			osc_receive_port = int(osc.get("receive_port", cls.osc_receive_port)),
			osc_send_port = int(osc.get("send_port", cls.osc_send_port)),
			osc_send_host = str(osc.get("send_host", cls.osc_send_host)),
			midi_input = midi.get("input"),
			bank_file = banks.get("file"),
			transition = ensemble.timing.TransitionConfig.from_dict(data.get("transition")),
			base_params = base_params
		)


def load_config (config_path: str = "config.yaml") -> ControllerConfig:

	"""
	Load configuration from a YAML file, falling back to defaults.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return ControllerConfig()

	with open(config_path, "r") as f:
		data = yaml.safe_load(f)

	if data is not None and not isinstance(data, dict):
		logger.warning(f"Config file {config_path} is not a mapping. Using defaults.")
		return ControllerConfig()

	return ControllerConfig.from_dict(data)
