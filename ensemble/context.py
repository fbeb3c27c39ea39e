"""Process-wide coordination context.

One ``CoordinationContext`` is created per controller process and passed into
every component's constructor. It carries the event bus, the shared random
source, the clock used for program timestamps, and the configuration.
"""

import dataclasses
import random
import time
import typing

import ensemble.config
import ensemble.events


Clock = typing.Callable[[], float]


def wall_clock_ms () -> float:

	"""Milliseconds since the epoch, matching peer-side timestamp comparison."""

	return time.time() * 1000.0


@dataclasses.dataclass
class CoordinationContext:

	"""Shared collaborators for the controller's components.

	Tests build one with a seeded ``rng`` and a fixed ``clock`` so that every
	random draw and timestamp is reproducible.
	"""

	events: ensemble.events.EventBus = dataclasses.field(default_factory=ensemble.events.EventBus)
	rng: random.Random = dataclasses.field(default_factory=random.Random)
	clock: Clock = wall_clock_ms
	config: ensemble.config.ControllerConfig = dataclasses.field(default_factory=ensemble.config.ControllerConfig)

	@classmethod
	def from_config (cls, config: ensemble.config.ControllerConfig) -> "CoordinationContext":

		"""Create a context whose random source is seeded from the config."""

		return cls(rng=random.Random(config.seed), config=config)
