"""Event bus shared through the coordination context.

Transport and input adapters publish events here; the coordinator and any
observers (OSC status, logging) subscribe. Handlers run synchronously and to
completion, so no subscriber ever sees a half-updated assignment.
"""

import asyncio
import typing


CallbackType = typing.Callable[..., typing.Any]

PEER_CONNECTED = "peer_connected"
PEER_DISCONNECTED = "peer_disconnected"
MESSAGE_RECEIVED = "message_received"
ASSIGNMENT_CHANGED = "assignment_changed"
PART_SENT = "part_sent"
BANK_LOADED = "bank_loaded"
BANK_SAVED = "bank_saved"


class EventBus:

	"""
	Named-event publish/subscribe with sync and async delivery.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}

	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.
		"""

		self._listeners.setdefault(event_name, []).append(callback)

	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		listeners = self._listeners.get(event_name, [])

		if callback not in listeners:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		listeners.remove(callback)

	def listener_count (self, event_name: str) -> int:

		return len(self._listeners.get(event_name, []))

	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener for the event in registration order.

		Async listeners are not allowed here; use ``emit_async``.
		"""

		for callback in list(self._listeners.get(event_name, [])):

			if asyncio.iscoroutinefunction(callback):
				raise ValueError(f"Async callback encountered in emit for {event_name!r}")

			callback(*args, **kwargs)

	async def emit_async (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call sync listeners immediately, then await the async ones together.
		"""

		tasks: typing.List[typing.Awaitable[typing.Any]] = []

		for callback in list(self._listeners.get(event_name, [])):

			if asyncio.iscoroutinefunction(callback):
				tasks.append(callback(*args, **kwargs))
			else:
				callback(*args, **kwargs)

		if tasks:
			await asyncio.gather(*tasks)
