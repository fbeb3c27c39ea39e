"""Peer transports.

A transport delivers JSON messages to peers by id and reports connects,
disconnects and inbound messages on the context's event bus:

- ``peer_connected(peer_id)``
- ``peer_disconnected(peer_id)``
- ``message_received(peer_id, message)``

``WebSocketTransport`` serves peers over WebSockets. A peer names itself with
a ``register`` message as its first frame; a peer that skips registration is
known by its connection id. Sends are fire-and-forget.
"""

import abc
import asyncio
import logging
import typing

import websockets.asyncio.server
import websockets.exceptions
import websockets.protocol

import ensemble.events
import ensemble.protocol


logger = logging.getLogger(__name__)


class Transport (abc.ABC):

	"""Delivers messages to connected peers."""

	@abc.abstractmethod
	def send (self, peer_id: str, message: typing.Mapping[str, typing.Any]) -> bool:

		"""Queue a message for one peer. Returns False if the peer is unreachable."""

		...

	@property
	@abc.abstractmethod
	def peer_ids (self) -> typing.List[str]:

		"""Ids of peers currently connected."""

		...


class WebSocketTransport (Transport):

	"""WebSocket server transport for peers."""

	def __init__ (
		self,
		events: ensemble.events.EventBus,
		host: str = "0.0.0.0",
		port: int = 8765
	) -> None:

		self._events = events
		self.host = host
		self.port = port

		self._server: typing.Optional[websockets.asyncio.server.Server] = None
		self._connections: typing.Dict[str, websockets.asyncio.server.ServerConnection] = {}

	@property
	def peer_ids (self) -> typing.List[str]:
		return list(self._connections)

	@property
	def bound_port (self) -> int:

		"""The listening port; useful when started with port 0."""

		if self._server is None:
			return self.port

		for sock in self._server.sockets:
			return int(sock.getsockname()[1])

		return self.port

	async def start (self) -> None:

		"""Start accepting peer connections."""

		self._server = await websockets.asyncio.server.serve(self._handle_connection, self.host, self.port)

		logger.info(f"Peer WebSocket server listening on ws://{self.host}:{self.bound_port}")

	async def stop (self) -> None:

		if self._server is not None:
			self._server.close()
			await self._server.wait_closed()
			self._server = None
			logger.info("Peer WebSocket server stopped")

	def send (self, peer_id: str, message: typing.Mapping[str, typing.Any]) -> bool:

		connection = self._connections.get(peer_id)

		if connection is None or connection.state is not websockets.protocol.State.OPEN:
			return False

		websockets.asyncio.server.broadcast([connection], ensemble.protocol.encode(message))

		return True

	async def _handle_connection (self, connection: websockets.asyncio.server.ServerConnection) -> None:

		peer_id: typing.Optional[str] = None

		try:
			async for raw in connection:

				try:
					message = ensemble.protocol.decode(raw)
				except ensemble.protocol.ProtocolError as e:
					logger.warning(f"Dropping frame from {peer_id or connection.id}: {e}")
					continue

				if peer_id is None:
					peer_id = self._register(connection, message)
					if message.get("type") == ensemble.protocol.REGISTER:
						continue

				self._events.emit(ensemble.events.MESSAGE_RECEIVED, peer_id, message)

		except websockets.exceptions.ConnectionClosed:
			pass

		finally:
			if peer_id is not None:
				self._unregister(peer_id, connection)

	def _register (self, connection: websockets.asyncio.server.ServerConnection, message: typing.Mapping[str, typing.Any]) -> str:

		synth_id = message.get("synthId") if message.get("type") == ensemble.protocol.REGISTER else None
		peer_id = str(synth_id) if synth_id else str(connection.id)

		replaced = self._connections.get(peer_id)
		self._connections[peer_id] = connection

		if replaced is not None:
			logger.warning(f"Peer {peer_id} reconnected, replacing the previous connection")
			asyncio.ensure_future(replaced.close())
			return peer_id

		self._events.emit(ensemble.events.PEER_CONNECTED, peer_id)

		return peer_id

	def _unregister (self, peer_id: str, connection: websockets.asyncio.server.ServerConnection) -> None:

		if self._connections.get(peer_id) is not connection:
			return

		del self._connections[peer_id]
		self._events.emit(ensemble.events.PEER_DISCONNECTED, peer_id)
