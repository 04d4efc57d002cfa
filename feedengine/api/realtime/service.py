import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from feedengine.api.realtime.models import (
    ErrorFrame,
    InboundFrameAdapter,
    SubscribeFrame,
    Subscription,
    Topic,
    UnsubscribeFrame,
    UpdateFrame,
    encode_frame,
)
from feedengine.config.constants import ChannelState, DeliveryMode
from feedengine.config.settings import settings
from feedengine.integrations.push_transport import PushConnection, PushTransport, WebSocketTransport
from feedengine.shared.error_handler import ErrorHandler

Poller = Callable[[Topic], Awaitable[Any]]


class LiveUpdateChannel:
    """
    One push connection shared by many topic subscriptions.

    Handles:
    - Connection state machine: connecting -> open -> reconnecting -> open,
      or -> degraded_polling once max_reconnect_attempts consecutive
      failures have happened (terminal for the session)
    - Exponential reconnect backoff: base * 2^attempt
    - Per-subscription poll timers while push is unavailable
    - Dispatching inbound update frames to subscription callbacks

    Every subscription has exactly one delivery mode at a time. Its poll
    timer lives on the Subscription record and is cancelled whenever the
    mode switches to push or the subscription is dropped.
    """

    def __init__(
        self,
        url: Optional[str],
        poller: Poller,
        transport: Optional[PushTransport] = None,
        poll_interval: Optional[float] = None,
        reconnect_base_delay: Optional[float] = None,
        max_reconnect_attempts: Optional[int] = None,
    ):
        self._error_handler = ErrorHandler(__name__)
        self.logger = logging.getLogger(__name__)
        self.url = url
        self._poller = poller
        self._transport = transport or WebSocketTransport()
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.REALTIME_POLL_INTERVAL
        )
        self.reconnect_base_delay = (
            reconnect_base_delay
            if reconnect_base_delay is not None
            else settings.REALTIME_RECONNECT_BASE_DELAY
        )
        self.max_reconnect_attempts = (
            max_reconnect_attempts
            if max_reconnect_attempts is not None
            else settings.REALTIME_MAX_RECONNECT_ATTEMPTS
        )

        self._state = ChannelState.CONNECTING
        self._subscriptions: Dict[str, Subscription] = {}
        self._connection: Optional[PushConnection] = None
        self._runner: Optional[asyncio.Task] = None
        self._failures = 0

    @property
    def state(self) -> ChannelState:
        return self._state

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self._subscriptions.get(subscription_id)

    # Connection lifecycle

    def start(self) -> Optional[asyncio.Task]:
        """Begin connecting in the background"""
        if self._state == ChannelState.DEGRADED_POLLING:
            return None
        if self._runner is not None and not self._runner.done():
            return self._runner
        if not self.url:
            self._enter_degraded_polling("no push endpoint configured")
            return None

        self._state = ChannelState.CONNECTING
        self._runner = asyncio.create_task(self._run())
        return self._runner

    async def _run(self) -> None:
        while True:
            try:
                connection = await self._transport.connect(self.url)
            except Exception as e:
                self._error_handler.handle_transient_error(
                    e, "opening push connection", {"url": self.url}
                )
            else:
                await self._on_open(connection)
                try:
                    await self._receive(connection)
                finally:
                    self._connection = None
                    await self._close_connection(connection)
                self.logger.info("Push connection closed, reconnecting...")

            self._failures += 1
            if self._failures >= self.max_reconnect_attempts:
                self._enter_degraded_polling(
                    f"{self._failures} consecutive push connection failures"
                )
                return

            self._state = ChannelState.RECONNECTING
            delay = self.reconnect_delay(self._failures - 1)
            self.logger.info(
                f"Attempting to reconnect in {delay:.2f}s "
                f"(attempt {self._failures + 1}/{self.max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff before reconnect attempt number ``attempt`` (0-based)"""
        return self.reconnect_base_delay * 2 ** attempt

    async def _on_open(self, connection: PushConnection) -> None:
        self._connection = connection
        self._state = ChannelState.OPEN
        self._failures = 0
        self.logger.info("Push connection open - live updates enabled")

        # Switch every subscription to push before sending, so none is fed twice
        subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            self._stop_polling(subscription)
            subscription.delivery_mode = DeliveryMode.PUSH

        for subscription in subscriptions:
            if self._subscriptions.get(subscription.id) is subscription:
                await self._register_push(subscription)

    async def _receive(self, connection: PushConnection) -> None:
        try:
            async for raw in connection:
                self._handle_message(raw)
        except Exception as e:
            self._error_handler.handle_transient_error(e, "receiving push frames")

    async def _close_connection(self, connection: PushConnection) -> None:
        try:
            await connection.close()
        except Exception as e:
            self._error_handler.handle_transient_error(e, "closing push connection")

    def _enter_degraded_polling(self, reason: str) -> None:
        if self._state == ChannelState.DEGRADED_POLLING:
            return
        self._state = ChannelState.DEGRADED_POLLING
        self.logger.warning(f"Live updates degraded to polling: {reason}")

        for subscription in list(self._subscriptions.values()):
            if subscription.delivery_mode == DeliveryMode.PUSH:
                self._start_polling(subscription)

    async def close(self) -> None:
        """Stop all work: connection, reconnects and every poll timer"""
        runner, self._runner = self._runner, None
        if runner is not None:
            runner.cancel()
            await asyncio.gather(runner, return_exceptions=True)

        for subscription in list(self._subscriptions.values()):
            self._stop_polling(subscription)
        self._subscriptions.clear()

        connection, self._connection = self._connection, None
        if connection is not None:
            await self._close_connection(connection)
        self.logger.info("Live-update channel closed")

    # Subscriptions

    async def subscribe(self, topic: Topic, callback: Callable[[Any], None]) -> str:
        """
        Register interest in a topic.

        Args:
            topic: What to listen to
            callback: Invoked with each update payload

        Returns:
            The subscription ID
        """
        subscription = Subscription(
            id=f"{topic.data_type}_{uuid.uuid4().hex}",
            topic=topic,
            callback=callback,
        )
        self._subscriptions[subscription.id] = subscription

        if self._state == ChannelState.OPEN and self._connection is not None:
            subscription.delivery_mode = DeliveryMode.PUSH
            await self._register_push(subscription)
        else:
            self._start_polling(subscription)

        self.logger.debug(
            f"Subscribed {subscription.id} via {subscription.delivery_mode.value}"
        )
        return subscription.id

    async def unsubscribe(self, subscription_id: str) -> bool:
        """
        Drop a subscription. Its callback is never invoked again.

        Returns:
            False if the ID was unknown
        """
        subscription = self._subscriptions.pop(subscription_id, None)
        if subscription is None:
            return False

        was_push = subscription.delivery_mode == DeliveryMode.PUSH
        self._stop_polling(subscription)

        if was_push and self._state == ChannelState.OPEN:
            await self._send(UnsubscribeFrame(subscription_id=subscription_id))

        self.logger.debug(f"Unsubscribed {subscription_id}")
        return True

    def _subscribe_frame(self, subscription: Subscription) -> SubscribeFrame:
        return SubscribeFrame(
            subscription_id=subscription.id,
            data_type=subscription.topic.data_type,
            topic_param=subscription.topic.param,
        )

    async def _register_push(self, subscription: Subscription) -> None:
        """
        Send the subscribe frame for a push-mode subscription.

        If the frame cannot be sent the server never learns about the
        subscription, so it polls instead and the connection is dropped.
        The run loop then backs off and re-subscribes everything on reopen.
        """
        if await self._send(self._subscribe_frame(subscription)):
            return

        if self._subscriptions.get(subscription.id) is subscription:
            self._start_polling(subscription)

        connection, self._connection = self._connection, None
        if connection is not None:
            self._state = ChannelState.RECONNECTING
            self.logger.warning(
                f"Could not register {subscription.id} for push, dropping connection"
            )
            await self._close_connection(connection)

    async def _send(self, frame: Union[SubscribeFrame, UnsubscribeFrame]) -> bool:
        connection = self._connection
        if connection is None:
            return False
        try:
            await connection.send(encode_frame(frame))
            return True
        except Exception as e:
            self._error_handler.handle_transient_error(
                e, f"sending {frame.type} frame", {"subscription_id": frame.subscription_id}
            )
            return False

    # Polling

    def _start_polling(self, subscription: Subscription) -> None:
        self._stop_polling(subscription)
        subscription.delivery_mode = DeliveryMode.POLL
        subscription.poll_task = asyncio.create_task(self._poll(subscription))

    def _stop_polling(self, subscription: Subscription) -> None:
        task, subscription.poll_task = subscription.poll_task, None
        if task is not None:
            task.cancel()

    async def _poll(self, subscription: Subscription) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                data = await self._poller(subscription.topic)
            except Exception as e:
                self._error_handler.handle_transient_error(
                    e, f"polling {subscription.topic.poll_path}"
                )
                continue

            # Dropped or switched to push while the fetch was in flight
            if (
                self._subscriptions.get(subscription.id) is not subscription
                or subscription.poll_task is not asyncio.current_task()
            ):
                return
            if data is not None:
                self._invoke(subscription, data)

    # Inbound frames

    def _handle_message(self, raw: Union[str, bytes]) -> None:
        try:
            frame = InboundFrameAdapter.validate_json(raw)
        except ValidationError as e:
            self._error_handler.handle_protocol_error(
                e, "decoding push frame", {"frame": str(raw)[:100]}
            )
            return

        if isinstance(frame, UpdateFrame):
            self._dispatch(frame.subscription_id, frame.payload)
        elif isinstance(frame, ErrorFrame):
            self.logger.warning(
                f"Push endpoint reported an error for {frame.subscription_id}: {frame.message}"
            )
        else:
            raise AssertionError(f"Unhandled frame type: {type(frame).__name__}")

    def _dispatch(self, subscription_id: str, payload: Any) -> None:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            self.logger.debug(f"Dropping update for unknown subscription {subscription_id}")
            return
        if subscription.delivery_mode != DeliveryMode.PUSH:
            self.logger.debug(f"Dropping pushed update for polling subscription {subscription_id}")
            return
        self._invoke(subscription, payload)

    def _invoke(self, subscription: Subscription, payload: Any) -> None:
        try:
            subscription.callback(payload)
        except Exception as e:
            self.logger.error(
                f"Error in live-update callback for {subscription.id}: {e}", exc_info=True
            )

    def broadcast_update(self, data_type: str, data: Any, param: Optional[str] = None) -> int:
        """Deliver a locally known update (optimistic UI) to matching subscriptions"""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.topic.data_type != data_type:
                continue
            if param is not None and subscription.topic.param != param:
                continue
            self._invoke(subscription, data)
            delivered += 1
        return delivered

    def get_connection_info(self) -> Dict[str, Any]:
        modes: List[DeliveryMode] = [s.delivery_mode for s in self._subscriptions.values()]
        return {
            "state": self._state.value,
            "connected": self._state == ChannelState.OPEN,
            "push_endpoint_configured": bool(self.url),
            "consecutive_failures": self._failures,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "subscriptions": len(modes),
            "push_subscriptions": modes.count(DeliveryMode.PUSH),
            "poll_subscriptions": modes.count(DeliveryMode.POLL),
        }
