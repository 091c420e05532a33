import asyncio
import json
import logging
import ssl
from contextlib import AsyncExitStack

from aiomqtt import Client, MqttError

from app.config import (
    CA_CERT,
    CLIENT_CERT,
    CLIENT_KEY,
    MQTT_HOST,
    MQTT_PASSWORD,
    MQTT_PORT,
    MQTT_TLS_ENABLED,
    MQTT_TLS_PORT,
    MQTT_USERNAME,
)
from app.errors import PublishError

VEHICLE_ADMITTED = "vehicle_admitted"
VEHICLE_UPDATED = "vehicle_updated"
VEHICLE_REMOVED = "vehicle_removed"
VEHICLE_EXITED = "vehicle_exited"


class EventSink:
    """Destination for parking lifecycle events."""

    async def connect(self):
        pass

    async def disconnect(self):
        pass

    async def publish(self, topic: str, payload: dict):
        raise NotImplementedError


class LogEventSink(EventSink):
    """Writes events to the log when no broker is configured."""

    async def publish(self, topic: str, payload: dict):
        logging.info(f"Event on '{topic}': {json.dumps(payload)}")


class MqttEventSink(EventSink):
    """Publishes events to an MQTT broker over a long-lived connection.

    A connection that failed at startup or dropped later is reopened once on
    the next publish. The event itself is not retried.
    """

    def __init__(self, hostname, port=None, username=None, password=None, tls_enabled=False):
        self.hostname = hostname
        self.tls_enabled = tls_enabled
        self.port = port or (MQTT_TLS_PORT if tls_enabled else MQTT_PORT)
        self.username = username
        self.password = password
        self._client = None
        self._stack = None
        self._reconnect_lock = None

    def _tls_context(self):
        if not self.tls_enabled:
            return None

        logging.info("TLS is enabled. Setting up SSL context.")
        tls_context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        tls_context.load_verify_locations(cafile=CA_CERT)
        tls_context.load_cert_chain(certfile=CLIENT_CERT, keyfile=CLIENT_KEY)
        return tls_context

    async def connect(self):
        logging.info(f"Connecting to MQTT broker at {self.hostname}:{self.port}")
        stack = AsyncExitStack()
        try:
            self._client = await stack.enter_async_context(
                Client(
                    hostname=self.hostname,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    tls_context=self._tls_context()
                )
            )
        except Exception as e:
            # Events stay best-effort; the next publish tries again
            logging.error(f"MQTT connection failed: {e}")
            self._client = None
            return False

        self._stack = stack
        return True

    async def disconnect(self):
        stack, self._stack, self._client = self._stack, None, None
        if stack is not None:
            try:
                await stack.aclose()
            except Exception as e:
                logging.warning(f"MQTT disconnect failed: {e}")
        logging.info("Disconnected from MQTT broker")

    async def _reconnect(self, stale_client):
        if self._reconnect_lock is None:
            self._reconnect_lock = asyncio.Lock()
        async with self._reconnect_lock:
            # Another publish may already have reopened the connection
            if self._client is not None and self._client is not stale_client:
                return self._client
            await self.disconnect()
            await self.connect()
            return self._client

    async def publish(self, topic: str, payload: dict):
        message = json.dumps(payload)
        client = self._client
        if client is None:
            client = await self._reconnect(None)
            if client is None:
                raise PublishError(f"Not connected to MQTT broker at {self.hostname}:{self.port}")

        try:
            await client.publish(topic, message.encode())
        except MqttError as e:
            logging.warning(f"MQTT publish to '{topic}' failed, reconnecting: {e}")
            client = await self._reconnect(client)
            if client is None:
                raise PublishError(f"MQTT publish to '{topic}' failed: {e}") from e
            try:
                await client.publish(topic, message.encode())
            except MqttError as retry_error:
                raise PublishError(f"MQTT publish to '{topic}' failed: {retry_error}") from retry_error
        logging.info(f"Successfully published '{message}' to '{topic}'")


def build_event_sink():
    if not MQTT_HOST:
        logging.info("MQTT_HOST not set, events will only be logged")
        return LogEventSink()

    return MqttEventSink(
        hostname=MQTT_HOST,
        username=MQTT_USERNAME,
        password=MQTT_PASSWORD,
        tls_enabled=MQTT_TLS_ENABLED
    )
