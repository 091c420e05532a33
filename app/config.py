import os

# Compute default certificate path relative to this file
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
CA_CERT = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_ca.crt")
CLIENT_CERT = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_client.crt")
CLIENT_KEY = os.path.join(BASE_DIR, "mqtt", "iot_mqtt_client.key")

# Environment variables
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./parking.db")
ROOT_PATH = os.getenv("ROOT_PATH", "")
MQTT_HOST = os.getenv("MQTT_HOST")
MQTT_PORT = int(os.getenv("MQTT_PORT", "1883"))
MQTT_TLS_PORT = int(os.getenv("MQTT_TLS_PORT", "8883"))
MQTT_USERNAME = os.getenv("MQTT_USERNAME")
MQTT_PASSWORD = os.getenv("MQTT_PASSWORD")
MQTT_VEHICLE_TOPIC = os.getenv("MQTT_VEHICLE_TOPIC", "parking/vehicles")
MQTT_TLS_ENABLED = os.getenv("MQTT_TLS_ENABLED", "false").lower() == "true"
MOTORCYCLE_CAPACITY = int(os.getenv("MOTORCYCLE_CAPACITY", "6"))
LIGHT_VEHICLE_CAPACITY = int(os.getenv("LIGHT_VEHICLE_CAPACITY", "5"))
