"""Sensor Hub client package initialisation."""

__version__ = "1.0.0"

import logging
import sys

logger = logging.getLogger(__name__)


def _check_dependencies():
    """Verify the MQTT stack is recent enough for aiomqtt 2.x."""
    try:
        import paho.mqtt.client as mqtt

        # aiomqtt 2.x drives paho through CallbackAPIVersion.VERSION2; the
        # 1.6.x line still shipped by some distributions lacks it and fails
        # at connect time with attribute errors.
        if not hasattr(mqtt, "CallbackAPIVersion"):
            logger.critical(
                "FATAL: Incompatible paho-mqtt version detected. "
                "sensorhub requires paho-mqtt 2.x with CallbackAPIVersion support."
            )
            sys.exit(1)

    except ImportError:
        # If imports are missing entirely, Python will raise ImportError naturally later.
        pass


_check_dependencies()
